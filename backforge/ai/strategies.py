"""LLM-backed generation, analysis and fix strategies.

Each strategy wraps a :class:`~backforge.ai.client.ModelClient` and
satisfies one of the actor protocols in :mod:`backforge.codegen.actors`.
The ``config`` argument every call receives is an
:class:`~backforge.config.AiConfig` (or a full
:class:`~backforge.config.Config`); it selects the model and temperature.

Failure conventions:

* the provider could not be reached or rejected the call -> raise
  :class:`~backforge.errors.ModelCallError`;
* the model answered but produced nothing usable -> return ``None``.
"""

from __future__ import annotations

import json
import re
from collections.abc import Sequence
from typing import Any, Optional

from backforge.ai.client import ModelClient, ModelResponse
from backforge.ai.prompts import (
    SCHEMA_SYSTEM_PROMPT,
    build_analysis_prompt,
    build_analyze_tables_prompt,
    build_api_prompt,
    build_api_system_prompt,
    build_fix_prompt,
    build_schema_prompt,
)
from backforge.cancellation import CancelToken
from backforge.codegen.models import (
    ArtifactKind,
    ErrorInfo,
    FixPlan,
    GeneratedArtifact,
    Specification,
)
from backforge.config import AiConfig, Config
from backforge.errors import ModelCallError
from backforge.utils import log, truncate

_CODE_BLOCK = re.compile(r"```(?:typescript|ts|tsx|javascript|js)?[ \t]*\n(.*?)```", re.DOTALL)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def extract_code_block(text: str) -> str:
    """Return the longest fenced code block in *text*.

    Unfenced replies are taken as code verbatim.
    """
    blocks = _CODE_BLOCK.findall(text)
    if blocks:
        return max(blocks, key=len).strip()
    if "```" in text:
        # Unterminated fence: keep whatever follows the opening line.
        _, _, rest = text.partition("```")
        return rest.split("\n", 1)[1].strip() if "\n" in rest else ""
    return text.strip()


def parse_json_object(raw: str) -> Optional[dict[str, Any]]:
    """Best-effort extraction of the first JSON object from *raw*.

    LLM responses sometimes include markdown fences or preamble text; this
    helper strips those away before parsing.  Returns ``None`` when no
    object can be recovered.
    """
    cleaned = re.sub(r"```(?:json)?\s*", "", raw)
    cleaned = cleaned.strip().rstrip("`").strip()

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        match = re.search(r"\{[\s\S]*\}", cleaned)
        if not match:
            return None
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError:
            return None
    return data if isinstance(data, dict) else None


def _ai_config(config: Any) -> AiConfig:
    if isinstance(config, AiConfig):
        return config
    if isinstance(config, Config):
        return config.ai
    return AiConfig()


class _ModelStrategy:
    """Shared plumbing: one client, one completion call per step."""

    def __init__(self, client: ModelClient) -> None:
        self.client = client

    async def _ask(
        self,
        step: str,
        prompt: str,
        model: str,
        ai: AiConfig,
        cancel: CancelToken,
        system: str = "",
    ) -> ModelResponse:
        log("debug", f"{step}: prompting {self.client.provider_name}", model=model, chars=len(prompt))
        response = await self.client.complete_with_fallback(
            prompt,
            primary_model=model,
            fallback_model=ai.fallback_model,
            system=system,
            temperature=ai.temperature,
            cancel=cancel,
        )
        if not response.success:
            raise ModelCallError(
                response.error or f"{step} failed",
                provider=self.client.provider_name,
                model=response.model or model,
            )
        log("debug", f"{step}: {len(response.text)} chars in {response.duration_ms:.0f}ms")
        return response


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


class SchemaGenerationStrategy(_ModelStrategy):
    """Two steps: derive a table specification, then write the Drizzle schema."""

    async def generate(
        self, config: Any, specification: Specification, cancel: CancelToken
    ) -> Optional[GeneratedArtifact]:
        ai = _ai_config(config)

        tables = await self._ask(
            "Analyze tables",
            build_analyze_tables_prompt(specification.description),
            ai.generation_model,
            ai,
            cancel,
            system=SCHEMA_SYSTEM_PROMPT,
        )
        parsed = parse_json_object(tables.text) or {}
        table_spec = str(parsed.get("schemaSpecification") or tables.text).strip()
        if not table_spec:
            log("warn", "Table analysis returned nothing")
            return None

        schema = await self._ask(
            "Generate schema",
            build_schema_prompt(table_spec),
            ai.generation_model,
            ai,
            cancel,
            system=SCHEMA_SYSTEM_PROMPT,
        )
        source = extract_code_block(schema.text)
        if not source:
            return None
        return GeneratedArtifact(
            source_text=source,
            kind=ArtifactKind.SCHEMA,
            reasoning=str(parsed.get("reasoning", "")),
        )


class ApiGenerationStrategy(_ModelStrategy):
    """Writes the Hono routes file against an already validated schema."""

    async def generate(
        self, config: Any, specification: Specification, cancel: CancelToken
    ) -> Optional[GeneratedArtifact]:
        if specification.schema_source is None:
            raise ValueError("API generation requires the schema source")
        ai = _ai_config(config)

        response = await self._ask(
            "Generate API",
            build_api_prompt(specification.description),
            ai.generation_model,
            ai,
            cancel,
            system=build_api_system_prompt(specification.schema_source),
        )
        source = extract_code_block(response.text)
        if not source:
            return None
        reasoning = response.text.split("```", 1)[0].strip()
        return GeneratedArtifact(source_text=source, kind=ArtifactKind.API, reasoning=reasoning)


# ---------------------------------------------------------------------------
# Analysis and fix
# ---------------------------------------------------------------------------


class ErrorAnalysisStrategy(_ModelStrategy):
    """Turns diagnostics into a :class:`FixPlan`.

    A JSON verdict is preferred; free-form prose is accepted as fix details.
    """

    async def analyze(
        self,
        config: Any,
        artifact: GeneratedArtifact,
        errors: Sequence[ErrorInfo],
        cancel: CancelToken,
    ) -> Optional[FixPlan]:
        ai = _ai_config(config)
        response = await self._ask(
            f"Analyze {artifact.kind.value} errors",
            build_analysis_prompt(artifact.kind.value, artifact.source_text, errors),
            ai.analysis_model,
            ai,
            cancel,
        )
        text = response.text.strip()
        if not text:
            return None

        verdict = parse_json_object(text)
        if verdict is None or "fixable" not in verdict:
            return FixPlan.fixable(text)

        details = str(verdict.get("details") or "").strip()
        if verdict.get("fixable") is False:
            reason = str(verdict.get("reason") or details or "analysis declared the errors unfixable")
            log("warn", f"Errors judged unfixable: {truncate(reason)}")
            return FixPlan.unfixable(reason)
        if not details:
            return None
        return FixPlan.fixable(details)


class CodeFixStrategy(_ModelStrategy):
    """Rewrites an artifact following the fix plan's details."""

    async def fix(
        self,
        config: Any,
        artifact: GeneratedArtifact,
        fix_plan: FixPlan,
        cancel: CancelToken,
    ) -> Optional[GeneratedArtifact]:
        ai = _ai_config(config)
        response = await self._ask(
            f"Fix {artifact.kind.value}",
            build_fix_prompt(artifact.kind.value, artifact.source_text, fix_plan.details),
            ai.fix_model,
            ai,
            cancel,
            system=SCHEMA_SYSTEM_PROMPT if artifact.kind is ArtifactKind.SCHEMA else "",
        )
        source = extract_code_block(response.text)
        if not source:
            return None
        return GeneratedArtifact(source_text=source, kind=artifact.kind, reasoning=fix_plan.details)
