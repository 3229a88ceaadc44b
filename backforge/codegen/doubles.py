"""Scripted stand-ins for strategies, validators and sinks.

These satisfy the actor protocols with canned responses so that
orchestrators can be exercised without a model provider or a TypeScript
toolchain.  Each scripted double replays its responses in order and
records every call it receives.

A response may be:

* a value, returned as-is (``None`` included, for soft failures);
* an exception instance, raised;
* :data:`PENDING`, which suspends until the call is cancelled.

When the script runs out, the last response repeats.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Optional

from backforge.cancellation import CancelToken
from backforge.codegen.models import (
    ArtifactKind,
    ErrorInfo,
    FixPlan,
    GeneratedArtifact,
    ProjectContext,
    Specification,
)


class _Pending:
    def __repr__(self) -> str:
        return "PENDING"


PENDING: Any = _Pending()


class _Script:
    def __init__(self, responses: Sequence[Any]) -> None:
        if not responses:
            raise ValueError("a scripted double needs at least one response")
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def _respond(self, **call: Any) -> Any:
        index = min(len(self.calls), len(self.responses) - 1)
        self.calls.append(call)
        response = self.responses[index]
        if response is PENDING:
            await asyncio.Event().wait()
        if isinstance(response, BaseException):
            raise response
        return response


class ScriptedGeneration(_Script):
    async def generate(
        self, config: Any, specification: Specification, cancel: CancelToken
    ) -> Optional[GeneratedArtifact]:
        return await self._respond(config=config, specification=specification)


class ScriptedAnalysis(_Script):
    async def analyze(
        self,
        config: Any,
        artifact: GeneratedArtifact,
        errors: Sequence[ErrorInfo],
        cancel: CancelToken,
    ) -> Optional[FixPlan]:
        return await self._respond(config=config, artifact=artifact, errors=list(errors))


class ScriptedFix(_Script):
    async def fix(
        self,
        config: Any,
        artifact: GeneratedArtifact,
        fix_plan: FixPlan,
        cancel: CancelToken,
    ) -> Optional[GeneratedArtifact]:
        return await self._respond(config=config, artifact=artifact, fix_plan=fix_plan)


class ScriptedValidator(_Script):
    async def validate(
        self, source_text: str, project_context: ProjectContext, cancel: CancelToken
    ) -> list[ErrorInfo]:
        return await self._respond(source_text=source_text, project_context=project_context)


class MemorySink:
    """Keeps persisted artifacts in a dict keyed by path."""

    def __init__(self) -> None:
        self.files: dict[str, str] = {}
        self.writes: list[str] = []

    async def persist(self, path: str | Path, source_text: str) -> None:
        self.files[str(path)] = source_text
        self.writes.append(str(path))


class NoopSink:
    """Discards everything it is given."""

    async def persist(self, path: str | Path, source_text: str) -> None:
        return None


def artifact(kind: ArtifactKind, source_text: str = "export {};\n") -> GeneratedArtifact:
    """Shorthand for building artifacts in scripts."""
    return GeneratedArtifact(source_text=source_text, kind=kind)


def error(message: str = "Cannot find name 'x'.", file_path: str = "src/index.ts") -> ErrorInfo:
    """Shorthand for building a TypeScript error diagnostic."""
    return ErrorInfo(message=message, file_path=file_path, line=1, column=1, code="TS2304")
