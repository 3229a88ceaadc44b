"""Data model for the code-generation loop.

Artifacts, diagnostics and fix plans are immutable Pydantic v2 models: every
attempt produces a new artifact and every validation pass a fresh list of
diagnostics.  Orchestrator outcomes and session results are plain frozen
dataclasses since they only ever travel in-process.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ArtifactKind(str, Enum):
    """Which file an artifact targets."""

    SCHEMA = "schema"
    API = "api"


class CodegenState(str, Enum):
    """States of a :class:`~backforge.codegen.orchestrator.CodegenOrchestrator`."""

    IDLE = "idle"
    GENERATING = "generating"
    VALIDATING = "validating"
    ANALYZING = "analyzing"
    FIXING = "fixing"
    DONE = "done"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (CodegenState.DONE, CodegenState.FAILED)


class FailureReason(str, Enum):
    """Why an orchestrator or session ended in failure."""

    GENERATION_FAILED = "generation_failed"
    EXHAUSTED_RETRIES = "exhausted_retries"
    UNFIXABLE = "unfixable"
    FIX_FAILED = "fix_failed"
    CANCELLED = "cancelled"
    INFRASTRUCTURE_ERROR = "infrastructure_error"


# ---------------------------------------------------------------------------
# Inputs and artifacts
# ---------------------------------------------------------------------------


class Specification(BaseModel):
    """What to build.  Produced once by the caller; read-only afterwards."""

    model_config = ConfigDict(frozen=True)

    description: str = Field(..., description="Free-form description of the project")
    schema_source: Optional[str] = Field(
        default=None, description="Generated schema text, present for API generation"
    )


class GeneratedArtifact(BaseModel):
    """Source text produced by a generation or fix strategy."""

    model_config = ConfigDict(frozen=True)

    source_text: str
    kind: ArtifactKind
    reasoning: str = Field(default="", description="Strategy's explanation, if it gave one")


class ErrorInfo(BaseModel):
    """A single normalized type-checker diagnostic."""

    model_config = ConfigDict(frozen=True)

    message: str
    file_path: str = ""
    line: int = Field(default=0, ge=0)
    column: int = Field(default=0, ge=0)
    severity: str = Field(default="error", pattern="^(error|warning)$")
    code: str = Field(default="", description="Checker code such as TS2551")

    @property
    def location(self) -> str:
        """``file:line:column``, or an empty string for location-less diagnostics."""
        if not self.file_path:
            return ""
        return f"{Path(self.file_path).name}:{self.line}:{self.column}"

    def render(self) -> str:
        prefix = f"{self.location} " if self.location else ""
        code = f"{self.code}: " if self.code else ""
        return f"{prefix}{self.severity} {code}{self.message}"


class FixVerdict(str, Enum):
    FIXABLE = "fixable"
    UNFIXABLE = "unfixable"


class FixPlan(BaseModel):
    """Structured guidance from error analysis.

    Build with :meth:`fixable` or :meth:`unfixable` rather than directly.
    """

    model_config = ConfigDict(frozen=True)

    verdict: FixVerdict
    details: str = Field(default="", description="How to repair the artifact")
    reason: str = Field(default="", description="Why the errors cannot be repaired")

    @classmethod
    def fixable(cls, details: str) -> "FixPlan":
        return cls(verdict=FixVerdict.FIXABLE, details=details)

    @classmethod
    def unfixable(cls, reason: str) -> "FixPlan":
        return cls(verdict=FixVerdict.UNFIXABLE, reason=reason)

    @property
    def is_fixable(self) -> bool:
        return self.verdict is FixVerdict.FIXABLE


class ProjectContext(BaseModel):
    """Where an artifact will live, for validation purposes."""

    model_config = ConfigDict(frozen=True)

    project_dir: Path
    target_path: str = Field(..., description="Path of the artifact relative to project_dir")
    overlays: dict[str, str] = Field(
        default_factory=dict,
        description="Other in-flight sources keyed by relative path, e.g. the schema for the API",
    )
    package_manager: str = "npm"


# ---------------------------------------------------------------------------
# Attempt history and outcomes
# ---------------------------------------------------------------------------


class AttemptOutcome(str, Enum):
    """How one attempt concluded."""

    PASSED = "passed"
    FIXED = "fixed"
    EXHAUSTED = "exhausted"
    UNFIXABLE = "unfixable"
    FIX_FAILED = "fix_failed"
    CANCELLED = "cancelled"
    ERROR = "error"


@dataclass(frozen=True)
class AttemptRecord:
    """Record of a single attempt: one Generate-or-Fix followed by Validate."""

    attempt_number: int
    artifact: GeneratedArtifact
    errors: tuple[ErrorInfo, ...]
    outcome: AttemptOutcome

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempt_number": self.attempt_number,
            "outcome": self.outcome.value,
            "error_count": len(self.errors),
            "errors": [e.render() for e in self.errors],
            "source_length": len(self.artifact.source_text),
        }


@dataclass(frozen=True)
class CodegenSuccess:
    """Terminal ``DONE`` outcome."""

    kind: ArtifactKind
    artifact: GeneratedArtifact
    attempts: int

    ok = True


@dataclass(frozen=True)
class CodegenFailure:
    """Terminal ``FAILED`` outcome.

    Attributes:
        failed_in: State the orchestrator was in when it failed.
        message: Human-readable detail (exception text, analysis reason, ...).
        errors: Last known diagnostics, empty when none were collected.
        artifact: Last artifact produced, if any.
    """

    kind: ArtifactKind
    reason: FailureReason
    failed_in: CodegenState
    attempts: int
    message: str = ""
    errors: tuple[ErrorInfo, ...] = ()
    artifact: Optional[GeneratedArtifact] = None

    ok = False


CodegenOutcome = Union[CodegenSuccess, CodegenFailure]


class SessionStage(str, Enum):
    SCHEMA = "schema"
    API = "api"
    PERSISTENCE = "persistence"


@dataclass(frozen=True)
class SessionSuccess:
    """Both artifacts generated, validated and persisted."""

    trace: str
    schema: GeneratedArtifact
    api: GeneratedArtifact

    ok = True


@dataclass(frozen=True)
class SessionFailure:
    """A session stopped at *stage*.

    A failure at the API or persistence stage still carries the schema
    artifact so the caller may persist it.
    """

    trace: str
    stage: SessionStage
    reason: FailureReason
    message: str = ""
    errors: tuple[ErrorInfo, ...] = ()
    schema: Optional[GeneratedArtifact] = None
    api: Optional[GeneratedArtifact] = None

    ok = False


SessionResult = Union[SessionSuccess, SessionFailure]


@dataclass(frozen=True)
class ProgressEvent:
    """Observability notification emitted on every orchestrator transition."""

    trace: str
    kind: ArtifactKind
    state: CodegenState
    attempt_number: int
    error_count: int = 0
    detail: str = ""
