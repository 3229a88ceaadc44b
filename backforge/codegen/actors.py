"""Actor contracts and the boundary that invokes them.

Strategies, validators and sinks are plain objects satisfying the
protocols below; orchestrators receive them as constructor arguments.
:func:`invoke_actor` is the single place where an actor call is awaited:
it races the call against the cancel token and folds every way the call
can end (value, ``None``, exception, cancellation) into an
:class:`ActorResult` so no exception escapes into the state machine.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Generic, Optional, Protocol, TypeVar, runtime_checkable

from backforge.cancellation import CancelToken, cancellable
from backforge.codegen.models import (
    ErrorInfo,
    FixPlan,
    GeneratedArtifact,
    ProjectContext,
    Specification,
)
from backforge.errors import OperationCancelled
from backforge.utils import categorize_error, log, truncate

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Consumed contracts
# ---------------------------------------------------------------------------


@runtime_checkable
class GenerationStrategy(Protocol):
    """Produces a first artifact from a specification.

    Returns ``None`` when the strategy declines to produce output; raises on
    infrastructure failure.
    """

    async def generate(
        self, config: Any, specification: Specification, cancel: CancelToken
    ) -> Optional[GeneratedArtifact]: ...


@runtime_checkable
class AnalysisStrategy(Protocol):
    """Classifies diagnostics into a :class:`FixPlan`."""

    async def analyze(
        self,
        config: Any,
        artifact: GeneratedArtifact,
        errors: Sequence[ErrorInfo],
        cancel: CancelToken,
    ) -> Optional[FixPlan]: ...


@runtime_checkable
class FixStrategy(Protocol):
    """Applies a fix plan, returning a corrected artifact."""

    async def fix(
        self,
        config: Any,
        artifact: GeneratedArtifact,
        fix_plan: FixPlan,
        cancel: CancelToken,
    ) -> Optional[GeneratedArtifact]: ...


@runtime_checkable
class Validator(Protocol):
    """Type-checks source text; an empty list means the source is valid."""

    async def validate(
        self, source_text: str, project_context: ProjectContext, cancel: CancelToken
    ) -> list[ErrorInfo]: ...


@runtime_checkable
class Sink(Protocol):
    """Destination for finished artifacts."""

    async def persist(self, path: str | Path, source_text: str) -> None: ...


@dataclass(frozen=True)
class CodegenActors:
    """The strategies one orchestrator instance drives.

    Attributes:
        config: Opaque strategy configuration handed to every strategy call.
    """

    generation: GenerationStrategy
    analysis: AnalysisStrategy
    fix: FixStrategy
    validator: Validator
    config: Any = None


# ---------------------------------------------------------------------------
# Invocation boundary
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ActorResult(Generic[T]):
    """How one actor invocation ended.

    Exactly one of the following holds: ``cancelled`` is true, ``error`` is
    set, or the call completed (``value`` may still be ``None`` for a soft
    failure).
    """

    value: Optional[T] = None
    error: Optional[BaseException] = None
    cancelled: bool = False

    @property
    def declined(self) -> bool:
        """True when the actor completed but produced nothing."""
        return not self.cancelled and self.error is None and self.value is None


async def invoke_actor(
    name: str,
    call: Callable[[], Awaitable[Optional[T]]],
    cancel: CancelToken,
    *,
    trace: str = "",
) -> ActorResult[T]:
    """Invoke *call* under *cancel* and classify how it ended.

    *call* is a zero-argument factory so that nothing is invoked once the
    token has already fired.
    """
    try:
        cancel.raise_if_cancelled()
        value = await cancellable(call(), cancel)
    except OperationCancelled as exc:
        log("warn", f"{name} cancelled: {exc}", trace=trace)
        return ActorResult(cancelled=True)
    except Exception as exc:  # noqa: BLE001 - converted to a terminal state by the caller
        info = categorize_error(exc)
        log(
            "error",
            f"{name} failed: {truncate(str(exc) or exc.__class__.__name__)}",
            trace=trace,
            category=info["category"],
            code=info["code"],
        )
        return ActorResult(error=exc)
    return ActorResult(value=value)


async def persist_artifact(
    sink: Sink,
    path: str | Path,
    artifact: GeneratedArtifact,
    cancel: CancelToken,
    *,
    trace: str = "",
) -> ActorResult[None]:
    """Persistence actor: hand *artifact* to *sink* at *path*."""
    log("info", f"Saving {artifact.kind.value} to {path}", trace=trace)
    return await invoke_actor(
        f"persist[{artifact.kind.value}]",
        lambda: sink.persist(path, artifact.source_text),
        cancel,
        trace=trace,
    )
