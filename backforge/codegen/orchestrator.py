"""Generate -> validate -> analyze -> fix state machine.

One :class:`CodegenOrchestrator` drives one artifact (the schema or the
API) through a bounded retry loop::

    IDLE -> GENERATING -> VALIDATING -> DONE
                              |
                              +-> ANALYZING -> FIXING -> VALIDATING ...
                              +-> FAILED

Every transition is driven by exactly one completed actor invocation and
actors never run concurrently within one instance, so the diagnostics the
analysis sees always belong to the artifact being fixed.  The loop is
bounded by ``max_attempts``: an attempt is one Generate-or-Fix followed by
a Validate, and validation failing on attempt ``max_attempts`` ends in
``FAILED(EXHAUSTED_RETRIES)`` without spending another analysis.

Actor failures never escape :meth:`CodegenOrchestrator.start`; they become
a terminal :class:`~backforge.codegen.models.CodegenFailure` tagged with a
:class:`~backforge.codegen.models.FailureReason`.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any, Optional, Union

from rich.panel import Panel

from backforge.cancellation import CancelToken
from backforge.codegen.actors import ActorResult, CodegenActors, invoke_actor
from backforge.codegen.models import (
    ArtifactKind,
    AttemptOutcome,
    AttemptRecord,
    CodegenFailure,
    CodegenOutcome,
    CodegenState,
    CodegenSuccess,
    ErrorInfo,
    FailureReason,
    FixPlan,
    GeneratedArtifact,
    ProgressEvent,
    ProjectContext,
    Specification,
)
from backforge.errors import OrchestratorStateError
from backforge.utils import console, log, truncate

ProgressObserver = Callable[[ProgressEvent], Union[None, Awaitable[None]]]

DEFAULT_MAX_ATTEMPTS = 3

# Seconds an ended orchestrator waits for async progress observers.
OBSERVER_DRAIN_TIMEOUT = 1.0

TRANSITIONS: dict[CodegenState, frozenset[CodegenState]] = {
    CodegenState.IDLE: frozenset({CodegenState.GENERATING}),
    CodegenState.GENERATING: frozenset({CodegenState.VALIDATING, CodegenState.FAILED}),
    CodegenState.VALIDATING: frozenset(
        {CodegenState.DONE, CodegenState.ANALYZING, CodegenState.FAILED}
    ),
    CodegenState.ANALYZING: frozenset({CodegenState.FIXING, CodegenState.FAILED}),
    CodegenState.FIXING: frozenset({CodegenState.VALIDATING, CodegenState.FAILED}),
    CodegenState.DONE: frozenset(),
    CodegenState.FAILED: frozenset(),
}


class CodegenOrchestrator:
    """Drives one artifact through the bounded generate/fix loop.

    Parameters
    ----------
    kind:
        Which artifact this instance produces.
    actors:
        Generation, analysis and fix strategies plus the validator.
    project_context:
        Where the artifact will live; handed to the validator.
    max_attempts:
        Maximum number of attempts (the generation plus every fix).
    observer:
        Optional progress callback, sync or async.  Async callbacks run as
        tasks and are only awaited once the loop has ended, for at most
        ``OBSERVER_DRAIN_TIMEOUT`` seconds; stragglers are cancelled.  Its
        failures are reported and ignored.
    """

    def __init__(
        self,
        kind: ArtifactKind,
        actors: CodegenActors,
        project_context: ProjectContext,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        observer: Optional[ProgressObserver] = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.kind = kind
        self.actors = actors
        self.project_context = project_context
        self.max_attempts = max_attempts
        self._observer = observer

        self._state = CodegenState.IDLE
        self._attempt_number = 0
        self._artifact: Optional[GeneratedArtifact] = None
        self._errors: tuple[ErrorInfo, ...] = ()
        self._fix_plan: Optional[FixPlan] = None
        self._history: list[AttemptRecord] = []
        self._outcome: Optional[CodegenOutcome] = None
        self._observer_tasks: set[asyncio.Future[Any]] = set()

        self._specification: Optional[Specification] = None
        self._trace = ""
        self._cancel = CancelToken()

        self._handlers: dict[CodegenState, Callable[[], Awaitable[None]]] = {
            CodegenState.GENERATING: self._generate,
            CodegenState.VALIDATING: self._validate,
            CodegenState.ANALYZING: self._analyze,
            CodegenState.FIXING: self._fix,
        }

    # -- Public API ----------------------------------------------------------

    @property
    def state(self) -> CodegenState:
        return self._state

    @property
    def attempt_number(self) -> int:
        return self._attempt_number

    @property
    def history(self) -> tuple[AttemptRecord, ...]:
        """Ordered record of every concluded attempt."""
        return tuple(self._history)

    @property
    def outcome(self) -> Optional[CodegenOutcome]:
        """Terminal outcome, or ``None`` while the orchestrator is still running."""
        return self._outcome

    async def start(
        self,
        specification: Specification,
        trace: str = "",
        cancel: Optional[CancelToken] = None,
    ) -> CodegenOutcome:
        """Run the loop to a terminal state and return its outcome.

        Raises:
            OrchestratorStateError: If this instance has already been started.
        """
        if self._state is not CodegenState.IDLE:
            raise OrchestratorStateError(
                f"{self.kind.value} orchestrator already started (state: {self._state.value})"
            )
        self._specification = specification
        self._trace = trace
        self._cancel = cancel if cancel is not None else CancelToken()

        self._transition(CodegenState.GENERATING)
        while not self._state.terminal:
            await self._handlers[self._state]()

        await self._drain_observers()
        assert self._outcome is not None
        return self._outcome

    def to_dict(self) -> dict[str, Any]:
        """Serialisable snapshot for session state files."""
        outcome: dict[str, Any] = {}
        if isinstance(self._outcome, CodegenFailure):
            outcome = {
                "ok": False,
                "reason": self._outcome.reason.value,
                "failed_in": self._outcome.failed_in.value,
                "message": self._outcome.message,
            }
        elif isinstance(self._outcome, CodegenSuccess):
            outcome = {"ok": True}
        return {
            "kind": self.kind.value,
            "state": self._state.value,
            "attempts": self._attempt_number,
            "max_attempts": self.max_attempts,
            "outcome": outcome,
            "history": [record.to_dict() for record in self._history],
        }

    # -- State handlers --------------------------------------------------------

    async def _generate(self) -> None:
        assert self._specification is not None
        spec = self._specification
        log("info", f"Generating {self.kind.value}", trace=self._trace, stage="generation")
        result = await self._invoke(
            "generate",
            lambda: self.actors.generation.generate(self.actors.config, spec, self._cancel),
        )
        if self._failed_on(result, declined=FailureReason.GENERATION_FAILED,
                           declined_message="generation strategy produced no artifact"):
            return

        assert result.value is not None
        self._artifact = result.value
        self._attempt_number = 1
        self._transition(CodegenState.VALIDATING)

    async def _validate(self) -> None:
        assert self._artifact is not None
        artifact = self._artifact
        console.print(
            Panel(
                f"[bold]{self.kind.value.upper()} attempt "
                f"{self._attempt_number}/{self.max_attempts}[/bold]",
                style="magenta",
            )
        )
        result = await self._invoke(
            "validate",
            lambda: self.actors.validator.validate(
                artifact.source_text, self.project_context, self._cancel
            ),
        )
        if result.cancelled or result.error is not None:
            self._conclude_attempt(
                AttemptOutcome.CANCELLED if result.cancelled else AttemptOutcome.ERROR
            )
            self._failed_on(result)
            return
        if result.value is None:
            self._conclude_attempt(AttemptOutcome.ERROR)
            self._fail(FailureReason.INFRASTRUCTURE_ERROR, "validator returned no result")
            return

        self._errors = tuple(result.value)
        if not self._errors:
            self._conclude_attempt(AttemptOutcome.PASSED)
            self._succeed()
            return

        log(
            "warn",
            f"{len(self._errors)} error(s) in {self.kind.value} attempt {self._attempt_number}",
            trace=self._trace,
        )
        for error in self._errors[:5]:
            console.print(f"    [dim]{truncate(error.render(), 160)}[/dim]", highlight=False)

        if self._attempt_number >= self.max_attempts:
            self._conclude_attempt(AttemptOutcome.EXHAUSTED)
            self._fail(
                FailureReason.EXHAUSTED_RETRIES,
                f"{len(self._errors)} error(s) remain after {self._attempt_number} attempt(s)",
            )
            return
        self._transition(CodegenState.ANALYZING)

    async def _analyze(self) -> None:
        assert self._artifact is not None
        artifact, errors = self._artifact, self._errors
        result = await self._invoke(
            "analyze",
            lambda: self.actors.analysis.analyze(
                self.actors.config, artifact, list(errors), self._cancel
            ),
        )
        if result.cancelled or result.error is not None:
            self._conclude_attempt(
                AttemptOutcome.CANCELLED if result.cancelled else AttemptOutcome.ERROR
            )
            self._failed_on(result)
            return

        plan = result.value
        if plan is None or not plan.is_fixable:
            reason = plan.reason if plan is not None else "analysis strategy produced no fix plan"
            self._conclude_attempt(AttemptOutcome.UNFIXABLE)
            self._fail(FailureReason.UNFIXABLE, reason)
            return

        self._fix_plan = plan
        self._transition(CodegenState.FIXING)

    async def _fix(self) -> None:
        assert self._artifact is not None and self._fix_plan is not None
        artifact, plan = self._artifact, self._fix_plan
        self._fix_plan = None
        result = await self._invoke(
            "fix",
            lambda: self.actors.fix.fix(self.actors.config, artifact, plan, self._cancel),
        )
        if result.cancelled or result.error is not None or result.value is None:
            if result.cancelled:
                self._conclude_attempt(AttemptOutcome.CANCELLED)
            elif result.error is not None:
                self._conclude_attempt(AttemptOutcome.ERROR)
            else:
                self._conclude_attempt(AttemptOutcome.FIX_FAILED)
            self._failed_on(result, declined=FailureReason.FIX_FAILED,
                            declined_message="fix strategy produced no artifact")
            return

        self._conclude_attempt(AttemptOutcome.FIXED)
        self._artifact = result.value
        self._attempt_number += 1
        self._transition(CodegenState.VALIDATING)

    # -- Internal ------------------------------------------------------------

    async def _invoke(self, action: str, call: Callable[[], Awaitable[Any]]) -> ActorResult[Any]:
        return await invoke_actor(
            f"{action}[{self.kind.value}]", call, self._cancel, trace=self._trace
        )

    def _failed_on(
        self,
        result: ActorResult[Any],
        *,
        declined: Optional[FailureReason] = None,
        declined_message: str = "",
    ) -> bool:
        """Fail according to *result*; return ``True`` if a failure was recorded."""
        if result.cancelled:
            self._fail(FailureReason.CANCELLED, self._cancel.reason or "cancelled")
            return True
        if result.error is not None:
            self._fail(
                FailureReason.INFRASTRUCTURE_ERROR,
                str(result.error) or result.error.__class__.__name__,
            )
            return True
        if result.value is None and declined is not None:
            self._fail(declined, declined_message)
            return True
        return False

    def _conclude_attempt(self, outcome: AttemptOutcome) -> None:
        assert self._artifact is not None
        self._history.append(
            AttemptRecord(
                attempt_number=self._attempt_number,
                artifact=self._artifact,
                errors=self._errors,
                outcome=outcome,
            )
        )

    def _succeed(self) -> None:
        assert self._artifact is not None
        if self._cancel.cancelled:
            self._fail(FailureReason.CANCELLED, self._cancel.reason or "cancelled")
            return
        self._outcome = CodegenSuccess(
            kind=self.kind,
            artifact=self._artifact,
            attempts=self._attempt_number,
        )
        self._transition(CodegenState.DONE)
        log(
            "info",
            f"{self.kind.value} generation completed after {self._attempt_number} attempt(s)",
            trace=self._trace,
            stage="complete",
        )

    def _fail(self, reason: FailureReason, message: str) -> None:
        failed_in = self._state
        self._outcome = CodegenFailure(
            kind=self.kind,
            reason=reason,
            failed_in=failed_in,
            attempts=self._attempt_number,
            message=message,
            errors=self._errors,
            artifact=self._artifact,
        )
        self._transition(CodegenState.FAILED, detail=message)
        log(
            "error",
            f"{self.kind.value} generation failed: {reason.value}",
            trace=self._trace,
            failed_in=failed_in.value,
            detail=truncate(message) if message else None,
        )

    def _transition(self, target: CodegenState, detail: str = "") -> None:
        if target not in TRANSITIONS[self._state]:
            raise OrchestratorStateError(
                f"illegal transition {self._state.value} -> {target.value}"
            )
        log(
            "debug",
            f"{self.kind.value}: {self._state.value} -> {target.value}",
            trace=self._trace,
            attempt=self._attempt_number or None,
        )
        self._state = target
        self._notify(detail)

    def _notify(self, detail: str) -> None:
        if self._observer is None:
            return
        event = ProgressEvent(
            trace=self._trace,
            kind=self.kind,
            state=self._state,
            attempt_number=self._attempt_number,
            error_count=len(self._errors),
            detail=detail,
        )
        try:
            result = self._observer(event)
        except Exception as exc:  # noqa: BLE001 - observers must not affect control flow
            log("warn", f"Progress observer raised: {exc}", trace=self._trace)
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._observer_tasks.add(task)
            task.add_done_callback(self._observer_finished)

    async def _drain_observers(self) -> None:
        if not self._observer_tasks:
            return
        _, pending = await asyncio.wait(set(self._observer_tasks), timeout=OBSERVER_DRAIN_TIMEOUT)
        if not pending:
            return
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        log("warn", f"Cancelled {len(pending)} progress observer(s) still running", trace=self._trace)

    def _observer_finished(self, task: asyncio.Future[Any]) -> None:
        self._observer_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log("warn", f"Progress observer raised: {exc}", trace=self._trace)
