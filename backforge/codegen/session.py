"""Session orchestration: schema first, then API, then persistence.

A :class:`SessionOrchestrator` owns the two codegen orchestrators of one
scaffold operation.  The API stage never starts unless the schema stage
reached ``DONE``, and nothing is written to the project until both have.
Recovery is local to each orchestrator's retry loop; the session never
retries a stage.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Optional

from backforge.cancellation import CancelToken
from backforge.codegen.actors import CodegenActors, Sink, persist_artifact
from backforge.codegen.models import (
    ArtifactKind,
    CodegenFailure,
    FailureReason,
    GeneratedArtifact,
    ProjectContext,
    SessionFailure,
    SessionResult,
    SessionStage,
    SessionSuccess,
    Specification,
)
from backforge.codegen.orchestrator import (
    DEFAULT_MAX_ATTEMPTS,
    CodegenOrchestrator,
    ProgressObserver,
)
from backforge.errors import OrchestratorStateError
from backforge.utils import format_duration, log, new_trace_id, print_stage_header


class SessionOrchestrator:
    """Runs the schema and API orchestrators for one scaffold operation.

    Instances are single-use: create a new one per :meth:`run`.

    Attributes:
        schema: The schema orchestrator, once the schema stage has started.
        api: The API orchestrator, once the API stage has started.
    """

    def __init__(
        self,
        schema_actors: CodegenActors,
        api_actors: CodegenActors,
        sink: Sink,
        project_dir: str | Path,
        *,
        schema_path: str = "src/db/schema.ts",
        api_path: str = "src/index.ts",
        max_schema_attempts: int = DEFAULT_MAX_ATTEMPTS,
        max_api_attempts: int = DEFAULT_MAX_ATTEMPTS,
        package_manager: str = "npm",
        observer: Optional[ProgressObserver] = None,
    ) -> None:
        self.schema_actors = schema_actors
        self.api_actors = api_actors
        self.sink = sink
        self.project_dir = Path(project_dir)
        self.schema_path = schema_path
        self.api_path = api_path
        self.max_schema_attempts = max_schema_attempts
        self.max_api_attempts = max_api_attempts
        self.package_manager = package_manager
        self.observer = observer

        self.schema: Optional[CodegenOrchestrator] = None
        self.api: Optional[CodegenOrchestrator] = None
        self.trace = ""
        self.result: Optional[SessionResult] = None
        self._started = False

    async def run(
        self,
        description: str,
        trace: Optional[str] = None,
        cancel: Optional[CancelToken] = None,
    ) -> SessionResult:
        """Generate, validate and persist the schema and the API.

        Returns:
            :class:`SessionSuccess` with both artifacts, or
            :class:`SessionFailure` naming the stage that stopped the run.

        Raises:
            OrchestratorStateError: If this session has already been run.
        """
        if self._started:
            raise OrchestratorStateError("session already run; create a new SessionOrchestrator")
        self._started = True
        self.trace = trace or new_trace_id()
        cancel = cancel if cancel is not None else CancelToken()
        started = time.monotonic()

        self.result = await self._run(description, cancel)

        elapsed = format_duration(time.monotonic() - started)
        if self.result.ok:
            log("info", f"Session completed in {elapsed}", trace=self.trace)
        else:
            log(
                "error",
                f"Session failed at {self.result.stage.value} after {elapsed}",
                trace=self.trace,
                reason=self.result.reason.value,
            )
        return self.result

    async def _run(self, description: str, cancel: CancelToken) -> SessionResult:
        # Schema
        print_stage_header("schema", "Schema generation")
        self.schema = CodegenOrchestrator(
            ArtifactKind.SCHEMA,
            self.schema_actors,
            ProjectContext(
                project_dir=self.project_dir,
                target_path=self.schema_path,
                package_manager=self.package_manager,
            ),
            max_attempts=self.max_schema_attempts,
            observer=self.observer,
        )
        schema_outcome = await self.schema.start(
            Specification(description=description), self.trace, cancel
        )
        if isinstance(schema_outcome, CodegenFailure):
            return self._stage_failure(SessionStage.SCHEMA, schema_outcome)
        schema_artifact = schema_outcome.artifact

        # API
        print_stage_header("api", "API generation")
        self.api = CodegenOrchestrator(
            ArtifactKind.API,
            self.api_actors,
            ProjectContext(
                project_dir=self.project_dir,
                target_path=self.api_path,
                overlays={self.schema_path: schema_artifact.source_text},
                package_manager=self.package_manager,
            ),
            max_attempts=self.max_api_attempts,
            observer=self.observer,
        )
        api_outcome = await self.api.start(
            Specification(description=description, schema_source=schema_artifact.source_text),
            self.trace,
            cancel,
        )
        if isinstance(api_outcome, CodegenFailure):
            return self._stage_failure(SessionStage.API, api_outcome, schema=schema_artifact)
        api_artifact = api_outcome.artifact

        # Persistence
        print_stage_header("persistence", "Saving artifacts")
        for path, artifact in ((self.schema_path, schema_artifact), (self.api_path, api_artifact)):
            result = await persist_artifact(self.sink, path, artifact, cancel, trace=self.trace)
            if result.cancelled or result.error is not None:
                return SessionFailure(
                    trace=self.trace,
                    stage=SessionStage.PERSISTENCE,
                    reason=(
                        FailureReason.CANCELLED
                        if result.cancelled
                        else FailureReason.INFRASTRUCTURE_ERROR
                    ),
                    message=str(result.error) if result.error is not None else cancel.reason,
                    schema=schema_artifact,
                    api=api_artifact,
                )

        return SessionSuccess(trace=self.trace, schema=schema_artifact, api=api_artifact)

    def _stage_failure(
        self,
        stage: SessionStage,
        outcome: CodegenFailure,
        schema: Optional[GeneratedArtifact] = None,
    ) -> SessionFailure:
        return SessionFailure(
            trace=self.trace,
            stage=stage,
            reason=outcome.reason,
            message=outcome.message,
            errors=outcome.errors,
            schema=schema,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialisable snapshot of the session for ``session-state.json``."""
        result: dict[str, Any] = {}
        if isinstance(self.result, SessionFailure):
            result = {
                "ok": False,
                "stage": self.result.stage.value,
                "reason": self.result.reason.value,
                "message": self.result.message,
                "errors": [e.render() for e in self.result.errors],
            }
        elif isinstance(self.result, SessionSuccess):
            result = {"ok": True}
        return {
            "trace": self.trace,
            "project_dir": str(self.project_dir),
            "result": result,
            "schema": self.schema.to_dict() if self.schema is not None else None,
            "api": self.api.to_dict() if self.api is not None else None,
        }
