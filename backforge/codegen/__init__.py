"""Backforge -- code-generation core.

Bounded generate -> validate -> analyze -> fix loops per artifact, and the
session that chains the schema and API loops before persisting both.

Public API
----------
.. autoclass:: CodegenOrchestrator
.. autoclass:: SessionOrchestrator
.. autoclass:: CodegenActors
.. autoclass:: FileSystemSink
"""

from .actors import (
    AnalysisStrategy,
    CodegenActors,
    FixStrategy,
    GenerationStrategy,
    Sink,
    Validator,
)
from .models import (
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
    SessionFailure,
    SessionResult,
    SessionStage,
    SessionSuccess,
    Specification,
)
from .orchestrator import CodegenOrchestrator
from .session import SessionOrchestrator
from .sinks import FileSystemSink

__all__ = [
    # Contracts
    "GenerationStrategy",
    "AnalysisStrategy",
    "FixStrategy",
    "Validator",
    "Sink",
    "CodegenActors",
    # Data model
    "ArtifactKind",
    "Specification",
    "GeneratedArtifact",
    "ErrorInfo",
    "FixPlan",
    "ProjectContext",
    "AttemptOutcome",
    "AttemptRecord",
    "CodegenState",
    "CodegenSuccess",
    "CodegenFailure",
    "CodegenOutcome",
    "FailureReason",
    "ProgressEvent",
    "SessionStage",
    "SessionSuccess",
    "SessionFailure",
    "SessionResult",
    # Orchestration
    "CodegenOrchestrator",
    "SessionOrchestrator",
    "FileSystemSink",
]
