"""Wire a :class:`~backforge.codegen.session.SessionOrchestrator` from config."""

from __future__ import annotations

from typing import Optional

from backforge.ai.client import ModelClient
from backforge.ai.strategies import (
    ApiGenerationStrategy,
    CodeFixStrategy,
    ErrorAnalysisStrategy,
    SchemaGenerationStrategy,
)
from backforge.codegen.actors import CodegenActors, Sink, Validator
from backforge.codegen.orchestrator import ProgressObserver
from backforge.codegen.session import SessionOrchestrator
from backforge.codegen.sinks import FileSystemSink
from backforge.config import Config
from backforge.typecheck.validator import TypeScriptValidator


def build_client(config: Config) -> ModelClient:
    """Model client for the configured provider.

    Raises:
        ConfigurationError: If the provider is unknown or needs a missing API key.
    """
    return ModelClient(
        config.ai.provider,
        api_key=config.ai.api_key,
        base_url=config.ai.base_url,
        timeout=config.ai.timeout,
        temperature=config.ai.temperature,
    )


def build_session(
    config: Config,
    *,
    client: Optional[ModelClient] = None,
    validator: Optional[Validator] = None,
    sink: Optional[Sink] = None,
    observer: Optional[ProgressObserver] = None,
) -> SessionOrchestrator:
    """Build a session using LLM strategies and the TypeScript validator.

    Any of *client*, *validator* or *sink* may be supplied to replace the
    default built from *config*.
    """
    client = client or build_client(config)
    validator = validator or TypeScriptValidator(timeout=config.codegen.typecheck_timeout)
    analysis = ErrorAnalysisStrategy(client)
    fix = CodeFixStrategy(client)

    return SessionOrchestrator(
        schema_actors=CodegenActors(
            generation=SchemaGenerationStrategy(client),
            analysis=analysis,
            fix=fix,
            validator=validator,
            config=config.ai,
        ),
        api_actors=CodegenActors(
            generation=ApiGenerationStrategy(client),
            analysis=analysis,
            fix=fix,
            validator=validator,
            config=config.ai,
        ),
        sink=sink or FileSystemSink(config.project_dir),
        project_dir=config.project_dir,
        schema_path=config.schema_file,
        api_path=config.api_file,
        max_schema_attempts=config.codegen.max_schema_attempts,
        max_api_attempts=config.codegen.max_api_attempts,
        package_manager=config.codegen.package_manager,
        observer=observer,
    )
