"""Unit tests for session wiring (backforge.factory)."""

from __future__ import annotations

import pytest

from backforge.ai.strategies import (
    ApiGenerationStrategy,
    CodeFixStrategy,
    ErrorAnalysisStrategy,
    SchemaGenerationStrategy,
)
from backforge.codegen.doubles import MemorySink, ScriptedValidator
from backforge.codegen.sinks import FileSystemSink
from backforge.config import AiConfig, CodegenConfig, Config
from backforge.errors import ConfigurationError
from backforge.factory import build_client, build_session
from backforge.typecheck.validator import TypeScriptValidator


class TestBuildClient:
    @pytest.mark.unit
    def test_uses_ai_settings(self, tmp_path):
        config = Config(
            project_dir=tmp_path,
            ai=AiConfig(provider="ollama", base_url="http://gpu:11434/", timeout=45),
        )
        client = build_client(config)
        assert client.provider_name == "ollama"
        assert client.base_url == "http://gpu:11434"
        assert client.timeout == 45

    @pytest.mark.unit
    def test_missing_key_raises(self, tmp_path):
        with pytest.raises(ConfigurationError):
            build_client(Config(project_dir=tmp_path))


class TestBuildSession:
    @pytest.mark.unit
    def test_defaults(self, sample_config: Config):
        session = build_session(sample_config)

        assert isinstance(session.sink, FileSystemSink)
        assert session.sink.root == sample_config.project_dir.resolve()
        assert isinstance(session.schema_actors.generation, SchemaGenerationStrategy)
        assert isinstance(session.api_actors.generation, ApiGenerationStrategy)
        assert isinstance(session.schema_actors.analysis, ErrorAnalysisStrategy)
        assert isinstance(session.api_actors.fix, CodeFixStrategy)
        assert isinstance(session.schema_actors.validator, TypeScriptValidator)
        assert session.schema_actors.validator.timeout == sample_config.codegen.typecheck_timeout
        assert session.schema_actors.config is sample_config.ai
        assert session.schema_path == "src/db/schema.ts"
        assert session.api_path == "src/index.ts"

    @pytest.mark.unit
    def test_overrides_and_limits(self, tmp_path):
        config = Config(
            project_dir=tmp_path,
            ai=AiConfig(provider="ollama"),
            codegen=CodegenConfig(max_schema_attempts=2, max_api_attempts=4, package_manager="pnpm"),
        )
        sink = MemorySink()
        validator = ScriptedValidator([[]])

        session = build_session(config, validator=validator, sink=sink)

        assert session.sink is sink
        assert session.api_actors.validator is validator
        assert session.max_schema_attempts == 2
        assert session.max_api_attempts == 4
        assert session.package_manager == "pnpm"
