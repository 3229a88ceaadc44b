"""Unit tests for the command-line entry point (backforge.cli).

Tests cover:
- scaffold(): description and state files, session wiring, failures
- print_progress observer
- main() argument validation and exit codes
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from backforge.cli import main, print_progress, scaffold
from backforge.codegen.doubles import MemorySink, error
from backforge.codegen.models import (
    ArtifactKind,
    CodegenState,
    FailureReason,
    ProgressEvent,
    SessionFailure,
    SessionStage,
    SessionSuccess,
)
from backforge.codegen.session import SessionOrchestrator
from backforge.config import Config
from backforge.errors import ConfigurationError


def _session_builder(schema_actors, api_actors, sink):
    """``build_session`` replacement that wires scripted actors."""

    def _build(config: Config, **kwargs):
        return SessionOrchestrator(
            schema_actors,
            api_actors,
            sink,
            config.project_dir,
            observer=kwargs.get("observer"),
        )

    return _build


class TestScaffold:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_success_writes_state(
        self, sample_config: Config, make_actors, schema_artifact, api_artifact
    ):
        sink = MemorySink()
        builder = _session_builder(
            make_actors(generate=[schema_artifact], validate=[[]]),
            make_actors(generate=[api_artifact], validate=[[]]),
            sink,
        )
        with patch("backforge.cli.build_session", side_effect=builder):
            result = await scaffold(sample_config, "A bookmarking API", trace="cli-1")

        assert isinstance(result, SessionSuccess)
        assert sample_config.spec_path.read_text(encoding="utf-8") == "A bookmarking API"
        state = json.loads(sample_config.state_path.read_text(encoding="utf-8"))
        assert state["trace"] == "cli-1"
        assert state["result"] == {"ok": True}
        assert "duration" in state
        assert set(sink.files) == {"src/db/schema.ts", "src/index.ts"}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failure_is_recorded(self, sample_config: Config, make_actors, schema_artifact):
        failing_schema = make_actors(
            generate=[schema_artifact],
            validate=[[error(file_path="src/db/schema.ts")]],
            analyze=[None],
        )
        builder = _session_builder(failing_schema, make_actors(generate=[None], validate=[[]]), MemorySink())
        with patch("backforge.cli.build_session", side_effect=builder):
            result = await scaffold(sample_config, "desc")

        assert isinstance(result, SessionFailure)
        assert result.stage is SessionStage.SCHEMA
        assert result.reason is FailureReason.UNFIXABLE
        state = json.loads(sample_config.state_path.read_text(encoding="utf-8"))
        assert state["result"]["stage"] == "schema"
        assert state["api"] is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_session_timeout_cancels(self, sample_config: Config, make_actors):
        from backforge.codegen.doubles import PENDING

        sample_config.codegen.session_timeout = 0.05
        builder = _session_builder(
            make_actors(generate=[PENDING], validate=[[]]),
            make_actors(generate=[None], validate=[[]]),
            MemorySink(),
        )
        with patch("backforge.cli.build_session", side_effect=builder):
            result = await scaffold(sample_config, "desc")

        assert result.ok is False
        assert result.reason is FailureReason.CANCELLED


class TestPrintProgress:
    @pytest.mark.unit
    def test_renders_event(self):
        event = ProgressEvent(
            trace="t",
            kind=ArtifactKind.API,
            state=CodegenState.ANALYZING,
            attempt_number=2,
            error_count=3,
            detail="src/index.ts",
        )
        with patch("backforge.cli.console") as mock_console:
            print_progress(event)

        line = mock_console.print.call_args[0][0]
        assert "analyzing" in line
        assert "api attempt 2" in line
        assert "3 error(s)" in line


class TestMain:
    @pytest.mark.unit
    def test_missing_description_exits(self, tmp_path: Path):
        argv = ["backforge", str(tmp_path / "nope.md"), "-p", str(tmp_path)]
        with patch.object(sys, "argv", argv):
            with pytest.raises(SystemExit) as excinfo:
                main()
        assert excinfo.value.code == 1

    @pytest.mark.unit
    def test_missing_project_dir_exits(self, tmp_path: Path):
        desc = tmp_path / "desc.md"
        desc.write_text("x", encoding="utf-8")
        argv = ["backforge", str(desc), "-p", str(tmp_path / "missing")]
        with patch.object(sys, "argv", argv):
            with pytest.raises(SystemExit) as excinfo:
                main()
        assert excinfo.value.code == 1

    @pytest.mark.unit
    def test_invalid_max_attempts_exits(self, tmp_path: Path):
        desc = tmp_path / "desc.md"
        desc.write_text("x", encoding="utf-8")
        argv = ["backforge", str(desc), "-p", str(tmp_path), "--max-attempts", "0"]
        with patch.object(sys, "argv", argv):
            with pytest.raises(SystemExit) as excinfo:
                main()
        assert excinfo.value.code == 1

    @pytest.mark.unit
    def test_configuration_error_exits(self, tmp_path: Path):
        desc = tmp_path / "desc.md"
        desc.write_text("x", encoding="utf-8")
        argv = ["backforge", str(desc), "-p", str(tmp_path)]
        mock_scaffold = AsyncMock(side_effect=ConfigurationError("API key required"))
        with patch.object(sys, "argv", argv), patch("backforge.cli.scaffold", new=mock_scaffold):
            with pytest.raises(SystemExit) as excinfo:
                main()
        assert excinfo.value.code == 1

    @pytest.mark.unit
    def test_unknown_env_provider_exits(self, tmp_path: Path):
        desc = tmp_path / "desc.md"
        desc.write_text("x", encoding="utf-8")
        argv = ["backforge", str(desc), "-p", str(tmp_path)]
        mock_scaffold = AsyncMock()
        with patch.object(sys, "argv", argv), patch("backforge.cli.scaffold", new=mock_scaffold):
            with patch.dict(os.environ, {"BACKFORGE_PROVIDER": "mistral"}, clear=True):
                with pytest.raises(SystemExit) as excinfo:
                    main()
        assert excinfo.value.code == 1
        mock_scaffold.assert_not_called()

    @pytest.mark.unit
    def test_arguments_reach_config(self, tmp_path: Path, schema_artifact, api_artifact):
        desc = tmp_path / "desc.md"
        desc.write_text("A todo API", encoding="utf-8")
        argv = [
            "backforge", str(desc), "-p", str(tmp_path),
            "--provider", "ollama", "--max-attempts", "5", "--timeout", "60", "--trace", "abc",
        ]
        success = SessionSuccess(trace="abc", schema=schema_artifact, api=api_artifact)
        mock_scaffold = AsyncMock(return_value=success)
        with patch.object(sys, "argv", argv), patch("backforge.cli.scaffold", new=mock_scaffold):
            main()

        config, description = mock_scaffold.call_args[0]
        assert description == "A todo API"
        assert config.project_dir == tmp_path
        assert config.ai.provider.value == "ollama"
        assert config.codegen.max_schema_attempts == 5
        assert config.codegen.max_api_attempts == 5
        assert config.codegen.session_timeout == 60.0
        assert mock_scaffold.call_args[1]["trace"] == "abc"

    @pytest.mark.unit
    def test_failed_session_exits(self, tmp_path: Path):
        desc = tmp_path / "desc.md"
        desc.write_text("x", encoding="utf-8")
        argv = ["backforge", str(desc), "-p", str(tmp_path)]
        failure = SessionFailure(
            trace="t",
            stage=SessionStage.API,
            reason=FailureReason.EXHAUSTED_RETRIES,
            errors=(error(),),
        )
        with patch.object(sys, "argv", argv), patch(
            "backforge.cli.scaffold", new=AsyncMock(return_value=failure)
        ):
            with pytest.raises(SystemExit) as excinfo:
                main()
        assert excinfo.value.code == 1
