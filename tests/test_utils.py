"""Unit tests for utility functions (backforge.utils).

Tests cover:
- run_command (success, failure, timeout, list vs string, env vars, cancellation)
- save_json / write_text (use tmp_path)
- format_duration / truncate / new_trace_id
- log and categorize_error
- Rich output helpers (print_stage_header, print_summary_table, etc.)
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from backforge.cancellation import CancelToken
from backforge.errors import (
    ConfigurationError,
    ModelCallError,
    OperationCancelled,
    TypecheckError,
)
from backforge.utils import (
    STAGE_COLORS,
    categorize_error,
    format_duration,
    log,
    new_trace_id,
    print_error,
    print_stage_header,
    print_success,
    print_summary_table,
    print_warning,
    run_command,
    save_json,
    truncate,
    write_text,
)


# ---------------------------------------------------------------------------
# run_command
# ---------------------------------------------------------------------------


class TestRunCommand:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_successful_command_list(self):
        returncode, stdout, stderr = await run_command(["echo", "hello"])
        assert returncode == 0
        assert "hello" in stdout

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_successful_command_string(self):
        returncode, stdout, stderr = await run_command("echo hello")
        assert returncode == 0
        assert "hello" in stdout

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failed_command(self):
        returncode, stdout, stderr = await run_command(
            [sys.executable, "-c", "import sys; sys.exit(2)"]
        )
        assert returncode == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_command_with_cwd(self, tmp_path: Path):
        returncode, stdout, stderr = await run_command(
            [sys.executable, "-c", "import os; print(os.getcwd())"], cwd=tmp_path
        )
        assert returncode == 0
        assert Path(stdout).resolve() == tmp_path.resolve()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_command_timeout(self):
        returncode, stdout, stderr = await run_command(
            [sys.executable, "-c", "import time; time.sleep(30)"], timeout=1
        )
        assert returncode == -1
        assert "timed out after 1s" in stderr

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_command_with_env(self):
        returncode, stdout, stderr = await run_command(
            [sys.executable, "-c", "import os; print(os.environ['BACKFORGE_TEST_VAR'])"],
            env={"BACKFORGE_TEST_VAR": "drizzle"},
        )
        assert returncode == 0
        assert stdout == "drizzle"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_command_returns_stderr(self):
        returncode, stdout, stderr = await run_command(
            [sys.executable, "-c", "import sys; sys.stderr.write('tsc failed')"]
        )
        assert stderr == "tsc failed"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_prefired_token_raises_before_spawning(self):
        token = CancelToken()
        token.cancel("stop")
        with patch("asyncio.create_subprocess_exec") as mock_exec:
            with pytest.raises(OperationCancelled):
                await run_command(["echo", "hi"], cancel=token)
        mock_exec.assert_not_called()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_cancel_kills_running_process(self):
        token = CancelToken()
        token.cancel_after(0.2)
        loop = asyncio.get_running_loop()
        started = loop.time()

        with pytest.raises(OperationCancelled):
            await run_command(
                [sys.executable, "-c", "import time; time.sleep(30)"], timeout=60, cancel=token
            )
        assert loop.time() - started < 10


# ---------------------------------------------------------------------------
# JSON / text I/O
# ---------------------------------------------------------------------------


class TestJsonIO:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_save_json_creates_parents(self, tmp_path: Path):
        path = tmp_path / ".backforge" / "nested" / "state.json"
        await save_json({"stages": ["schema", "api"]}, path)
        assert json.loads(path.read_text(encoding="utf-8")) == {"stages": ["schema", "api"]}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_save_json_pretty_printed_and_stringifies(self, tmp_path: Path):
        path = tmp_path / "state.json"
        await save_json({"project_dir": tmp_path}, path)
        content = path.read_text(encoding="utf-8")
        assert "\n  " in content
        assert json.loads(content)["project_dir"] == str(tmp_path)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_write_text(self, tmp_path: Path):
        path = tmp_path / "src" / "db" / "schema.ts"
        await write_text(path, "export {};\n")
        assert path.read_text(encoding="utf-8") == "export {};\n"


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


class TestFormatDuration:
    @pytest.mark.unit
    def test_seconds_only(self):
        assert format_duration(3.7) == "3.7s"

    @pytest.mark.unit
    def test_minutes_and_seconds(self):
        assert format_duration(65.2) == "1m 5s"

    @pytest.mark.unit
    def test_hours_minutes_seconds(self):
        assert format_duration(3661.0) == "1h 1m 1s"

    @pytest.mark.unit
    def test_negative(self):
        assert format_duration(-4) == "0.0s"


class TestTruncate:
    @pytest.mark.unit
    def test_short_text_unchanged(self):
        assert truncate("abc", 10) == "abc"

    @pytest.mark.unit
    def test_long_text_clipped(self):
        assert truncate("a" * 20, 5) == "aaaaa..."


class TestTraceId:
    @pytest.mark.unit
    def test_shape_and_uniqueness(self):
        first, second = new_trace_id(), new_trace_id()
        assert len(first) == 12
        assert first != second
        int(first, 16)


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


class TestLog:
    @pytest.mark.unit
    def test_trace_and_fields_rendered(self):
        with patch("backforge.utils.console") as mock_console:
            log("info", "Generated schema", trace="abc123", attempt=2, errors=None)

        line = mock_console.print.call_args[0][0]
        assert "INFO" in line
        assert "[abc123] Generated schema" in line
        assert "attempt=2" in line
        assert "errors" not in line

    @pytest.mark.unit
    def test_unknown_level_is_unstyled(self):
        with patch("backforge.utils.console") as mock_console:
            log("trace", "hello")
        assert mock_console.print.call_args[0][0].startswith("TRACE")


class TestCategorizeError:
    @pytest.mark.unit
    @pytest.mark.parametrize(
        "error, code",
        [
            (OperationCancelled("stop"), "CANCELLED"),
            (ConfigurationError("no key"), "CONFIGURATION_ERROR"),
            (ModelCallError("HTTP 500", "openai", "gpt-4o"), "AI_PROVIDER_ERROR"),
            (TypecheckError("tsc missing"), "TYPECHECK_ERROR"),
            (ValueError("bad json"), "RESPONSE_ERROR"),
            (PermissionError("denied"), "IO_ERROR"),
            (RuntimeError("boom"), "UNKNOWN_ERROR"),
        ],
    )
    def test_codes(self, error: BaseException, code: str):
        result = categorize_error(error)
        assert result["code"] == code
        assert set(result) == {"category", "level", "code", "user_message"}

    @pytest.mark.unit
    def test_cancellation_is_a_warning(self):
        assert categorize_error(OperationCancelled("stop"))["level"] == "warn"


# ---------------------------------------------------------------------------
# Rich output helpers (smoke tests - verify they don't raise)
# ---------------------------------------------------------------------------


class TestRichOutputHelpers:
    @pytest.mark.unit
    def test_stage_colors(self):
        assert set(STAGE_COLORS) == {"schema", "api", "persistence"}

    @pytest.mark.unit
    def test_print_stage_header(self):
        print_stage_header("schema", "SCHEMA")
        print_stage_header("unknown", "OTHER")

    @pytest.mark.unit
    def test_print_summary_table(self):
        print_summary_table({"Status": "success", "Attempts": "2"}, title="Session")

    @pytest.mark.unit
    def test_print_success(self):
        print_success("Schema written")

    @pytest.mark.unit
    def test_print_error(self):
        print_error("Type check failed")

    @pytest.mark.unit
    def test_print_warning(self):
        print_warning("Check your config")
