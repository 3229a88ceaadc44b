"""Shared utility functions for Backforge.

Provides async command execution, JSON I/O, file-system helpers, and
Rich-based console reporting.  Every orchestrator and strategy reports
through the module-level :data:`console` so output stays consistent.
"""

from __future__ import annotations

import asyncio
import json
import os
import uuid
from pathlib import Path
from typing import Any, Optional

from rich.console import Console
from rich.rule import Rule
from rich.table import Table

from backforge.cancellation import CancelToken, cancellable
from backforge.errors import (
    ConfigurationError,
    ModelCallError,
    OperationCancelled,
    TypecheckError,
)

console = Console()

# ---------------------------------------------------------------------------
# Async command execution
# ---------------------------------------------------------------------------


async def run_command(
    cmd: str | list[str],
    cwd: str | Path | None = None,
    timeout: int = 120,
    env: dict[str, str] | None = None,
    cancel: Optional[CancelToken] = None,
) -> tuple[int, str, str]:
    """Run a command asynchronously and capture its output.

    Args:
        cmd: Shell command string or list of arguments.
        cwd: Working directory for the child process.
        timeout: Maximum wall-clock seconds before the process is killed.
        env: Optional extra environment variables merged on top of ``os.environ``.
        cancel: Token that kills the process when fired.

    Returns:
        A ``(returncode, stdout, stderr)`` tuple.

    Raises:
        OperationCancelled: If *cancel* fired while the process was running.
    """
    merged_env: dict[str, str] | None = None
    if env:
        merged_env = {**os.environ, **env}

    if cancel is not None:
        cancel.raise_if_cancelled()

    if isinstance(cmd, list):
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd else None,
            env=merged_env,
        )
    else:
        process = await asyncio.create_subprocess_shell(
            cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd else None,
            env=merged_env,
        )

    try:
        stdout_bytes, stderr_bytes = await cancellable(
            asyncio.wait_for(process.communicate(), timeout=timeout), cancel
        )
    except asyncio.TimeoutError:
        _kill(process)
        await process.wait()
        return (
            -1,
            "",
            f"Command timed out after {timeout}s: {cmd if isinstance(cmd, str) else ' '.join(cmd)}",
        )
    except OperationCancelled:
        _kill(process)
        await process.wait()
        raise

    stdout_str = (stdout_bytes or b"").decode("utf-8", errors="replace").strip()
    stderr_str = (stderr_bytes or b"").decode("utf-8", errors="replace").strip()
    return (process.returncode or 0, stdout_str, stderr_str)


def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass


# ---------------------------------------------------------------------------
# JSON / text I/O
# ---------------------------------------------------------------------------


async def save_json(data: dict[str, Any] | list[Any], path: str | Path) -> None:
    """Save data as pretty-printed JSON, creating parent directories."""
    content = json.dumps(data, indent=2, ensure_ascii=False, default=str)
    await write_text(path, content)


async def write_text(path: str | Path, content: str) -> None:
    """Write *content* to *path* in a thread-pool executor.

    Parent directories are created automatically.
    """
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, file_path.write_text, content, "utf-8")


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string.

    Examples::

        format_duration(3.7)    -> "3.7s"
        format_duration(65.2)   -> "1m 5s"
        format_duration(3661.0) -> "1h 1m 1s"
    """
    if seconds < 0:
        return "0.0s"

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = seconds % 60

    parts: list[str] = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")

    if hours > 0 or minutes > 0:
        parts.append(f"{int(secs)}s")
    else:
        parts.append(f"{secs:.1f}s")

    return " ".join(parts)


def new_trace_id() -> str:
    """Return a fresh correlation id for one scaffold session."""
    return uuid.uuid4().hex[:12]


def truncate(text: str, max_len: int = 200) -> str:
    """Truncate text to *max_len* characters, appending an ellipsis if clipped."""
    if len(text) <= max_len:
        return text
    return text[:max_len] + "..."


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

LOG_STYLES: dict[str, str] = {
    "debug": "dim",
    "info": "cyan",
    "warn": "yellow",
    "error": "bold red",
}


def log(level: str, message: str, *, trace: str = "", **fields: Any) -> None:
    """Print a levelled, trace-tagged log line.

    Extra keyword arguments are rendered as ``key=value`` pairs after the
    message.  Unknown levels render unstyled.
    """
    style = LOG_STYLES.get(level, "")
    prefix = f"[{trace}] " if trace else ""
    extras = " ".join(f"{key}={value}" for key, value in fields.items() if value is not None)
    line = f"{prefix}{message}" + (f" ({extras})" if extras else "")
    if style:
        console.print(f"[{style}]{level.upper():<5}[/{style}] {line}", highlight=False)
    else:
        console.print(f"{level.upper():<5} {line}", highlight=False)


def categorize_error(error: BaseException) -> dict[str, str]:
    """Classify an exception for failure reporting.

    Returns:
        A mapping with ``category``, ``level``, ``code`` and ``user_message``.
    """
    if isinstance(error, OperationCancelled):
        return {
            "category": "cancellation",
            "level": "warn",
            "code": "CANCELLED",
            "user_message": "The operation was cancelled",
        }
    if isinstance(error, ConfigurationError):
        return {
            "category": "configuration",
            "level": "error",
            "code": "CONFIGURATION_ERROR",
            "user_message": "Service configuration error",
        }
    if isinstance(error, ModelCallError):
        return {
            "category": "provider",
            "level": "error",
            "code": "AI_PROVIDER_ERROR",
            "user_message": "Could not reach the AI provider",
        }
    if isinstance(error, TypecheckError):
        return {
            "category": "typecheck",
            "level": "error",
            "code": "TYPECHECK_ERROR",
            "user_message": "The type checker could not be run",
        }
    if isinstance(error, (ValueError, TypeError)):
        return {
            "category": "response",
            "level": "error",
            "code": "RESPONSE_ERROR",
            "user_message": "Failed to process AI response",
        }
    if isinstance(error, OSError):
        return {
            "category": "filesystem",
            "level": "error",
            "code": "IO_ERROR",
            "user_message": "A file system operation failed",
        }
    return {
        "category": "unknown",
        "level": "error",
        "code": "UNKNOWN_ERROR",
        "user_message": "An unexpected error occurred",
    }


# ---------------------------------------------------------------------------
# Rich output helpers
# ---------------------------------------------------------------------------


STAGE_COLORS: dict[str, str] = {
    "schema": "bright_cyan",
    "api": "bright_green",
    "persistence": "bright_blue",
}


def print_stage_header(stage: str, title: str) -> None:
    """Print a full-width rule announcing a session stage."""
    color = STAGE_COLORS.get(stage, "white")
    console.print()
    console.print(Rule(f"[bold {color}] {title} [/bold {color}]", style=color))
    console.print()


def print_summary_table(data: dict[str, str], title: str = "Summary") -> None:
    """Print a two-column key/value summary table."""
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Item", style="dim", no_wrap=True)
    table.add_column("Value")

    for key, value in data.items():
        table.add_row(key, str(value))

    console.print(table)
    console.print()


def print_success(message: str) -> None:
    """Print a green success message."""
    console.print(f"[bold green]{message}[/bold green]")


def print_error(message: str) -> None:
    """Print a red error message."""
    console.print(f"[bold red]{message}[/bold red]")


def print_warning(message: str) -> None:
    """Print a yellow warning message."""
    console.print(f"[bold yellow]{message}[/bold yellow]")
