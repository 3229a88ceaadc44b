"""Command-line entry point: scaffold a schema and API from a description.

Usage::

    python -m backforge.cli description.md --project-dir ./my-api
"""

from __future__ import annotations

import asyncio
import sys
import time
from pathlib import Path
from typing import Optional

from backforge.cancellation import CancelToken
from backforge.codegen.models import (
    CodegenState,
    ProgressEvent,
    SessionFailure,
    SessionResult,
)
from backforge.config import Config, api_key_from_env
from backforge.errors import ConfigurationError
from backforge.factory import build_session
from backforge.utils import (
    console,
    format_duration,
    print_error,
    print_success,
    print_summary_table,
    save_json,
    write_text,
)

_STATE_STYLES: dict[CodegenState, str] = {
    CodegenState.GENERATING: "cyan",
    CodegenState.VALIDATING: "blue",
    CodegenState.ANALYZING: "yellow",
    CodegenState.FIXING: "magenta",
    CodegenState.DONE: "bold green",
    CodegenState.FAILED: "bold red",
}


def print_progress(event: ProgressEvent) -> None:
    """Progress observer printing one line per orchestrator transition."""
    style = _STATE_STYLES.get(event.state, "white")
    line = (
        f"  [{style}]{event.state.value:<10}[/{style}] "
        f"{event.kind.value} attempt {event.attempt_number}"
    )
    if event.error_count:
        line += f" [dim]({event.error_count} error(s))[/dim]"
    if event.detail:
        line += f" [dim]{event.detail}[/dim]"
    console.print(line, highlight=False)


async def scaffold(
    config: Config,
    description: str,
    trace: Optional[str] = None,
    cancel: Optional[CancelToken] = None,
) -> SessionResult:
    """Run one scaffold session and record its state under ``.backforge/``."""
    config.ensure_directories()
    await write_text(config.spec_path, description)

    cancel = cancel if cancel is not None else CancelToken()
    if config.codegen.session_timeout:
        cancel.cancel_after(config.codegen.session_timeout)

    session = build_session(config, observer=print_progress)
    started = time.monotonic()
    result = await session.run(description, trace=trace, cancel=cancel)
    elapsed = time.monotonic() - started

    state = session.to_dict()
    state["duration"] = format_duration(elapsed)
    await save_json(state, config.state_path)

    summary = {
        "Trace": session.trace,
        "Project": str(config.project_dir),
        "Provider": config.ai.provider.value,
        "Schema attempts": str(session.schema.attempt_number if session.schema else 0),
        "API attempts": str(session.api.attempt_number if session.api else 0),
        "Duration": format_duration(elapsed),
    }
    if isinstance(result, SessionFailure):
        summary["Failed stage"] = result.stage.value
        summary["Reason"] = result.reason.value
    print_summary_table(summary, title="Scaffold Summary")
    return result


def main() -> None:
    """CLI entry point for ``python -m backforge.cli``."""
    import argparse

    from backforge.ai.providers import ModelProvider

    parser = argparse.ArgumentParser(
        description="Backforge -- generate a Drizzle schema and Hono API from a description",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  python -m backforge.cli description.md --project-dir ./my-api\n"
            "  python -m backforge.cli description.md -p ./my-api --provider anthropic\n"
            "  python -m backforge.cli description.md -p ./my-api --max-attempts 5 --timeout 600\n"
        ),
    )

    parser.add_argument(
        "description",
        help="Path to a markdown file describing the backend to build",
    )
    parser.add_argument(
        "--project-dir", "-p",
        default=".",
        help="Existing project to generate into (default: current directory)",
    )
    parser.add_argument(
        "--provider",
        choices=[p.value for p in ModelProvider],
        default=None,
        help="Model provider (default: BACKFORGE_PROVIDER or openai)",
    )
    parser.add_argument(
        "--max-attempts",
        type=int,
        default=None,
        help="Attempts allowed per artifact, generation included (default: 3)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Cancel the session after this many seconds",
    )
    parser.add_argument(
        "--trace",
        default=None,
        help="Correlation id for log lines (generated if omitted)",
    )

    args = parser.parse_args()

    desc_path = Path(args.description)
    if not desc_path.exists():
        console.print(f"[bold red]Error:[/bold red] Description file not found: {desc_path}")
        sys.exit(1)

    project_dir = Path(args.project_dir)
    if not project_dir.is_dir():
        console.print(f"[bold red]Error:[/bold red] Project directory not found: {project_dir}")
        sys.exit(1)

    if args.max_attempts is not None and args.max_attempts < 1:
        console.print(f"[bold red]Error:[/bold red] Invalid max attempts: {args.max_attempts} (must be >= 1)")
        sys.exit(1)

    try:
        config = Config.from_env()
    except ConfigurationError as exc:
        console.print(f"[bold red]Configuration error:[/bold red] {exc}")
        sys.exit(1)
    config.project_dir = project_dir
    if args.provider:
        config.ai.provider = ModelProvider(args.provider)
        config.ai.api_key = api_key_from_env(config.ai.provider)
    if args.max_attempts is not None:
        config.codegen.max_schema_attempts = args.max_attempts
        config.codegen.max_api_attempts = args.max_attempts
    if args.timeout is not None:
        config.codegen.session_timeout = args.timeout

    description = desc_path.read_text(encoding="utf-8")
    try:
        result = asyncio.run(scaffold(config, description, trace=args.trace))
    except ConfigurationError as exc:
        console.print(f"[bold red]Configuration error:[/bold red] {exc}")
        sys.exit(1)

    if result.ok:
        print_success(f"Wrote {config.schema_file} and {config.api_file}")
    else:
        print_error(f"Scaffold failed at the {result.stage.value} stage: {result.reason.value}")
        if result.message:
            console.print(f"  {result.message}")
        for err in result.errors:
            console.print(f"  [red]{err.render()}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
