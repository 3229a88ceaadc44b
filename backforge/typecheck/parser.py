"""Parse ``tsc`` output into :class:`~backforge.codegen.models.ErrorInfo` lists.

Handles the non-pretty compiler format::

    src/index.ts(5,10): error TS2551: Property 'foo' does not exist on type 'Bar'.
      Did you mean 'food'?

Indented lines continue the previous diagnostic.  Summary lines (``Found 3
errors``) and package-manager script echoes (``> tsc --noEmit``) are
skipped.  Diagnostics are returned in the order the compiler printed them.
"""

from __future__ import annotations

import re
from pathlib import PurePosixPath

from backforge.codegen.models import ErrorInfo

_LOCATED = re.compile(
    r"^(?P<file>[^(]+)\((?P<line>\d+),(?P<column>\d+)\): "
    r"(?P<severity>error|warning) (?P<code>TS\d+): (?P<message>.+)$"
)
_UNLOCATED = re.compile(r"error (?P<code>TS\d+): (?P<message>.+)$")
_SUMMARY = re.compile(r"^Found \d+ errors?")


def parse_tsc_output(output: str) -> list[ErrorInfo]:
    """Return every diagnostic in *output*, in source order."""
    errors: list[ErrorInfo] = []
    pending: dict[str, object] | None = None

    def flush() -> None:
        nonlocal pending
        if pending is not None:
            errors.append(ErrorInfo(**pending))  # type: ignore[arg-type]
            pending = None

    for raw in output.splitlines():
        line = raw.rstrip()
        if not line.strip():
            continue
        if raw.startswith("  "):
            if pending is not None:
                pending["message"] = f"{pending['message']}\n{line.strip()}"
            continue
        if _SUMMARY.match(line) or line.startswith("> "):
            continue

        located = _LOCATED.match(line)
        if located:
            flush()
            pending = {
                "file_path": normalize_path(located.group("file")),
                "line": int(located.group("line")),
                "column": int(located.group("column")),
                "severity": located.group("severity"),
                "code": located.group("code"),
                "message": located.group("message").strip(),
            }
            continue

        unlocated = _UNLOCATED.search(line)
        if unlocated:
            flush()
            pending = {
                "severity": "error",
                "code": unlocated.group("code"),
                "message": unlocated.group("message").strip(),
            }
            continue

        # Anything else (npm ERR! lines, lifecycle noise) is not a diagnostic.
        flush()

    flush()
    return errors


def normalize_path(path: str) -> str:
    """Turn a checker-reported path into a ``/``-separated relative path."""
    cleaned = path.strip().replace("\\", "/")
    while cleaned.startswith("./"):
        cleaned = cleaned[2:]
    return str(PurePosixPath(cleaned))


def _reported_in(error: ErrorInfo, target: str) -> bool:
    return bool(error.file_path) and (
        error.file_path == target or error.file_path.endswith("/" + target)
    )


def rank_errors(errors: list[ErrorInfo], target_path: str) -> list[ErrorInfo]:
    """Error-severity diagnostics, those in *target_path* first.

    Diagnostics in other files follow, then location-less ones.  Order is
    otherwise preserved.  Warnings are dropped: they never fail ``tsc``.
    """
    failing = [e for e in errors if e.severity == "error"]
    target = normalize_path(target_path)
    in_target = [e for e in failing if _reported_in(e, target)]
    located = [e for e in failing if e.file_path and not _reported_in(e, target)]
    unlocated = [e for e in failing if not e.file_path]
    return in_target + located + unlocated
