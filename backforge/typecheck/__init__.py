"""TypeScript validation: run the project's checker and parse its output."""

from .parser import normalize_path, parse_tsc_output, rank_errors
from .validator import NoopValidator, TypeScriptValidator

__all__ = [
    "TypeScriptValidator",
    "NoopValidator",
    "parse_tsc_output",
    "normalize_path",
    "rank_errors",
]
