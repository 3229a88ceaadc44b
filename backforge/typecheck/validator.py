"""Type-check candidate sources against a real project without touching it.

:class:`TypeScriptValidator` copies the project into a scratch directory
(``node_modules`` is linked, not copied), writes the candidate source and
any overlays at their relative paths, runs the project's ``typecheck``
script through the package manager, and returns every error the checker
reported, those in the candidate file first.  A non-zero exit never comes
back as an empty list.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional

from backforge.cancellation import CancelToken
from backforge.codegen.models import ErrorInfo, ProjectContext
from backforge.errors import TypecheckError
from backforge.typecheck.parser import parse_tsc_output, rank_errors
from backforge.utils import log, run_command

# Directories never copied into the scratch workspace.
_IGNORED_DIRS: tuple[str, ...] = (
    "node_modules",
    ".git",
    ".wrangler",
    ".backforge",
    "dist",
)


class TypeScriptValidator:
    """Runs ``<package manager> run typecheck`` over a scratch copy of a project.

    Parameters
    ----------
    timeout:
        Seconds before the checker process is killed.
    script:
        Name of the package.json script that runs ``tsc --noEmit``.
    """

    def __init__(self, timeout: int = 180, script: str = "typecheck") -> None:
        self.timeout = timeout
        self.script = script

    async def validate(
        self,
        source_text: str,
        project_context: ProjectContext,
        cancel: CancelToken,
    ) -> list[ErrorInfo]:
        project_dir = Path(project_context.project_dir)
        if not project_dir.is_dir():
            raise TypecheckError(f"Directory to project does not exist: {project_dir}")
        cancel.raise_if_cancelled()

        with tempfile.TemporaryDirectory(prefix="backforge-typecheck-") as scratch:
            workspace = Path(scratch) / "project"
            await asyncio.get_running_loop().run_in_executor(
                None, _materialize, project_dir, workspace
            )
            for relative, text in project_context.overlays.items():
                _write(workspace, relative, text)
            _write(workspace, project_context.target_path, source_text)

            cmd = [project_context.package_manager, "run", self.script]
            returncode, stdout, stderr = await run_command(
                cmd, cwd=workspace, timeout=self.timeout, cancel=cancel
            )

        output = "\n".join(part for part in (stdout, stderr) if part)
        if returncode == -1 and "timed out" in stderr:
            raise TypecheckError(stderr, output=output)

        diagnostics = parse_tsc_output(output)
        errors = rank_errors(diagnostics, project_context.target_path)
        if returncode != 0 and not errors:
            raise TypecheckError(
                f"'{' '.join(cmd)}' exited with code {returncode} without error diagnostics",
                output=output,
            )

        log(
            "debug",
            f"Type check of {project_context.target_path} found {len(errors)} error(s)",
        )
        return errors


def _materialize(project_dir: Path, workspace: Path) -> None:
    shutil.copytree(project_dir, workspace, ignore=shutil.ignore_patterns(*_IGNORED_DIRS))
    modules = project_dir / "node_modules"
    if modules.is_dir():
        os.symlink(modules.resolve(), workspace / "node_modules", target_is_directory=True)


def _write(workspace: Path, relative: str, text: str) -> None:
    target = workspace / relative
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(text, encoding="utf-8")


class NoopValidator:
    """Accepts every source.  Useful where no TypeScript toolchain exists."""

    async def validate(
        self,
        source_text: str,
        project_context: ProjectContext,
        cancel: Optional[CancelToken] = None,
    ) -> list[ErrorInfo]:
        return []
