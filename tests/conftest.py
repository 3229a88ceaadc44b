"""Shared pytest fixtures for the Backforge test suite.

Provides reusable fixtures for:
- Temporary project directories laid out like a Hono + Drizzle worker
- Sample schema and API artifacts
- TypeScript diagnostics and raw ``tsc`` output
- Scripted actor bundles for driving orchestrators
- Mocked httpx clients for provider calls
"""

from __future__ import annotations

import json
import textwrap
from pathlib import Path
from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from backforge.codegen.actors import CodegenActors
from backforge.codegen.doubles import (
    ScriptedAnalysis,
    ScriptedFix,
    ScriptedGeneration,
    ScriptedValidator,
)
from backforge.codegen.models import ArtifactKind, ErrorInfo, FixPlan, GeneratedArtifact, ProjectContext
from backforge.config import AiConfig, Config


# ---------------------------------------------------------------------------
# Paths & Directories
# ---------------------------------------------------------------------------

@pytest.fixture
def tmp_project_dir(tmp_path: Path) -> Path:
    """Minimal worker project with a typecheck script (auto-cleanup)."""
    project_dir = tmp_path / "test-project"
    (project_dir / "src" / "db").mkdir(parents=True)
    (project_dir / "package.json").write_text(
        json.dumps({"name": "test-project", "scripts": {"typecheck": "tsc --noEmit"}}, indent=2),
        encoding="utf-8",
    )
    (project_dir / "tsconfig.json").write_text('{"compilerOptions": {"strict": true}}', encoding="utf-8")
    (project_dir / "src" / "index.ts").write_text("export default {};\n", encoding="utf-8")
    yield project_dir


@pytest.fixture
def sample_config(tmp_project_dir: Path) -> Config:
    """A ``Config`` pointing at the temporary project."""
    return Config(project_dir=tmp_project_dir, ai=AiConfig(api_key="sk-test"))


# ---------------------------------------------------------------------------
# Artifacts & diagnostics
# ---------------------------------------------------------------------------

SCHEMA_SOURCE = textwrap.dedent("""\
    import { integer, sqliteTable, text } from "drizzle-orm/sqlite-core";

    export const users = sqliteTable("users", {
      id: integer("id", { mode: "number" }).primaryKey({ autoIncrement: true }),
      name: text("name").notNull(),
      email: text("email").notNull(),
    });
""")

API_SOURCE = textwrap.dedent("""\
    import { drizzle } from "drizzle-orm/d1";
    import { Hono } from "hono";
    import * as schema from "./db/schema";

    type Bindings = { DB: D1Database };

    const app = new Hono<{ Bindings: Bindings }>();

    app.get("/api/users", async (c) => {
      const db = drizzle(c.env.DB);
      return c.json({ users: await db.select().from(schema.users) });
    });

    export default app;
""")


@pytest.fixture
def schema_artifact() -> GeneratedArtifact:
    return GeneratedArtifact(source_text=SCHEMA_SOURCE, kind=ArtifactKind.SCHEMA)


@pytest.fixture
def api_artifact() -> GeneratedArtifact:
    return GeneratedArtifact(source_text=API_SOURCE, kind=ArtifactKind.API)


@pytest.fixture
def ts_error() -> ErrorInfo:
    return ErrorInfo(
        message="Property 'emial' does not exist on type 'User'.",
        file_path="src/db/schema.ts",
        line=5,
        column=10,
        code="TS2551",
    )


@pytest.fixture
def fixable_plan() -> FixPlan:
    return FixPlan.fixable("Rename 'emial' to 'email'.")


@pytest.fixture
def schema_context(tmp_project_dir: Path) -> ProjectContext:
    return ProjectContext(project_dir=tmp_project_dir, target_path="src/db/schema.ts")


@pytest.fixture
def sample_tsc_output() -> str:
    """Raw output of ``npm run typecheck`` with two errors and a continuation line."""
    return textwrap.dedent("""\

        > test-project@0.0.0 typecheck
        > tsc --noEmit

        src/index.ts(12,7): error TS2339: Property 'emial' does not exist on type 'User'.
          Did you mean 'email'?
        src/db/schema.ts(3,1): error TS2304: Cannot find name 'sqliteTabel'.

        Found 2 errors in 2 files.
    """)


# ---------------------------------------------------------------------------
# Scripted actors
# ---------------------------------------------------------------------------

@pytest.fixture
def make_actors() -> Callable[..., CodegenActors]:
    """Factory building a ``CodegenActors`` bundle from response scripts.

    Usage::

        actors = make_actors(generate=[artifact], validate=[[]])
    """

    def _make(
        generate: list[Any],
        validate: list[Any],
        analyze: list[Any] | None = None,
        fix: list[Any] | None = None,
        config: Any = None,
    ) -> CodegenActors:
        return CodegenActors(
            generation=ScriptedGeneration(generate),
            analysis=ScriptedAnalysis(analyze or [None]),
            fix=ScriptedFix(fix or [None]),
            validator=ScriptedValidator(validate),
            config=config,
        )

    return _make


# ---------------------------------------------------------------------------
# Mocked HTTP
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_http_client() -> Callable[..., AsyncMock]:
    """Factory for an ``httpx.AsyncClient`` stand-in whose ``post`` returns *data*.

    Pass ``side_effect`` instead to make ``post`` raise.
    """

    def _make(data: dict[str, Any] | None = None, side_effect: Any = None) -> AsyncMock:
        mock_response = MagicMock()
        mock_response.json.return_value = data or {}
        mock_response.raise_for_status = MagicMock()

        mock_client = AsyncMock()
        if side_effect is not None:
            mock_client.post = AsyncMock(side_effect=side_effect)
        else:
            mock_client.post = AsyncMock(return_value=mock_response)
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=False)
        return mock_client

    return _make
