"""Prompt templates for the codegen strategies.

Every template is a ``textwrap.dedent`` block formatted with ``str.format``;
literal braces are doubled.  The ``build_*`` helpers fill them in so the
strategies never assemble prompt text themselves.
"""

from __future__ import annotations

import json
import textwrap
from collections.abc import Sequence

from backforge.codegen.models import ErrorInfo

# ---------------------------------------------------------------------------
# System prompts
# ---------------------------------------------------------------------------

SCHEMA_SYSTEM_PROMPT = textwrap.dedent("""\
    You are a world class software engineer and an expert in Drizzle ORM
    with SQLite on Cloudflare D1.

    Follow these rules when writing a schema.ts file:
    - Import table builders from "drizzle-orm/sqlite-core"
    - Export every table as a named constant
    - Use integer primary keys with autoIncrement unless told otherwise
    - Store timestamps as integer columns with mode "timestamp"
    - Declare foreign keys with .references(() => other.id)
    - Declare relations with "relations" from "drizzle-orm" when tables link
    - Do not use Postgres or MySQL only column types
""")

API_SYSTEM_PROMPT = textwrap.dedent("""\
    You are a world class software engineer and an expert in Hono.js and
    Drizzle ORM for Cloudflare Workers.

    Key things to remember when writing Hono APIs for Cloudflare Workers:
    - Environment variables are read from the context (c.env), not process.env
    - For Drizzle with D1, use drizzle(c.env.DB) where DB is a D1Database binding
    - Import the schema with: import * as schema from "./db/schema"
    - Properly handle async/await in request handlers
    - Validate request bodies before inserting them
    - Export the Hono app as the default export

    Here is the database schema the routes must use:

    {schema_source}

    Here is a minimal example of the expected file layout:

    {template_example}
""")

API_TEMPLATE_EXAMPLE = textwrap.dedent("""\
    import { drizzle } from "drizzle-orm/d1";
    import { Hono } from "hono";
    import * as schema from "./db/schema";

    type Bindings = {
      DB: D1Database;
    };

    const app = new Hono<{ Bindings: Bindings }>();

    app.get("/api/users", async (c) => {
      const db = drizzle(c.env.DB);
      const users = await db.select().from(schema.users);
      return c.json({ users });
    });

    export default app;
""")

# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

_ANALYZE_TABLES_PROMPT = textwrap.dedent("""\
    Please analyze this specification and determine the database tables needed:

    {description}

    Respond ONLY with a JSON object (no markdown fencing) with this schema:
    {{
        "reasoning": "why you chose these tables",
        "schemaSpecification": "the detailed table specification as a markdown document"
    }}
""")

_SCHEMA_PROMPT = textwrap.dedent("""\
    Generate Drizzle ORM schema code for the following tables:

    [BEGIN DATA]
    ************
    [specification]:
    {table_specification}
    ************
    [END DATA]

    Return the complete schema.ts file in a single ```typescript code block,
    followed by a short explanation of your design decisions.
""")

_API_PROMPT = textwrap.dedent("""\
    Please generate the api routes file for me, according to the following plan:

    {description}

    Return the complete index.ts file in a single ```typescript code block,
    preceded by your step by step reasoning.
""")

_DEFAULT_API_PLAN = "Create a simple REST API with CRUD operations for all tables in the schema."

# ---------------------------------------------------------------------------
# Analysis and fix
# ---------------------------------------------------------------------------

_ANALYSIS_PROMPT = textwrap.dedent("""\
    I'm trying to create {what} for a Cloudflare Workers project.
    Here's my current {file_name} file:

    {source_text}

    However, I'm getting these TypeScript errors:

    {errors}

    What's causing these errors and how should I fix my {file_name} file?

    Respond ONLY with a JSON object (no markdown fencing) with this schema:
    {{
        "fixable": true/false,
        "details": "step by step instructions for the fix",
        "reason": "why the errors cannot be fixed by editing this file, if not fixable"
    }}
""")

_FIX_PROMPT = textwrap.dedent("""\
    I need you to generate a fixed version of a {file_name} file. The original
    file had TypeScript errors that were analyzed, and I'm providing you with
    the analysis results.

    Here's the original file:

    {source_text}

    Here's the analysis of the errors:

    {details}

    Based on this analysis, generate a corrected {file_name} file that fixes all
    the issues identified. Return only the fixed code in a single ```typescript
    code block.
""")

_TARGETS: dict[str, tuple[str, str]] = {
    "schema": ("a Drizzle ORM schema", "schema.ts"),
    "api": ("a Hono API with Drizzle ORM", "index.ts"),
}


def format_errors(errors: Sequence[ErrorInfo]) -> str:
    """Serialise diagnostics as a JSON list for inclusion in a prompt."""
    return json.dumps(
        [e.model_dump(exclude_defaults=True) for e in errors],
        indent=2,
    )


def build_analyze_tables_prompt(description: str) -> str:
    return _ANALYZE_TABLES_PROMPT.format(description=description.strip())


def build_schema_prompt(table_specification: str) -> str:
    return _SCHEMA_PROMPT.format(table_specification=table_specification.strip())


def build_api_system_prompt(schema_source: str) -> str:
    return API_SYSTEM_PROMPT.format(
        schema_source=schema_source.strip(),
        template_example=API_TEMPLATE_EXAMPLE,
    )


def build_api_prompt(description: str) -> str:
    return _API_PROMPT.format(description=description.strip() or _DEFAULT_API_PLAN)


def build_analysis_prompt(kind: str, source_text: str, errors: Sequence[ErrorInfo]) -> str:
    what, file_name = _TARGETS[kind]
    return _ANALYSIS_PROMPT.format(
        what=what,
        file_name=file_name,
        source_text=source_text,
        errors=format_errors(errors),
    )


def build_fix_prompt(kind: str, source_text: str, details: str) -> str:
    _, file_name = _TARGETS[kind]
    return _FIX_PROMPT.format(file_name=file_name, source_text=source_text, details=details)
