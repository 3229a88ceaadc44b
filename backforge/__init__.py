"""Backforge -- AI-assisted backend scaffolding.

Generates a Drizzle database schema and Hono API routes for a project
description, type-checks each artifact, and repairs it through a bounded
generate -> validate -> analyze -> fix loop.
"""

__version__ = "0.1.0"
