"""Backforge configuration.

Centralised, typed configuration for a scaffold session. All settings use
Pydantic v2 models so they can be validated at construction time and
serialised to/from JSON or environment variables without boiler-plate.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from backforge.ai.providers import ModelProvider
from backforge.errors import ConfigurationError

PackageManager = Literal["npm", "yarn", "pnpm", "bun"]

PACKAGE_MANAGERS: tuple[str, ...] = ("npm", "yarn", "pnpm", "bun")

# Environment variables consulted for the API key when BACKFORGE_API_KEY is unset.
_PROVIDER_KEY_VARS: dict[ModelProvider, str] = {
    ModelProvider.OPENAI: "OPENAI_API_KEY",
    ModelProvider.ANTHROPIC: "ANTHROPIC_API_KEY",
}


class AiConfig(BaseModel):
    """Model provider settings shared by every strategy."""

    provider: ModelProvider = Field(default=ModelProvider.OPENAI)
    api_key: str = Field(default="", repr=False)
    base_url: Optional[str] = Field(
        default=None, description="Gateway or self-hosted endpoint overriding the provider default"
    )
    generation_model: str = Field(default="o3-mini")
    analysis_model: str = Field(default="gpt-4o")
    fix_model: str = Field(default="gpt-4o")
    fallback_model: Optional[str] = Field(default=None)
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    timeout: int = Field(default=120, ge=10, description="Per-request timeout in seconds")


class CodegenConfig(BaseModel):
    """Tuning knobs for the generate/validate/fix loops."""

    max_schema_attempts: int = Field(
        default=3, ge=1, description="Attempts (generation plus fixes) allowed for the schema"
    )
    max_api_attempts: int = Field(
        default=3, ge=1, description="Attempts (generation plus fixes) allowed for the API"
    )
    package_manager: PackageManager = Field(default="npm")
    typecheck_timeout: int = Field(default=180, ge=10, description="Type checker timeout in seconds")
    session_timeout: Optional[float] = Field(
        default=None, gt=0, description="Cancel the whole session after this many seconds"
    )


class Config(BaseModel):
    """Global Backforge configuration.

    Instances are typically created once by the CLI entry point and then
    passed to the session factory.
    """

    project_dir: Path = Field(default=Path("."))
    backforge_dir: str = Field(default=".backforge")
    schema_file: str = Field(default="src/db/schema.ts")
    api_file: str = Field(default="src/index.ts")
    ai: AiConfig = Field(default_factory=AiConfig)
    codegen: CodegenConfig = Field(default_factory=CodegenConfig)

    # ------------------------------------------------------------------
    # Derived paths (read-only properties)
    # ------------------------------------------------------------------

    @property
    def schema_path(self) -> Path:
        """Destination of the generated Drizzle schema."""
        return self.project_dir / self.schema_file

    @property
    def api_path(self) -> Path:
        """Destination of the generated Hono routes file."""
        return self.project_dir / self.api_file

    @property
    def backforge_path(self) -> Path:
        """Root of the ``.backforge/`` metadata directory inside the project."""
        return self.project_dir / self.backforge_dir

    @property
    def state_path(self) -> Path:
        """Path to the persisted session state JSON file."""
        return self.backforge_path / "session-state.json"

    @property
    def spec_path(self) -> Path:
        """Path where the project description is saved."""
        return self.backforge_path / "spec.md"

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path | None = None) -> Path:
        """Persist the configuration to a JSON file.

        The API key is never written to disk.

        Args:
            path: Destination file. Defaults to ``<backforge_path>/config.json``.

        Returns:
            The resolved path where the file was written.
        """
        target = path or (self.backforge_path / "config.json")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(
            self.model_dump_json(indent=2, exclude={"ai": {"api_key"}}),
            encoding="utf-8",
        )
        return target

    @classmethod
    def load(cls, path: Path) -> "Config":
        """Load a previously-saved configuration from JSON."""
        raw = Path(path).read_text(encoding="utf-8")
        return cls.model_validate_json(raw)

    @classmethod
    def from_env(cls) -> "Config":
        """Build a ``Config`` from environment variables.

        Recognised variables (all optional):
            BACKFORGE_PROJECT_DIR, BACKFORGE_PROVIDER, BACKFORGE_API_KEY,
            BACKFORGE_BASE_URL, BACKFORGE_GENERATION_MODEL,
            BACKFORGE_ANALYSIS_MODEL, BACKFORGE_FIX_MODEL, BACKFORGE_TIMEOUT,
            BACKFORGE_MAX_SCHEMA_ATTEMPTS, BACKFORGE_MAX_API_ATTEMPTS,
            BACKFORGE_TYPECHECK_TIMEOUT, BACKFORGE_SESSION_TIMEOUT.

        The API key falls back to ``OPENAI_API_KEY`` / ``ANTHROPIC_API_KEY``
        depending on the provider.  The package manager is detected from
        ``npm_config_user_agent``.
        """
        ai_kwargs: dict[str, Any] = {}
        raw_provider = os.environ.get("BACKFORGE_PROVIDER", ModelProvider.OPENAI.value)
        try:
            provider = ModelProvider(raw_provider)
        except ValueError as exc:
            raise ConfigurationError(f"Unsupported AI provider: {raw_provider}") from exc
        ai_kwargs["provider"] = provider

        api_key = api_key_from_env(provider)
        if api_key:
            ai_kwargs["api_key"] = api_key
        if os.environ.get("BACKFORGE_BASE_URL"):
            ai_kwargs["base_url"] = os.environ["BACKFORGE_BASE_URL"]
        if os.environ.get("BACKFORGE_GENERATION_MODEL"):
            ai_kwargs["generation_model"] = os.environ["BACKFORGE_GENERATION_MODEL"]
        if os.environ.get("BACKFORGE_ANALYSIS_MODEL"):
            ai_kwargs["analysis_model"] = os.environ["BACKFORGE_ANALYSIS_MODEL"]
        if os.environ.get("BACKFORGE_FIX_MODEL"):
            ai_kwargs["fix_model"] = os.environ["BACKFORGE_FIX_MODEL"]
        if os.environ.get("BACKFORGE_TIMEOUT"):
            ai_kwargs["timeout"] = int(os.environ["BACKFORGE_TIMEOUT"])

        codegen_kwargs: dict[str, Any] = {"package_manager": detect_package_manager()}
        if os.environ.get("BACKFORGE_MAX_SCHEMA_ATTEMPTS"):
            codegen_kwargs["max_schema_attempts"] = int(os.environ["BACKFORGE_MAX_SCHEMA_ATTEMPTS"])
        if os.environ.get("BACKFORGE_MAX_API_ATTEMPTS"):
            codegen_kwargs["max_api_attempts"] = int(os.environ["BACKFORGE_MAX_API_ATTEMPTS"])
        if os.environ.get("BACKFORGE_TYPECHECK_TIMEOUT"):
            codegen_kwargs["typecheck_timeout"] = int(os.environ["BACKFORGE_TYPECHECK_TIMEOUT"])
        if os.environ.get("BACKFORGE_SESSION_TIMEOUT"):
            codegen_kwargs["session_timeout"] = float(os.environ["BACKFORGE_SESSION_TIMEOUT"])

        return cls(
            project_dir=Path(os.environ.get("BACKFORGE_PROJECT_DIR", ".")),
            ai=AiConfig(**ai_kwargs),
            codegen=CodegenConfig(**codegen_kwargs),
        )

    def ensure_directories(self) -> None:
        """Create the metadata directory that must exist before a session runs."""
        self.backforge_path.mkdir(parents=True, exist_ok=True)


def api_key_from_env(provider: ModelProvider) -> str:
    """``BACKFORGE_API_KEY``, else the provider's own key variable, else ``""``."""
    api_key = os.environ.get("BACKFORGE_API_KEY", "")
    if not api_key and provider in _PROVIDER_KEY_VARS:
        api_key = os.environ.get(_PROVIDER_KEY_VARS[provider], "")
    return api_key


def detect_package_manager(default: str = "npm") -> str:
    """Return the package manager that launched us, or *default*.

    Reads the leading ``name/version`` token of ``npm_config_user_agent``.
    Unknown names produce a warning and fall back to *default*.
    """
    agent = os.environ.get("npm_config_user_agent", "")
    name = agent.split("/", 1)[0].strip()
    if not name:
        return default
    if name not in PACKAGE_MANAGERS:
        from backforge.utils import print_warning

        print_warning(f"Invalid package manager: {name}. Using default: {default}")
        return default
    return name
