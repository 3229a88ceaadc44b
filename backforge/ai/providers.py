"""Model provider adapters.

Each adapter knows how to shape a single-turn completion request for one
HTTP API and how to pull the text back out of its JSON response.  The
set of built-in providers is closed (:class:`ModelProvider`); further
adapters can be registered with :func:`register_provider` or handed to
:class:`~backforge.ai.client.ModelClient` directly.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Optional

from backforge.errors import ConfigurationError


class ModelProvider(str, Enum):
    """Built-in model providers."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    OLLAMA = "ollama"


class ProviderAdapter:
    """Base adapter: request shape and response parsing for one provider."""

    name: str = ""
    default_base_url: str = ""
    path: str = ""
    requires_api_key: bool = True

    def headers(self, api_key: str) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    def payload(
        self, prompt: str, model: str, system: str = "", temperature: Optional[float] = None
    ) -> dict[str, Any]:
        raise NotImplementedError

    def extract_text(self, data: dict[str, Any]) -> str:
        raise NotImplementedError

    def extract_duration_ms(self, data: dict[str, Any]) -> float:
        return 0.0


_REGISTRY: dict[str, type[ProviderAdapter]] = {}


def register_provider(name: str) -> Callable[[type[ProviderAdapter]], type[ProviderAdapter]]:
    """Class decorator adding an adapter to the registry under *name*."""

    def decorator(cls: type[ProviderAdapter]) -> type[ProviderAdapter]:
        cls.name = name
        _REGISTRY[name] = cls
        return cls

    return decorator


def adapter_for(provider: ModelProvider | str) -> ProviderAdapter:
    """Instantiate the adapter registered for *provider*.

    Raises:
        ConfigurationError: If no adapter is registered under that name.
    """
    name = provider.value if isinstance(provider, ModelProvider) else str(provider)
    try:
        return _REGISTRY[name]()
    except KeyError:
        known = ", ".join(sorted(_REGISTRY))
        raise ConfigurationError(f"Unsupported AI provider: {name} (known: {known})") from None


def registered_providers() -> list[str]:
    return sorted(_REGISTRY)


@register_provider(ModelProvider.OPENAI.value)
class OpenAIAdapter(ProviderAdapter):
    """OpenAI chat completions API."""

    default_base_url = "https://api.openai.com/v1"
    path = "/chat/completions"

    def headers(self, api_key: str) -> dict[str, str]:
        return {"Content-Type": "application/json", "Authorization": f"Bearer {api_key}"}

    def payload(
        self, prompt: str, model: str, system: str = "", temperature: Optional[float] = None
    ) -> dict[str, Any]:
        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        payload: dict[str, Any] = {"model": model, "messages": messages}
        # Reasoning models (o1, o3, ...) reject a temperature.
        if temperature is not None and not model.startswith("o"):
            payload["temperature"] = temperature
        return payload

    def extract_text(self, data: dict[str, Any]) -> str:
        choices = data.get("choices") or []
        if not choices:
            return ""
        return (choices[0].get("message") or {}).get("content") or ""


@register_provider(ModelProvider.ANTHROPIC.value)
class AnthropicAdapter(ProviderAdapter):
    """Anthropic messages API."""

    default_base_url = "https://api.anthropic.com/v1"
    path = "/messages"
    api_version = "2023-06-01"
    max_tokens = 8192

    def headers(self, api_key: str) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": api_key,
            "anthropic-version": self.api_version,
        }

    def payload(
        self, prompt: str, model: str, system: str = "", temperature: Optional[float] = None
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": model,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            payload["system"] = system
        if temperature is not None:
            payload["temperature"] = temperature
        return payload

    def extract_text(self, data: dict[str, Any]) -> str:
        blocks = data.get("content") or []
        return "".join(b.get("text", "") for b in blocks if b.get("type") == "text")


@register_provider(ModelProvider.OLLAMA.value)
class OllamaAdapter(ProviderAdapter):
    """Local Ollama server (``/api/generate``)."""

    default_base_url = "http://localhost:11434"
    path = "/api/generate"
    requires_api_key = False

    def payload(
        self, prompt: str, model: str, system: str = "", temperature: Optional[float] = None
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"model": model, "prompt": prompt, "stream": False}
        if system:
            payload["system"] = system
        if temperature is not None:
            payload["options"] = {"temperature": temperature}
        return payload

    def extract_text(self, data: dict[str, Any]) -> str:
        return data.get("response", "")

    def extract_duration_ms(self, data: dict[str, Any]) -> float:
        """The API returns ``total_duration`` in **nanoseconds**."""
        return data.get("total_duration", 0) / 1_000_000.0
