"""Async client for model provider HTTP APIs.

Wraps a single-turn completion call with proper timeout handling,
structured responses, cancellation, and automatic model fallback.  The
wire format comes from a :class:`~backforge.ai.providers.ProviderAdapter`,
so the same client talks to OpenAI, Anthropic or a local Ollama server.

Typical usage::

    client = ModelClient(ModelProvider.OPENAI, api_key="sk-...")
    resp = await client.complete("Write a Drizzle schema", model="gpt-4o")
    if resp.success:
        print(resp.text)
"""

from __future__ import annotations

import time
from typing import Optional

import httpx
from pydantic import BaseModel, Field

from backforge.ai.providers import ModelProvider, ProviderAdapter, adapter_for
from backforge.cancellation import CancelToken, cancellable
from backforge.errors import ConfigurationError, OperationCancelled


class ModelResponse(BaseModel):
    """Structured response from a completion call."""

    text: str = Field(default="", description="Generated text")
    model: str = Field(default="", description="Model that produced the response")
    duration_ms: float = Field(default=0.0, description="Generation time in ms")
    success: bool = Field(default=True, description="Whether the request succeeded")
    error: str | None = Field(default=None, description="Error message on failure")


class ModelClient:
    """Async client for one provider.

    Args:
        provider: A built-in provider name or an adapter instance.
        api_key: Credential sent with every request.
        base_url: Overrides the adapter's default endpoint (e.g. an AI gateway).
        timeout: Per-request timeout in seconds.
        temperature: Default sampling temperature.

    Raises:
        ConfigurationError: If the provider needs an API key and none was given.
    """

    def __init__(
        self,
        provider: ModelProvider | str | ProviderAdapter = ModelProvider.OPENAI,
        api_key: str = "",
        base_url: Optional[str] = None,
        timeout: int = 120,
        temperature: Optional[float] = None,
    ) -> None:
        self.adapter = provider if isinstance(provider, ProviderAdapter) else adapter_for(provider)
        if self.adapter.requires_api_key and not api_key:
            raise ConfigurationError(f"An API key is required for provider '{self.adapter.name}'")
        self.api_key = api_key
        self.base_url = (base_url or self.adapter.default_base_url).rstrip("/")
        self.timeout = timeout
        self.temperature = temperature

    @property
    def provider_name(self) -> str:
        return self.adapter.name

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        """Return a fresh ``AsyncClient`` configured with our base URL and timeout."""
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout, connect=10.0),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def complete(
        self,
        prompt: str,
        model: str,
        system: str = "",
        temperature: Optional[float] = None,
        cancel: Optional[CancelToken] = None,
    ) -> ModelResponse:
        """Send one prompt and return the model's reply.

        Transport and HTTP failures come back as ``success=False`` responses.

        Raises:
            OperationCancelled: If *cancel* fires while the request is in flight.
        """
        payload = self.adapter.payload(
            prompt,
            model=model,
            system=system,
            temperature=self.temperature if temperature is None else temperature,
        )
        started = time.monotonic()

        try:
            async with self._client() as client:
                response = await cancellable(
                    client.post(
                        self.adapter.path,
                        json=payload,
                        headers=self.adapter.headers(self.api_key),
                    ),
                    cancel,
                )
                response.raise_for_status()
                data = response.json()
                duration_ms = self.adapter.extract_duration_ms(data) or (
                    (time.monotonic() - started) * 1000.0
                )
                return ModelResponse(
                    text=self.adapter.extract_text(data),
                    model=data.get("model", model),
                    duration_ms=duration_ms,
                    success=True,
                )
        except OperationCancelled:
            raise
        except httpx.ConnectError:
            return ModelResponse(
                model=model,
                success=False,
                error=f"Cannot connect to {self.provider_name} at {self.base_url}.",
            )
        except httpx.TimeoutException:
            return ModelResponse(
                model=model,
                success=False,
                error=f"Request to {self.provider_name} timed out after {self.timeout}s.",
            )
        except httpx.HTTPStatusError as exc:
            return ModelResponse(
                model=model,
                success=False,
                error=(
                    f"{self.provider_name} returned HTTP {exc.response.status_code}: "
                    f"{exc.response.text[:500]}"
                ),
            )
        except Exception as exc:  # noqa: BLE001
            return ModelResponse(
                model=model,
                success=False,
                error=f"Unexpected error during {self.provider_name} completion: {exc}",
            )

    async def complete_with_fallback(
        self,
        prompt: str,
        primary_model: str,
        fallback_model: Optional[str] = None,
        system: str = "",
        temperature: Optional[float] = None,
        cancel: Optional[CancelToken] = None,
    ) -> ModelResponse:
        """Try ``primary_model`` first; on failure fall back to ``fallback_model``."""
        result = await self.complete(
            prompt, model=primary_model, system=system, temperature=temperature, cancel=cancel
        )
        if result.success or not fallback_model or fallback_model == primary_model:
            return result

        return await self.complete(
            prompt, model=fallback_model, system=system, temperature=temperature, cancel=cancel
        )
