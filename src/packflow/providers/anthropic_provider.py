"""Claude through the Anthropic Messages API."""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import anthropic

from packflow.errors import ProviderError, ProviderNotConfiguredError

from .base import (
    CompletionRequest,
    CompletionResponse,
    Provider,
    ProviderConfig,
    ProviderType,
    RateLimitError,
)

_DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."


def _retry_after(error: anthropic.APIStatusError) -> float | None:
    value = error.response.headers.get("retry-after") if error.response is not None else None
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None


@contextmanager
def _translate_errors(provider: str) -> Iterator[None]:
    """Re-raise SDK exceptions as packflow provider errors."""
    try:
        yield
    except anthropic.RateLimitError as e:
        raise RateLimitError(str(e), provider=provider, retry_after=_retry_after(e)) from e
    except anthropic.APIStatusError as e:
        raise ProviderError(
            f"Anthropic API error: {e.message}", provider=provider, status_code=e.status_code
        ) from e
    except anthropic.APIError as e:
        raise ProviderError(f"Anthropic API error: {e}", provider=provider) from e


class AnthropicProvider(Provider):
    """Sync and async Anthropic clients behind the provider interface.

    Transport retries are left to the SDK (``ProviderConfig.max_retries``);
    task retries belong to the workflow engine.
    """

    name = "anthropic"
    provider_type = ProviderType.ANTHROPIC
    fallback_model = "claude-sonnet-4-20250514"

    def __init__(self, config: ProviderConfig | None = None, api_key: str | None = None):
        super().__init__(
            config or ProviderConfig(provider_type=ProviderType.ANTHROPIC, api_key=api_key)
        )
        self._client: anthropic.Anthropic | None = None
        self._async_client: anthropic.AsyncAnthropic | None = None

    @classmethod
    def from_settings(cls, settings) -> AnthropicProvider:
        """Provider configured from :class:`Settings`; call :meth:`initialize` before use."""
        return cls(
            ProviderConfig(
                provider_type=ProviderType.ANTHROPIC,
                api_key=settings.anthropic_api_key,
                default_model=settings.default_model,
                max_tokens=settings.max_tokens,
            )
        )

    def is_configured(self) -> bool:
        return bool(self.config.api_key)

    def initialize(self) -> None:
        if not self.is_configured():
            raise ProviderNotConfiguredError("Anthropic API key not configured", provider=self.name)
        client_options = {
            "api_key": self.config.api_key,
            "base_url": self.config.base_url,
            "timeout": self.config.timeout,
            "max_retries": self.config.max_retries,
        }
        self._client = anthropic.Anthropic(**client_options)
        self._async_client = anthropic.AsyncAnthropic(**client_options)
        self._initialized = True

    def _request_kwargs(self, request: CompletionRequest) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": request.model or self.default_model,
            "system": request.system_prompt or _DEFAULT_SYSTEM_PROMPT,
            "messages": [{"role": "user", "content": request.prompt}],
            "max_tokens": request.max_tokens or self.config.max_tokens,
            "temperature": request.temperature,
        }
        if request.stop_sequences:
            kwargs["stop_sequences"] = request.stop_sequences
        return kwargs

    def _to_response(self, message: Any, started: float) -> CompletionResponse:
        text = "".join(
            block.text for block in message.content or [] if getattr(block, "type", "") == "text"
        )
        usage = message.usage
        return CompletionResponse(
            content=text,
            model=message.model,
            provider=self.name,
            input_tokens=usage.input_tokens if usage else 0,
            output_tokens=usage.output_tokens if usage else 0,
            finish_reason=message.stop_reason,
            latency_ms=(time.monotonic() - started) * 1000,
            metadata={"id": message.id},
        )

    def complete(self, request: CompletionRequest) -> CompletionResponse:
        self.ensure_initialized()
        started = time.monotonic()
        with _translate_errors(self.name):
            message = self._client.messages.create(**self._request_kwargs(request))
        return self._to_response(message, started)

    async def complete_async(self, request: CompletionRequest) -> CompletionResponse:
        self.ensure_initialized()
        started = time.monotonic()
        with _translate_errors(self.name):
            message = await self._async_client.messages.create(**self._request_kwargs(request))
        return self._to_response(message, started)
