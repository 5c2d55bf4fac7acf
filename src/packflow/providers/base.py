"""Provider interface shared by the Anthropic and mock backends.

Agents reach an LLM through :class:`Provider`. A provider is built from an
explicit :class:`ProviderConfig` and creates its client in
:meth:`Provider.initialize`, so constructing one never touches the network.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import ClassVar

from packflow.errors import ProviderError


class ProviderType(Enum):
    ANTHROPIC = "anthropic"
    MOCK = "mock"


class RateLimitError(ProviderError):
    """The provider asked the caller to back off (HTTP 429)."""

    code = "RATE_LIMITED"

    def __init__(self, message: str, provider: str | None = None, retry_after: float | None = None):
        super().__init__(message, provider=provider, status_code=429)
        self.retry_after = retry_after


@dataclass
class ProviderConfig:
    provider_type: ProviderType
    api_key: str | None = None
    base_url: str | None = None
    default_model: str | None = None
    max_tokens: int = 4096
    timeout: float = 120.0  # seconds per HTTP request
    max_retries: int = 2  # transport retries inside the SDK
    metadata: dict = field(default_factory=dict)


@dataclass
class CompletionRequest:
    """One prompt sent on behalf of one agent.

    ``agent_id`` and ``execution_id`` identify the caller in logs; providers
    do not interpret them.
    """

    prompt: str
    system_prompt: str | None = None
    model: str | None = None  # provider default when unset
    temperature: float = 0.7
    max_tokens: int | None = None
    stop_sequences: list[str] | None = None
    metadata: dict = field(default_factory=dict)
    agent_id: str | None = None
    execution_id: str | None = None


@dataclass
class CompletionResponse:
    content: str
    model: str
    provider: str
    input_tokens: int = 0
    output_tokens: int = 0
    finish_reason: str | None = None
    latency_ms: float = 0
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    metadata: dict = field(default_factory=dict)

    @property
    def tokens_used(self) -> int:
        return self.input_tokens + self.output_tokens


class Provider(ABC):
    """Base class for LLM backends.

    Subclasses set ``name``, ``provider_type`` and ``fallback_model`` and
    implement :meth:`is_configured`, :meth:`initialize` and :meth:`complete`.
    """

    name: ClassVar[str]
    provider_type: ClassVar[ProviderType]
    fallback_model: ClassVar[str]

    def __init__(self, config: ProviderConfig):
        self.config = config
        self._initialized = False

    @property
    def default_model(self) -> str:
        return self.config.default_model or self.fallback_model

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @abstractmethod
    def is_configured(self) -> bool:
        """True when the config carries what :meth:`initialize` needs."""

    @abstractmethod
    def initialize(self) -> None:
        """Create the client.

        Raises:
            ProviderNotConfiguredError: If credentials are missing
        """

    def ensure_initialized(self) -> None:
        if not self._initialized:
            self.initialize()

    def reinitialize(self, config: ProviderConfig | None = None) -> None:
        """Rebuild the client, optionally from a new config."""
        if config is not None:
            self.config = config
        self._initialized = False
        self.initialize()

    @abstractmethod
    def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Run one completion.

        Raises:
            ProviderNotConfiguredError: If the provider cannot be initialized
            RateLimitError: If the backend throttled the call
            ProviderError: For any other backend failure
        """

    async def complete_async(self, request: CompletionRequest) -> CompletionResponse:
        # Providers with a native async client override this
        return await asyncio.to_thread(self.complete, request)

    def health_check(self) -> bool:
        """Send a tiny prompt; False when unconfigured or the call fails."""
        if not self.is_configured():
            return False
        try:
            self.complete(CompletionRequest(prompt="ping", max_tokens=5))
        except ProviderError:
            return False
        return True
