"""Offline provider with scripted and deterministic answers.

Backs ``packflow run --mock`` and the test suite: nothing leaves the
process, and the same prompt always gets the same answer.
"""

from __future__ import annotations

import asyncio
import hashlib
import random

from packflow.errors import ProviderError

from .base import CompletionRequest, CompletionResponse, Provider, ProviderConfig, ProviderType

_TOPICS = (
    "analysis",
    "implementation",
    "testing",
    "review",
    "architecture",
    "security",
    "performance",
    "validation",
    "integration",
    "documentation",
    "refactoring",
    "verification",
)
_ACTIONS = ("Reviewed", "Drafted", "Checked", "Outlined", "Updated")


def _estimate_tokens(text: str) -> int:
    # About two tokens per whitespace-separated word
    return 2 * len(text.split())


def _deterministic_answer(prompt: str) -> str:
    seed = int.from_bytes(hashlib.sha256(prompt.encode()).digest()[:8], "big")
    rng = random.Random(seed)
    topic, *items = rng.sample(_TOPICS, 4)
    lines = [f"Completed the {topic} work.", ""]
    lines += [f"{n}. {rng.choice(_ACTIONS)} {item}." for n, item in enumerate(items, 1)]
    return "\n".join(lines)


class MockProvider(Provider):
    """Answers prompts without an API.

    Args:
        responses: Prompt substring to canned answer; the first key found in
            the prompt wins
        failures: Prompt substrings that make the call raise ``ProviderError``
        delay: Seconds ``complete_async`` waits before answering
        config: Optional provider config
    """

    name = "mock"
    provider_type = ProviderType.MOCK
    fallback_model = "mock-model"

    def __init__(
        self,
        responses: dict[str, str] | None = None,
        failures: list[str] | None = None,
        delay: float = 0.0,
        config: ProviderConfig | None = None,
    ):
        super().__init__(config or ProviderConfig(provider_type=ProviderType.MOCK))
        self.responses = dict(responses or {})
        self.failures = list(failures or [])
        self.delay = delay
        self.calls: list[CompletionRequest] = []
        self._initialized = True

    def is_configured(self) -> bool:
        return True

    def initialize(self) -> None:
        self._initialized = True

    def _scripted(self, prompt: str) -> str | None:
        return next((answer for key, answer in self.responses.items() if key in prompt), None)

    def complete(self, request: CompletionRequest) -> CompletionResponse:
        self.calls.append(request)
        prompt = request.prompt

        marker = next((m for m in self.failures if m in prompt), None)
        if marker is not None:
            raise ProviderError(f"Mock failure triggered by '{marker}'", provider=self.name)

        content = self._scripted(prompt)
        scripted = content is not None
        if content is None:
            content = _deterministic_answer(prompt)
        return CompletionResponse(
            content=content,
            model=request.model or self.default_model,
            provider=self.name,
            input_tokens=_estimate_tokens(prompt),
            output_tokens=_estimate_tokens(content),
            finish_reason="stop",
            metadata={"scripted": scripted},
        )

    async def complete_async(self, request: CompletionRequest) -> CompletionResponse:
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.complete(request)
