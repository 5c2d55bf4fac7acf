"""Exponential backoff for task retries."""

from __future__ import annotations

import random
from dataclasses import dataclass


@dataclass
class RetryConfig:
    """Configuration for retry behavior.

    Delays are in seconds so they can be handed straight to ``asyncio.sleep``.
    """

    max_retries: int = 0
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = False  # Up to +/-25% randomness when enabled

    @classmethod
    def from_backoff_ms(
        cls, max_retries: int, backoff_ms: int, max_backoff_ms: int = 30_000
    ) -> RetryConfig:
        """Build a config from a millisecond retry policy."""
        return cls(
            max_retries=max(0, max_retries),
            base_delay=max(0, backoff_ms) / 1000,
            max_delay=max(0, max_backoff_ms) / 1000,
        )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def calculate_delay(self, attempt: int) -> float:
        """Calculate delay after the given failed attempt (0-indexed)."""
        delay = self.base_delay * (self.exponential_base**attempt)
        delay = min(delay, self.max_delay)
        if self.jitter:
            delay = delay * (0.75 + random.random() * 0.5)
        return delay
