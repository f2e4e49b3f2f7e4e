"""Utility functions for Gmail Sender Report."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass

from gmail_sender_report.config import DispatchConfig

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff schedule for retrying transient failures.

    Args:
        max_retries: Maximum number of retry attempts after the first call.
        delay: Initial delay between retries in seconds.
        backoff: Multiplier for delay after each retry.
        max_delay: Upper bound for any single delay in seconds.
    """

    max_retries: int = 3
    delay: float = 0.5
    backoff: float = 2.0
    max_delay: float = 30.0

    @classmethod
    def from_config(cls, config: DispatchConfig) -> BackoffPolicy:
        return cls(
            max_retries=config.max_retry_attempts,
            delay=config.retry_base_delay_ms / 1000.0,
            max_delay=config.retry_max_delay_ms / 1000.0,
        )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delays(self) -> Iterator[float]:
        """Yield the wait before each retry, one value per retry."""
        current_delay = self.delay
        for _ in range(self.max_retries):
            yield min(current_delay, self.max_delay)
            current_delay *= self.backoff
