"""Retry policy for interactive enrichment calls."""

from __future__ import annotations

import random
from dataclasses import dataclass

from bibflow_core.settings import Settings


@dataclass(frozen=True)
class RetryPolicy:
    """
    Exponential backoff with jitter.

    Attributes:
        max_attempts: Total attempts, including the first
        base_delay_seconds: Delay before the second attempt
        max_delay_seconds: Upper bound on any single delay
        jitter_factor: Fraction of the delay added or removed at random
    """

    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    jitter_factor: float = 0.1

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay_seconds < 0 or self.max_delay_seconds < 0:
            raise ValueError("delays must be non-negative")
        if not 0 <= self.jitter_factor <= 1:
            raise ValueError("jitter_factor must be between 0 and 1")

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryPolicy:
        return cls(
            max_attempts=settings.enrichment_retry_max_attempts,
            base_delay_seconds=settings.enrichment_retry_base_delay_seconds,
            max_delay_seconds=max(settings.enrichment_retry_base_delay_seconds, settings.enrichment_retry_max_delay_seconds),
            jitter_factor=settings.enrichment_retry_jitter_factor,
        )

    def delay_for(self, attempt: int, retry_after: float | None = None) -> float:
        """
        Delay after failed ``attempt`` (1-based).

        A provider's ``Retry-After`` hint takes precedence over backoff.
        """
        if retry_after is not None:
            return min(max(retry_after, 0.0), self.max_delay_seconds)
        delay = min(self.max_delay_seconds, self.base_delay_seconds * (2 ** (attempt - 1)))
        if self.jitter_factor > 0 and delay > 0:
            delay += delay * random.uniform(-self.jitter_factor, self.jitter_factor)
        return max(delay, 0.0)
