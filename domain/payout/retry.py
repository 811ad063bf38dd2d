"""
Retry policy for payouts.

Backoff is a pure function of the retry count so it can be tested without a
database or a clock.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta


def backoff_delay(retry_count: int, *, base_seconds: float = 60.0, max_seconds: float = 3600.0) -> timedelta:
    """Exponential delay before attempt ``retry_count + 1``.

    retry_count=1 -> base, 2 -> 2*base, 3 -> 4*base ... capped at ``max_seconds``.
    """
    if retry_count < 1:
        return timedelta(0)
    seconds = base_seconds * (2 ** (retry_count - 1))
    return timedelta(seconds=min(seconds, max_seconds))


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_seconds: float = 60.0
    max_seconds: float = 3600.0

    def delay(self, retry_count: int) -> timedelta:
        return backoff_delay(retry_count, base_seconds=self.base_seconds, max_seconds=self.max_seconds)

    def next_attempt_at(self, retry_count: int, now: datetime) -> datetime:
        return now + self.delay(retry_count)

    def exhausted(self, retry_count: int, max_retries: int | None = None) -> bool:
        cap = self.max_retries if max_retries is None else max_retries
        return retry_count >= cap
