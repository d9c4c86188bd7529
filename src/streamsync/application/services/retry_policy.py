"""Bounded exponential backoff for failed sync runs.

Hey future me - this is PURE. No clock, no state, no I/O. The scheduler owns
the attempt counter and asks "how long until I may try again?".

BACKOFF (defaults: base 30s, floor 10s, max 3 retries):
- attempt 0 → 30s
- attempt 1 → 60s
- attempt 2 → 120s
- attempt 3 → None (give up, job goes FAILED)

The floor mirrors the platform scheduler's minimum backoff: a tiny base delay
never produces a retry storm.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from streamsync.domain.exceptions import ValidationException

if TYPE_CHECKING:
    from streamsync.config import RetrySettings

MAX_RETRIES = 3
DEFAULT_BASE_DELAY = timedelta(seconds=30)
DEFAULT_MIN_BACKOFF = timedelta(seconds=10)


@dataclass(frozen=True)
class RetryPolicy:
    """Maps an attempt count to "retry after X" or "give up"."""

    base_delay: timedelta = DEFAULT_BASE_DELAY
    min_backoff: timedelta = DEFAULT_MIN_BACKOFF
    max_retries: int = MAX_RETRIES

    def __post_init__(self) -> None:
        if self.base_delay <= timedelta(0):
            raise ValidationException("Retry base delay must be positive")
        if self.min_backoff < timedelta(0):
            raise ValidationException("Minimum backoff must not be negative")
        if self.max_retries < 1:
            raise ValidationException("max_retries must be at least 1")

    def next_delay(self, attempt_count: int) -> timedelta | None:
        """Delay before the next attempt, or None once retries are exhausted.

        Args:
            attempt_count: Failed attempts so far in this lineage

        Returns:
            ``max(base_delay * 2**attempt_count, min_backoff)`` or None when
            ``attempt_count >= max_retries``
        """
        if attempt_count < 0:
            raise ValidationException(f"attempt_count must not be negative, got {attempt_count}")
        if attempt_count >= self.max_retries:
            return None
        return max(self.base_delay * (2**attempt_count), self.min_backoff)

    def retries_left(self, attempt_count: int) -> int:
        return max(self.max_retries - attempt_count, 0)

    @classmethod
    def from_settings(cls, settings: "RetrySettings") -> "RetryPolicy":
        """Build a policy from the ``retry`` settings group."""
        return cls(
            base_delay=timedelta(seconds=settings.base_delay_seconds),
            min_backoff=timedelta(seconds=settings.min_backoff_seconds),
            max_retries=settings.max_retries,
        )


_DEFAULT_POLICY = RetryPolicy()


def next_delay(attempt_count: int) -> timedelta | None:
    """next_delay() of the default policy (MAX_RETRIES = 3)."""
    return _DEFAULT_POLICY.next_delay(attempt_count)
