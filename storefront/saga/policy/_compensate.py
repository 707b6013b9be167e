"""
Compensation policies.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Attempt each compensator up to `times` times before counting it failed."""

    times: int
    delay: timedelta

    def __post_init__(self) -> None:
        if self.times < 1:
            raise ValueError("times must be >= 1")


def retry(times: int = 3, delay: timedelta = timedelta(seconds=1)) -> RetryPolicy:
    """Retry compensators on failure."""
    return RetryPolicy(times, delay)


__all__ = ("RetryPolicy", "retry")
