"""
Timeout policy.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta


@dataclass(frozen=True, slots=True)
class TimeoutPolicy:
    """Upper bound on each step's action. Compensators are not bounded."""

    duration: timedelta


def timeout(seconds: float | None = None, duration: timedelta | None = None) -> TimeoutPolicy:
    """
    Bound every step.

    A step that overruns fails with combinators.TimeoutError and the saga
    rolls back as for any other failure.

    Example:
        await S.run(saga, S.policy.timeout(seconds=10))
    """
    if duration is not None:
        return TimeoutPolicy(duration)
    if seconds is not None:
        return TimeoutPolicy(timedelta(seconds=seconds))
    raise ValueError("Must provide seconds or duration")


__all__ = ("TimeoutPolicy", "timeout")
