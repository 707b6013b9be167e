"""
Saga execution policies.

Namespace: S.policy.*

Examples:
    S.run(saga, S.policy.timeout(seconds=10))
    S.run(saga, S.policy.compensate.retry(times=3))
    S.run(saga, S.policy.cancel(token))
"""

from __future__ import annotations

from storefront.saga.policy._compensate import RetryPolicy, retry
from storefront.saga.policy._timeout import TimeoutPolicy, timeout
from storefront.saga.policy._cancel import Cancelled, CancelPolicy, cancel


class compensate:
    """Compensation policies."""

    retry = staticmethod(retry)


type Policy = TimeoutPolicy | RetryPolicy | CancelPolicy[object]


__all__ = (
    "compensate",
    "timeout",
    "cancel",
    "TimeoutPolicy",
    "RetryPolicy",
    "CancelPolicy",
    "Cancelled",
    "Policy",
)
