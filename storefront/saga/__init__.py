"""
Saga — multi-step writes with compensation.

    from storefront import saga as S

    checkout = S.step(action, compensate).then(lambda v: S.step(action2, compensate2))
    result = await S.run(checkout, S.policy.cancel(token))
"""

from __future__ import annotations

from storefront.saga._types import (
    Compensator,
    SagaStep,
    Then,
    SagaExpr,
    SagaResult,
    SagaError,
)
from storefront.saga._cancel import CancelToken
from storefront.saga._step import step, from_async
from storefront.saga._run import run, run_compensators
from storefront.saga import policy

__all__ = (
    "Compensator",
    "SagaStep",
    "Then",
    "SagaExpr",
    "SagaResult",
    "SagaError",
    "CancelToken",
    "step",
    "from_async",
    "run",
    "run_compensators",
    "policy",
)
