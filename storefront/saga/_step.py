"""
Saga step creation.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from combinators import lift as L
from kungfu import LazyCoroResult

from storefront.saga._types import Compensator, SagaStep


def step[T, E](
    action: LazyCoroResult[T, E],
    compensate: Compensator[T] | None = None,
    *,
    name: str = "",
) -> SagaStep[T, E]:
    """
    Create a compensated saga step.

    Example:
        from storefront import saga as S

        persist = S.step(
            LazyCoroResult(lambda: orders.insert_order(order)),
            compensate=lambda order: mark_failed(order.id),
            name="persist order",
        )
    """
    return SagaStep(action=action, compensate=compensate, name=name)


def from_async[T, E](
    action: Callable[[], Awaitable[T]],
    on_error: Callable[[Exception], E],
    compensate: Compensator[T] | None = None,
    *,
    name: str = "",
) -> SagaStep[T, E]:
    """
    Create step from a plain async callable; exceptions become E.

    Example:
        S.from_async(
            lambda: gateway.capture(payment_id),
            on_error=lambda e: PersistenceError(str(e), e),
            compensate=lambda capture: gateway.refund(capture.id),
        )
    """
    return SagaStep(
        action=L.catching_async(action, on_error=on_error),
        compensate=compensate,
        name=name,
    )


__all__ = ("step", "from_async")
