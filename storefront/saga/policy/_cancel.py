"""
Cancellation policy.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from storefront.saga._cancel import CancelToken


@dataclass(frozen=True, slots=True)
class Cancelled(Exception):
    """Default error for a saga stopped by its token."""

    step: str

    def __str__(self) -> str:
        return f"cancelled before {self.step}"


@dataclass(frozen=True, slots=True)
class CancelPolicy[E]:
    token: CancelToken
    on_cancel: Callable[[str], E]


def cancel[E](
    token: CancelToken,
    on_cancel: Callable[[str], E] = Cancelled,  # type: ignore[assignment]
) -> CancelPolicy[E]:
    """
    Check `token` before every step.

    on_cancel receives the name of the step that did not start and builds
    the saga's error.

    Example:
        token = CancelToken()
        await S.run(saga, S.policy.cancel(token, on_cancel=CheckoutCancelled))
    """
    return CancelPolicy(token, on_cancel)


__all__ = ("Cancelled", "CancelPolicy", "cancel")
