"""
Cooperative cancellation.
"""

from __future__ import annotations


class CancelToken:
    """
    Flag checked by the saga runner before each step.

    Cancelling never interrupts a step that is already running; the saga
    stops at the next step boundary and compensates what already ran.
    """

    __slots__ = ("_reason",)

    def __init__(self) -> None:
        self._reason: str | None = None

    def cancel(self, reason: str = "cancelled") -> None:
        if self._reason is None:
            self._reason = reason

    @property
    def cancelled(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> str | None:
        return self._reason

    def __repr__(self) -> str:
        return f"CancelToken(cancelled={self.cancelled!r})"


__all__ = ("CancelToken",)
