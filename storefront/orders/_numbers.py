"""
Order numbers: OD-<base36 millis><base36 random, 2+ chars>, e.g. OD-LZ3K9QX1A7.
"""

from __future__ import annotations

import random
import string
from datetime import datetime

from storefront._types import utcnow

_BASE36 = string.digits + string.ascii_uppercase

ORDER_PREFIX = "OD"


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("value must be >= 0")
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_order_number(
    *,
    prefix: str = ORDER_PREFIX,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> str:
    moment = now or utcnow()
    millis = int(moment.timestamp() * 1000)
    suffix = (rng or random).randrange(1000)
    return f"{prefix}-{to_base36(millis)}{to_base36(suffix).rjust(2, '0')}"


__all__ = ("ORDER_PREFIX", "to_base36", "generate_order_number")
