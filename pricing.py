"""
Order and cart pricing.

Tax is rounded half-up to a whole currency unit. Python's round() would
round half to even, so the arithmetic goes through Decimal instead.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Union

import config

Number = Union[int, float, Decimal]


def round_half_up(value: Number) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def tax_for(subtotal: Number) -> int:
    return round_half_up(Decimal(str(subtotal)) * config.TAX_RATE)


def shipping_for(subtotal: Number) -> float:
    # Strictly above the threshold ships free
    return 0 if subtotal > config.FREE_SHIPPING_THRESHOLD else config.SHIPPING_FEE


def price_summary(subtotal: Number) -> Dict[str, float]:
    tax = tax_for(subtotal)
    shipping = shipping_for(subtotal)
    return {
        "subtotal": subtotal,
        "tax": tax,
        "shipping": shipping,
        "total": subtotal + tax + shipping,
    }
