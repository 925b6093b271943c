from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_DOWN
from typing import Union

# USDT (TRC20) has 6 decimals
USDT_QUANT = Decimal("0.000001")

Amount = Union[str, Decimal, int]


def to_decimal(value: Amount) -> Decimal:
    if isinstance(value, float):
        raise TypeError("Monetary amounts must not be floats.")
    try:
        d = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValueError(f"Invalid decimal amount: {value!r}")
    if not d.is_finite():
        raise ValueError(f"Invalid decimal amount: {value!r}")
    return d


def format_usdt(value: Amount) -> str:
    """Canonical storage form, e.g. "100.000000"."""
    return str(to_decimal(value).quantize(USDT_QUANT, rounding=ROUND_DOWN))


def usdt_gte(a: Amount, b: Amount) -> bool:
    return to_decimal(a) >= to_decimal(b)
