# Overview: Fixed-point money helpers shared by models and services.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


class MoneyError(ValueError):
    """Raised when a value cannot be interpreted as an amount of money."""


def to_money(value: Any) -> Decimal:
    """
    Coerce value to a Decimal quantized to cents.

    Floats are routed through str() so 0.1 stays 0.10 instead of
    0.1000000000000000055511151231257827.
    """
    if isinstance(value, bool):
        raise MoneyError("amount must be a number")
    if isinstance(value, Decimal):
        dec = value
    elif isinstance(value, (int, str)):
        try:
            dec = Decimal(str(value).strip())
        except InvalidOperation:
            raise MoneyError(f"invalid amount: {value!r}")
    elif isinstance(value, float):
        dec = Decimal(str(value))
    else:
        raise MoneyError("amount must be a number")
    if not dec.is_finite():
        raise MoneyError("amount must be finite")
    return dec.quantize(CENT, rounding=ROUND_HALF_UP)


def money_str(value: Decimal | None) -> str | None:
    if value is None:
        return None
    return str(to_money(value))
