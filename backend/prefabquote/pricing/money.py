# Overview: Decimal helpers for currency and measurement values.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal:
    """
    Convert a wire value to Decimal.

    Floats go through str() so 28.8 becomes Decimal("28.8"), not the binary
    expansion. Booleans are rejected even though they are ints.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or value is None:
        raise TypeError(f"not a number: {value!r}")
    if isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise TypeError(f"not a number: {value!r}") from None
    else:
        raise TypeError(f"not a number: {value!r}")
    if not result.is_finite():
        raise TypeError(f"not a finite number: {value!r}")
    return result


def round_money(value: Decimal) -> Decimal:
    """Round half-up to 2 decimal places."""
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def has_places(value: Decimal, places: int) -> bool:
    """True when value needs no more than `places` decimal places (trailing zeros ignored)."""
    return value.normalize().as_tuple().exponent >= -places


def money_to_wire(value: Decimal | None) -> float | None:
    """Emit a 2dp Decimal as a JSON number."""
    if value is None:
        return None
    return float(round_money(value))


def measure_to_wire(value: Decimal | None) -> float | int | None:
    if value is None:
        return None
    if value == value.to_integral_value():
        return int(value)
    return float(value)
