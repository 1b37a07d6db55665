"""
Fixed-point money helpers.
Balances are Decimals with two places in Python and integer cents at rest.
"""

from decimal import Decimal, InvalidOperation, ROUND_FLOOR, ROUND_HALF_UP
from typing import Union

CENT = Decimal("0.01")

Number = Union[int, float, str, Decimal]


def to_balance(value: Number) -> Decimal:
    """Coerce a number to a two-place Decimal. Floats go through repr() first."""
    if isinstance(value, bool):
        raise ValueError("bool is not a monetary amount")
    if isinstance(value, float):
        value = repr(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError) as e:
        raise ValueError(f"Not a monetary amount: {value!r}") from e
    if not amount.is_finite():
        raise ValueError(f"Not a monetary amount: {value!r}")
    try:
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as e:
        # More digits than the decimal context can hold at cent precision
        raise ValueError(f"Amount out of range: {value!r}") from e


def to_cents(value: Number) -> int:
    return int(to_balance(value) * 100)


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


def floor_fraction(balance: Decimal, fraction: Number) -> int:
    """floor(balance * fraction) as a whole-unit bet, never above the balance."""
    share = (to_balance(balance) * Decimal(str(fraction))).to_integral_value(
        rounding=ROUND_FLOOR
    )
    cap = to_balance(balance).to_integral_value(rounding=ROUND_FLOOR)
    return int(min(share, cap))


def format_money(value: Number) -> str:
    return f"${to_balance(value):,.2f}"
