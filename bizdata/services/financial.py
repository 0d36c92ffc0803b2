"""
Financial calculator. The one place line totals are computed.

    line_total = unit_price * quantity * (1 - discount)

discount is a fraction in [0, 1). Order-entry screens show percentages;
they must call percent_to_fraction() before anything reaches this module.

All arithmetic is Decimal. Floats are converted through str(), so 0.1 is
exactly one tenth. Round only at the display boundary (round_currency),
never while summing.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")

Number = Decimal | int | float | str


def to_decimal(value: Number | None) -> Decimal:
    """Exact Decimal for a price, quantity or discount. None is zero."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def validate_discount(discount: Number | None) -> Decimal:
    """
    Return discount as a Decimal fraction.

    Raises:
        ValueError: if discount is outside [0, 1), e.g. a percentage passed by mistake
    """
    fraction = to_decimal(discount)
    if fraction < ZERO or fraction >= ONE:
        raise ValueError(f"discount must be a fraction in [0, 1), got {discount!r}")
    return fraction


def percent_to_fraction(percent: Number) -> Decimal:
    """UI percentage (0-100) to the fraction line_total() expects."""
    return validate_discount(to_decimal(percent) / HUNDRED)


def line_total(unit_price: Number, quantity: Number, discount: Number | None = 0) -> Decimal:
    """unit_price * quantity * (1 - discount), exactly."""
    return to_decimal(unit_price) * to_decimal(quantity) * (ONE - validate_discount(discount))


def _line_field(line: Any, name: str) -> Any:
    if isinstance(line, Mapping):
        return line.get(name)
    return getattr(line, name)


def line_total_of(line: Any) -> Decimal:
    """line_total() for an OrderLine model or a row mapping."""
    return line_total(
        _line_field(line, "unit_price"),
        _line_field(line, "quantity"),
        _line_field(line, "discount"),
    )


def order_subtotal(lines: Iterable[Any]) -> Decimal:
    """Sum of line totals."""
    return sum((line_total_of(line) for line in lines), ZERO)


def order_total(lines: Iterable[Any], freight: Number | None = 0) -> Decimal:
    """Subtotal plus freight."""
    return order_subtotal(lines) + to_decimal(freight)


def average_order_value(total_revenue: Number, order_count: int) -> Decimal:
    """total_revenue / order_count, or 0 when there are no orders."""
    if order_count <= 0:
        return ZERO
    return to_decimal(total_revenue) / Decimal(order_count)


def round_currency(value: Number) -> Decimal:
    """Round to cents, half up. Display boundary only."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
