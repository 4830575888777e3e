"""
Money Utilities - Safe Decimal operations for monetary values.

Calculators work in Decimal and only hand floats back at the item boundary,
which avoids float drift in sums like subtotal + tax == total.
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Union

Number = Union[str, int, float, Decimal]


def to_decimal(value: Union[Number, None]) -> Decimal:
    """
    Convert any value to Decimal safely.

    Args:
        value: Value to convert (str, int, float, Decimal, or None)

    Returns:
        Decimal representation of the value, or Decimal("0") if None/invalid
    """
    if value is None:
        return Decimal("0")

    if isinstance(value, Decimal):
        return value

    try:
        # Go through str so 0.1 stays 0.1
        if isinstance(value, float):
            return Decimal(str(value))
        return Decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        return Decimal("0")


def round_money(value: Number, decimals: int = 2) -> Decimal:
    """
    Round a monetary value half-up to the given number of decimals.

    Args:
        value: Value to round
        decimals: Decimal places to keep

    Returns:
        Rounded Decimal value
    """
    precision = Decimal(1).scaleb(-decimals)
    return to_decimal(value).quantize(precision, rounding=ROUND_HALF_UP)


def to_float(value: Number) -> float:
    """
    Convert Decimal to float for item attributes and JSON serialization.

    Use only at boundaries, not for internal calculations.
    """
    return float(to_decimal(value))


def add(a: Number, b: Number) -> Decimal:
    """Safe addition of monetary values."""
    return to_decimal(a) + to_decimal(b)


def subtract(a: Number, b: Number) -> Decimal:
    """Safe subtraction of monetary values."""
    return to_decimal(a) - to_decimal(b)


def multiply(value: Number, factor: Number) -> Decimal:
    """Safe multiplication of monetary value by a factor."""
    return to_decimal(value) * to_decimal(factor)


def divide(value: Number, divisor: Number) -> Decimal:
    """Safe division of monetary value."""
    d = to_decimal(divisor)
    if d == 0:
        return Decimal("0")
    return to_decimal(value) / d


def percent(value: Number, percent_value: Number) -> Decimal:
    """Calculate percentage of a monetary value."""
    return multiply(value, divide(percent_value, 100))


def format_number(
    value: Number,
    decimals: int = 2,
    decimal_point: str = ".",
    thousands_separator: str = ",",
) -> str:
    """
    Format a number with grouped thousands and a fixed number of decimals.

    Separators are independent, so ``format_number(1234.5, 2, ",", ".")``
    gives ``"1.234,50"``.
    """
    rounded = round_money(value, decimals)
    formatted = f"{rounded:,.{decimals}f}"
    return formatted.translate(str.maketrans({",": thousands_separator, ".": decimal_point}))
