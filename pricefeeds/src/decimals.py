"""Fixed-point decimal scaling.

Prices are integers scaled by ``10**decimals``. Growing the precision
multiplies exactly; shrinking it divides and rounds half away from zero,
which is round-half-up for the non-negative values prices always are.

.. code-block:: python

    >>> convert_decimals(1_500_000, 6, 18)
    1500000000000000000
    >>> convert_decimals(1_234_567_890_123_456_789, 18, 6)
    1234568
    >>> convert_decimals(None, 18, 6) is None
    True
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Callable


def div_round(numerator: int, denominator: int) -> int:
    """Integer division rounding half away from zero.

    :param numerator: Dividend.
    :param denominator: Divisor (non-zero).
    :returns: Rounded quotient.
    :raises ZeroDivisionError: If denominator is zero.
    """
    if denominator == 0:
        raise ZeroDivisionError("division by zero")
    negative = (numerator < 0) != (denominator < 0)
    quotient, remainder = divmod(abs(numerator), abs(denominator))
    if remainder * 2 >= abs(denominator):
        quotient += 1
    return -quotient if negative else quotient


def convert_decimals(value: int | None, from_decimals: int, to_decimals: int) -> int | None:
    """Rescale a fixed-point integer between precisions.

    :param value: Fixed-point value, or None for absent data.
    :param from_decimals: Precision of ``value``.
    :param to_decimals: Desired precision.
    :returns: Rescaled value, or None if ``value`` is None.
    """
    if value is None:
        return None
    value = int(value)
    if to_decimals >= from_decimals:
        return value * 10 ** (to_decimals - from_decimals)
    return div_round(value, 10 ** (from_decimals - to_decimals))


def decimal_converter(from_decimals: int, to_decimals: int) -> Callable[[int | None], int | None]:
    """Build a reusable converter between two fixed precisions.

    :param from_decimals: Source precision.
    :param to_decimals: Target precision.
    :returns: Single-argument conversion function.
    """

    def convert(value: int | None) -> int | None:
        return convert_decimals(value, from_decimals, to_decimals)

    return convert


def to_fixed(value: str | int | float | Decimal, decimals: int) -> int:
    """Parse a human-readable number into a fixed-point integer.

    Floats are routed through ``str`` so ``0.1`` becomes exactly ``10**17``
    at 18 decimals.

    :param value: Number to parse.
    :param decimals: Target precision.
    :returns: Fixed-point integer (ROUND_HALF_UP beyond ``decimals``).
    :raises decimal.InvalidOperation: If ``value`` is not numeric.
    """
    if isinstance(value, float):
        value = str(value)
    with localcontext() as ctx:
        ctx.prec = 100
        scaled = Decimal(value).scaleb(decimals)
        return int(scaled.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def from_fixed(value: int, decimals: int) -> Decimal:
    """Convert a fixed-point integer back into an exact Decimal."""
    with localcontext() as ctx:
        ctx.prec = 100
        return Decimal(value).scaleb(-decimals)


def format_fixed(value: int | None, decimals: int, places: int = 6) -> str:
    """Render a fixed-point value for logging.

    :param value: Fixed-point value or None.
    :param decimals: Precision of ``value``.
    :param places: Digits after the decimal point.
    :returns: Formatted string, ``"n/a"`` for None.
    """
    if value is None:
        return "n/a"
    return f"{from_fixed(value, decimals):.{places}f}"
