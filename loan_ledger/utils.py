"""Utility functions for the loan ledger.

This module provides helpers for parsing user input into Python data types,
for rounding monetary amounts to cents and for handling dates, including
adding calendar months and parsing ISO or year-month strings to
``datetime.date`` instances.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
import calendar
from typing import Union

getcontext().prec = 28  # increase decimal precision to avoid rounding errors

CENT = Decimal("0.01")
ZERO = Decimal("0")

Number = Union[Decimal, int, str]


def to_money(value: Number) -> Decimal:
    """Round an amount to cents using half-up rounding."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def is_negligible(value: Decimal, tolerance: Decimal = CENT) -> bool:
    """Return True when ``value`` is below the monetary tolerance.

    Amounts under one cent are treated as zero everywhere in the engine.
    """
    return value.copy_abs() < tolerance


def monthly_rate(annual_rate_percent: Decimal) -> Decimal:
    """Convert an annual nominal rate in percent to a monthly decimal rate."""
    return (Decimal(annual_rate_percent) / Decimal(100)) / Decimal(12)


def parse_date(value: str) -> date:
    """Parse ``YYYY-MM-DD`` or ``YYYY-MM`` into a ``date``.

    A bare year-month resolves to the first day of the month.

    Raises
    ------
    ValueError
        If the string is not a valid date.
    """
    try:
        parts = value.strip().split("-")
        if len(parts) not in (2, 3):
            raise ValueError
        year = int(parts[0])
        month = int(parts[1])
        day = int(parts[2]) if len(parts) == 3 else 1
        return date(year, month, day)
    except (AttributeError, TypeError, ValueError) as exc:
        raise ValueError(f"Invalid date string: {value}") from exc


def add_months(dt: date, months: int) -> date:
    """Return a new date a number of months after ``dt``.

    The day of the month is clamped to the last valid day if needed (e.g.,
    adding one month to Jan 31 yields Feb 28 or 29).
    """
    year = dt.year + (dt.month - 1 + months) // 12
    month = (dt.month - 1 + months) % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def months_between(start: date, end: date) -> int:
    """Number of calendar months from ``start`` to ``end``, ignoring days."""
    return (end.year - start.year) * 12 + (end.month - start.month)


def decimal_from_str(value: str) -> Decimal:
    """Convert a numeric string into a ``Decimal``.

    The function strips any commas and whitespace. It raises ``ValueError``
    if conversion fails.
    """
    try:
        cleaned = str(value).replace(",", "").strip()
        result = Decimal(cleaned)
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Invalid numeric value: {value}") from exc
    if not result.is_finite():
        raise ValueError(f"Invalid numeric value: {value}")
    return result
