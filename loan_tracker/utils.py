"""Utility functions for the loan tracker.

This module provides helpers for parsing user input into Python data types,
rounding money values and handling dates, including adding calendar months
to a ``datetime.date``.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, getcontext
import calendar
from typing import Optional

from .errors import ValidationError

getcontext().prec = 28  # increase decimal precision to avoid rounding errors

CENT = Decimal("0.01")


def quantize_money(value: Decimal) -> Decimal:
    """Round a value to whole cents, halves rounded away from zero."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def add_months(dt: date, months: int) -> date:
    """Return a new date a number of months after ``dt``.

    The day of the month is clamped to the last valid day if needed (e.g.,
    adding one month to Jan 31 yields Feb 28 or 29).
    """
    year = dt.year + (dt.month - 1 + months) // 12
    month = (dt.month - 1 + months) % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def parse_date(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` string into a ``date``.

    Full ISO timestamps (as written by older versions of the tracker) are
    accepted too; only their date part is kept.

    Raises
    ------
    ValidationError
        If the string is not a valid date.
    """
    text = value.strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError as exc:
        raise ValidationError(f"Invalid date: {value}") from exc


def decimal_from_str(value: str) -> Decimal:
    """Convert a numeric string into a ``Decimal``.

    The function strips any commas and handles both integer and float-like
    strings. It raises ``ValidationError`` if conversion fails or the value
    is not a finite number.
    """
    try:
        cleaned = str(value).replace(",", "").strip()
        result = Decimal(cleaned)
    except (InvalidOperation, TypeError) as exc:
        raise ValidationError(f"Invalid numeric value: {value}") from exc
    if not result.is_finite():
        raise ValidationError(f"Invalid numeric value: {value}")
    return result


def parse_amount(value: str) -> Decimal:
    """Parse a money amount with optional ``k``/``m`` suffixes.

    ``"500k"`` means 500 000 and ``"1.2m"`` means 1 200 000.
    """
    text = str(value).strip().lower().replace(",", "")
    factor = Decimal(1)
    if text.endswith("k"):
        factor = Decimal(1_000)
        text = text[:-1]
    elif text.endswith("m"):
        factor = Decimal(1_000_000)
        text = text[:-1]
    return decimal_from_str(text) * factor


def format_remaining(remaining: Optional[int]) -> str:
    return "N/A" if remaining is None else str(remaining)
