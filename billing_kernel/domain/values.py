"""
Money and calendar value coercion (``billing_kernel.domain.values``).

Responsibility
--------------
Turns raw request values into ``Decimal`` amounts and ``date`` objects,
and owns the single rounding rule used for every surfaced amount.

Architecture position
---------------------
**Kernel domain layer** -- pure functions.  ZERO I/O.

Invariants enforced
-------------------
* Money is ``Decimal`` end to end; floats are converted through ``str``.
* ``round2`` is ROUND_HALF_UP to two places and is applied only to final,
  surfaced values.  Negative values round away from zero, so a negated
  computation rounds to the exact mirror of the positive one.
* ``to_decimal`` never raises: absent or unparsable input is zero.
* ``parse_decimal`` is the strict variant used on request input.

Failure modes
-------------
* ``parse_date`` raises ``InvalidDateError`` on malformed input.
* ``parse_year_month`` raises ``InvalidCorrespondingMonthError``.
"""

from __future__ import annotations

import calendar
import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from billing_kernel.exceptions import (
    InvalidCorrespondingMonthError,
    InvalidDateError,
)

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")

_YEAR_MONTH = re.compile(r"^(\d{4})-(\d{2})$")


def to_decimal(value: Any) -> Decimal:
    """Coerce ``value`` to Decimal; None, blanks and garbage become zero."""
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        return value if value.is_finite() else ZERO
    if isinstance(value, int):
        return Decimal(value)
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return ZERO
    return result if result.is_finite() else ZERO


def parse_decimal(value: Any) -> Decimal | None:
    """
    Strict counterpart of ``to_decimal`` for request input.

    Returns None for absent or blank input and raises ``ValueError`` for
    anything that is present but not a finite number.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        raise ValueError(f"{value!r} is not a number")
    if isinstance(value, int):
        return Decimal(value)
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValueError(f"{value!r} is not a number") from None
    if not result.is_finite():
        raise ValueError(f"{value!r} is not a finite number")
    return result


def round2(value: Decimal) -> Decimal:
    """Round to cents, half away from zero."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_date(value: Any, field: str = "date") -> date | None:
    """
    Parse a calendar date.

    Accepts ``date``, ``datetime`` (date part) or an ISO string whose first
    ten characters are ``YYYY-MM-DD``.  ``None`` and blank strings are
    treated as absent and return ``None``.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            raise InvalidDateError(field, value) from None
    raise InvalidDateError(field, value)


def year_month(day: date) -> str:
    """Render the YYYY-MM accounting month of ``day``."""
    return f"{day.year:04d}-{day.month:02d}"


def parse_year_month(value: Any) -> str:
    """Validate a YYYY-MM string and return it normalized."""
    match = _YEAR_MONTH.match(str(value).strip()) if value is not None else None
    if match is None or not 1 <= int(match.group(2)) <= 12:
        raise InvalidCorrespondingMonthError(value)
    return match.group(0)


def days_in_month(day: date) -> int:
    return calendar.monthrange(day.year, day.month)[1]


_TRAILING_COUNTER = re.compile(r"^(.*?)(\d+)$")

NUMBER_WIDTH = 4


def format_number(prefix: str, counter: int) -> str:
    """``FACT-`` + 42 -> ``FACT-0042``; wider counters are not truncated."""
    return f"{prefix}{counter:0{NUMBER_WIDTH}d}"


def split_number(document_number: str | None) -> tuple[str, int] | None:
    """
    Split ``FACT-G-0042`` into ``("FACT-G-", 42)``.

    Stores use this to keep a per-prefix high-water mark.  Returns None for
    numbers without a trailing counter.
    """
    match = _TRAILING_COUNTER.match(document_number or "")
    if match is None:
        return None
    return match.group(1), int(match.group(2))
