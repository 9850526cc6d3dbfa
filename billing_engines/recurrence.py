"""
Recurring expense scheduling.

A recurring internal expense carries a recurrence period and the date of
its next occurrence, computed from the expense date.  Adding months clamps
to the last day of the target month (31 January + 1 month is 28 or 29
February), so the next occurrence always stays in the intended month.
"""

from __future__ import annotations

import calendar
from datetime import date
from enum import Enum
from typing import Any

from billing_kernel.exceptions import InvalidRecurrenceError


class RecurrencePeriod(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


_MONTHS = {
    RecurrencePeriod.MONTHLY: 1,
    RecurrencePeriod.QUARTERLY: 3,
    RecurrencePeriod.YEARLY: 12,
}


def add_months(day: date, months: int) -> date:
    index = day.month - 1 + months
    year, month = day.year + index // 12, index % 12 + 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def parse_period(value: Any) -> RecurrencePeriod:
    try:
        return RecurrencePeriod(str(value).strip())
    except ValueError:
        allowed = ", ".join(p.value for p in RecurrencePeriod)
        raise InvalidRecurrenceError(
            "recurrence_period", value, f"must be one of {allowed}"
        ) from None


def next_occurrence(expense_date: date, period: Any) -> date:
    """Date of the next occurrence of an expense recurring every ``period``."""
    return add_months(expense_date, _MONTHS[parse_period(period)])


def validate_recurrence(
    is_recurring: bool,
    period: Any,
    next_date: Any = None,
) -> RecurrencePeriod | None:
    """
    Check the recurrence fields of an expense.

    A recurring expense needs a known period; a one-off expense may carry
    neither a period nor a next occurrence date.
    """
    if is_recurring:
        if period is None or not str(period).strip():
            raise InvalidRecurrenceError(
                "recurrence_period", period, "recurring expenses need a recurrence period"
            )
        return parse_period(period)
    if period:
        raise InvalidRecurrenceError(
            "recurrence_period", period, "one-off expenses cannot have a recurrence period"
        )
    if next_date:
        raise InvalidRecurrenceError(
            "next_occurrence_date", next_date, "one-off expenses cannot have a next occurrence"
        )
    return None
