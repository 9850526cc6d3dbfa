"""
Period Prorator - day-based partial-period billing.

Pure functions with no I/O.

A proportional document bills ``days_billed / days_in_month`` of a
full-month base.  ``days_billed`` counts both endpoints.  ``days_in_month``
is the length of the month containing ``period_start``, also for periods
that cross into the next month.  That rule is inherited from existing
documents and changing it would alter stored totals.

Usage:
    from billing_engines.proration import prorate

    result = prorate(1000, 21, 15, "2025-07-17", "2025-07-31")
    result.days_billed         # 15
    result.proportion_percent  # Decimal("48.39")
    result.total               # Decimal("512.90")
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from billing_kernel.domain.values import (
    HUNDRED,
    days_in_month,
    parse_date,
    round2,
    to_decimal,
)
from billing_kernel.exceptions import InvalidPeriodError, PeriodTooLongError
from billing_engines.tax import compute_breakdown

DEFAULT_MAX_PERIOD_DAYS = 31

MONTH_NAMES = (
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
)


@dataclass(frozen=True)
class ProrationResult:
    """Surfaced (rounded) amounts of a prorated computation."""

    original_base: Decimal
    prorated_base: Decimal
    days_billed: int
    days_in_month: int
    proportion_percent: Decimal
    vat_amount: Decimal
    withholding_amount: Decimal
    total: Decimal

    @property
    def is_full_period(self) -> bool:
        return self.days_billed == 0


def days_billed(period_start: date, period_end: date) -> int:
    """Inclusive day count between two dates."""
    return (period_end - period_start).days + 1


def validate_period(
    period_start: date,
    period_end: date,
    max_period_days: int = DEFAULT_MAX_PERIOD_DAYS,
) -> int:
    """
    Check period bounds and return the inclusive day count.

    Raises:
        InvalidPeriodError: ``period_start`` is not before ``period_end``.
        PeriodTooLongError: more than ``max_period_days`` days are covered.
    """
    if period_start >= period_end:
        raise InvalidPeriodError(
            "period_end",
            period_start,
            period_end,
            "period_end must be after period_start",
        )
    days = days_billed(period_start, period_end)
    if days > max_period_days:
        raise PeriodTooLongError(days, max_period_days)
    return days


def prorate(
    base: Any,
    vat_rate: Any,
    withholding_rate: Any,
    period_start: Any,
    period_end: Any,
    max_period_days: int = DEFAULT_MAX_PERIOD_DAYS,
) -> ProrationResult:
    """
    Prorate ``base`` over a period and compute taxes on the prorated base.

    Missing dates yield the full-period result (100%, zero day counts).
    Only the returned values are rounded; the prorated base feeds the tax
    computation unrounded.
    """
    start = parse_date(period_start, "period_start")
    end = parse_date(period_end, "period_end")
    base_d = to_decimal(base)

    if start is None or end is None:
        breakdown = compute_breakdown(base_d, vat_rate, withholding_rate)
        return ProrationResult(
            original_base=round2(base_d),
            prorated_base=round2(base_d),
            days_billed=0,
            days_in_month=0,
            proportion_percent=round2(HUNDRED),
            vat_amount=round2(breakdown.vat_amount),
            withholding_amount=round2(breakdown.withholding_amount),
            total=round2(breakdown.total),
        )

    days = validate_period(start, end, max_period_days)
    month_days = days_in_month(start)
    prorated = base_d * days / month_days
    breakdown = compute_breakdown(prorated, vat_rate, withholding_rate)

    return ProrationResult(
        original_base=round2(base_d),
        prorated_base=round2(prorated),
        days_billed=days,
        days_in_month=month_days,
        proportion_percent=round2(Decimal(days) * HUNDRED / month_days),
        vat_amount=round2(breakdown.vat_amount),
        withholding_amount=round2(breakdown.withholding_amount),
        total=round2(breakdown.total),
    )


def describe_period(period_start: Any, period_end: Any) -> str:
    """Spanish description of a billing period, e.g. "Del 17 al 31 de julio de 2025"."""
    start = parse_date(period_start, "period_start")
    end = parse_date(period_end, "period_end")
    if start is None or end is None:
        return "Mes completo"
    if (start.year, start.month) == (end.year, end.month):
        return f"Del {start.day} al {end.day} de {MONTH_NAMES[start.month - 1]} de {start.year}"
    if start.year == end.year:
        return (
            f"Del {start.day} de {MONTH_NAMES[start.month - 1]} "
            f"al {end.day} de {MONTH_NAMES[end.month - 1]} de {start.year}"
        )
    return (
        f"Del {start.day} de {MONTH_NAMES[start.month - 1]} de {start.year} "
        f"al {end.day} de {MONTH_NAMES[end.month - 1]} de {end.year}"
    )
