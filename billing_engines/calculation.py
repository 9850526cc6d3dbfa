"""
Document amount calculation.

Sums a document's cost lines and runs them through the Tax Calculator or
the Period Prorator, producing every derived amount a FinancialDocument
stores.  Pure, no I/O; the only errors raised are ValidationError
subclasses from the prorator.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Mapping

from billing_kernel.domain.documents import CalculationType
from billing_kernel.domain.values import ZERO, to_decimal
from billing_engines.proration import DEFAULT_MAX_PERIOD_DAYS, ProrationResult, prorate


@dataclass(frozen=True)
class DocumentAmounts:
    """Full amount breakdown of a document, ready to store or render."""

    calculation_type: CalculationType
    original_base: Decimal
    tax_base: Decimal
    days_billed: int
    days_in_month: int
    proportion_percent: Decimal
    vat_rate: Decimal
    withholding_rate: Decimal
    vat_amount: Decimal
    withholding_amount: Decimal
    total: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "calculation_type": self.calculation_type.value,
            "original_base": self.original_base,
            "tax_base": self.tax_base,
            "days_billed": self.days_billed,
            "days_in_month": self.days_in_month,
            "proportion_percent": self.proportion_percent,
            "vat_rate": self.vat_rate,
            "withholding_rate": self.withholding_rate,
            "vat_amount": self.vat_amount,
            "withholding_amount": self.withholding_amount,
            "total": self.total,
        }


def sum_lines(lines: Mapping[str, Any]) -> Decimal:
    return sum((to_decimal(v) for v in lines.values()), ZERO)


def calculate_document_amounts(
    lines: Mapping[str, Any],
    vat_rate: Any,
    withholding_rate: Any,
    is_proportional: bool = False,
    period_start: date | None = None,
    period_end: date | None = None,
    max_period_days: int = DEFAULT_MAX_PERIOD_DAYS,
) -> DocumentAmounts:
    """Compute the stored amounts of a document from its cost lines."""
    base = sum_lines(lines)
    if is_proportional:
        result = prorate(
            base, vat_rate, withholding_rate, period_start, period_end, max_period_days
        )
    else:
        result = prorate(base, vat_rate, withholding_rate, None, None)
    return _from_proration(
        result,
        CalculationType.PROPORTIONAL if is_proportional else CalculationType.NORMAL,
        to_decimal(vat_rate),
        to_decimal(withholding_rate),
    )


def _from_proration(
    result: ProrationResult,
    calculation_type: CalculationType,
    vat_rate: Decimal,
    withholding_rate: Decimal,
) -> DocumentAmounts:
    return DocumentAmounts(
        calculation_type=calculation_type,
        original_base=result.original_base,
        tax_base=result.prorated_base,
        days_billed=result.days_billed,
        days_in_month=result.days_in_month,
        proportion_percent=result.proportion_percent,
        vat_rate=vat_rate,
        withholding_rate=withholding_rate,
        vat_amount=result.vat_amount,
        withholding_amount=result.withholding_amount,
        total=result.total,
    )
