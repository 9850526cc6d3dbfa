"""
Tax Calculator - VAT and IRPF withholding on a taxable base.

Pure functions with no I/O.  Rates are percentages (21 means 21%).

Usage:
    from decimal import Decimal
    from billing_engines.tax import compute_total, compute_breakdown

    compute_total("1000", 21, 15)          # Decimal("1060.00")
    compute_breakdown(Decimal("1000"), 21, 15).vat_amount  # Decimal("210")

The surfaced total is rounded once, half-up to cents.  The breakdown keeps
unrounded VAT / withholding amounts; callers round them independently when
they display them.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from billing_kernel.domain.values import HUNDRED, round2, to_decimal


@dataclass(frozen=True)
class TaxBreakdown:
    """Unrounded tax components of a base amount."""

    base: Decimal
    vat_rate: Decimal
    withholding_rate: Decimal
    vat_amount: Decimal
    withholding_amount: Decimal

    @property
    def total(self) -> Decimal:
        """Exact total; round with ``round2`` before surfacing."""
        return self.base + self.vat_amount - self.withholding_amount


def compute_breakdown(base: Any, vat_rate: Any, withholding_rate: Any) -> TaxBreakdown:
    """Split ``base`` into VAT and withholding amounts without rounding."""
    base_d = to_decimal(base)
    vat_d = to_decimal(vat_rate)
    wh_d = to_decimal(withholding_rate)
    return TaxBreakdown(
        base=base_d,
        vat_rate=vat_d,
        withholding_rate=wh_d,
        vat_amount=base_d * vat_d / HUNDRED,
        withholding_amount=base_d * wh_d / HUNDRED,
    )


def compute_total(base: Any, vat_rate: Any, withholding_rate: Any) -> Decimal:
    """
    ``base + base*vat/100 - base*withholding/100`` rounded to cents.

    Absent or unparsable inputs count as zero; this function never raises.
    """
    return round2(compute_breakdown(base, vat_rate, withholding_rate).total)
