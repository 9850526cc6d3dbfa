"""
Billing Engines - pure computation for financial documents.

No I/O, no logging, no shared state.  Safe to call concurrently.

    tax            VAT / IRPF withholding totals
    proration      day-based partial-period billing
    calculation    document amounts from cost lines
    numbering      next document number of a family partition
    duplicates     duplicate guard rules
    rectification  refund line mirroring
    recurrence     next occurrence of recurring expenses
"""

from billing_engines.calculation import DocumentAmounts, calculate_document_amounts
from billing_engines.duplicates import DuplicateRule, find_conflict, has_conflict
from billing_engines.numbering import next_number, parse_number
from billing_engines.proration import (
    ProrationResult,
    days_billed,
    describe_period,
    prorate,
    validate_period,
)
from billing_engines.rectification import negate_lines
from billing_engines.recurrence import RecurrencePeriod, next_occurrence, validate_recurrence
from billing_engines.tax import TaxBreakdown, compute_breakdown, compute_total

__all__ = [
    "DocumentAmounts",
    "DuplicateRule",
    "ProrationResult",
    "RecurrencePeriod",
    "TaxBreakdown",
    "calculate_document_amounts",
    "compute_breakdown",
    "compute_total",
    "days_billed",
    "describe_period",
    "find_conflict",
    "has_conflict",
    "negate_lines",
    "next_number",
    "next_occurrence",
    "parse_number",
    "prorate",
    "validate_period",
    "validate_recurrence",
]
