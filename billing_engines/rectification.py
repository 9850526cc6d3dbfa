"""
Refund (rectification) line mirroring.

A refund negates each cost line of its original independently, so lines
that were zero stay zero and the refund total is recomputed from the
negated lines rather than copied as ``-original.total``.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Mapping

from billing_kernel.domain.values import ZERO, to_decimal


def negate_lines(lines: Mapping[str, Any]) -> dict[str, Decimal]:
    """``-abs(value)`` for every line; zero lines stay (unsigned) zero."""
    negated = {}
    for name, value in lines.items():
        amount = to_decimal(value)
        negated[name] = -abs(amount) if amount else ZERO
    return negated


def refund_notes(original_number: str, reason: str = "") -> str:
    notes = f"Abono de factura {original_number}"
    reason = (reason or "").strip()
    return f"{notes}: {reason}" if reason else notes
