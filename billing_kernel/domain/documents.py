"""
FinancialDocument -- the record every document family shares.

Responsibility:
    Immutable value object for bills, issued invoices, received invoices
    and expenses.  Services build new instances with ``with_changes`` and
    hand them to a ``DocumentStore``; nothing mutates a document in place.

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.

Invariants enforced:
    - ``total`` is derived; callers never supply it (the orchestrator
      recomputes it from ``lines``, rates and period on every write).
    - ``is_refund`` implies ``original_document_id`` is set.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from billing_kernel.domain.values import ZERO, year_month


class PaymentStatus(str, Enum):
    """Payment / collection status values across all families."""

    PENDING = "pending"
    PAID = "paid"
    COLLECTED = "collected"
    OVERDUE = "overdue"
    DISPUTED = "disputed"


class PaymentMethod(str, Enum):
    TRANSFER = "transfer"
    DIRECT_DEBIT = "direct_debit"
    CASH = "cash"
    CARD = "card"
    CHECK = "check"
    COMPANY_CARD = "company_card"
    PETTY_CASH = "petty_cash"


class CalculationType(str, Enum):
    NORMAL = "normal"
    PROPORTIONAL = "proportional"


@dataclass(frozen=True)
class FinancialDocument:
    """
    A persisted (or about-to-be-persisted) financial document.

    ``subject_refs`` holds the business references (owner, estate, client,
    supplier, property ...).  ``subject_key`` is the tuple of the family's
    duplicate-scope references, stringified, used for store lookups.
    ``lines`` holds the caller's full-period cost lines; ``tax_base`` is
    their (prorated) sum.
    """

    family: str
    document_number: str
    issue_date: date
    corresponding_month: str
    subject_refs: dict[str, Any] = field(default_factory=dict)
    subject_key: tuple[str, ...] = ()
    lines: dict[str, Decimal] = field(default_factory=dict)
    tax_base: Decimal = ZERO
    vat_rate: Decimal = ZERO
    withholding_rate: Decimal = ZERO
    vat_amount: Decimal = ZERO
    withholding_amount: Decimal = ZERO
    total: Decimal = ZERO
    is_proportional: bool = False
    period_start: date | None = None
    period_end: date | None = None
    due_date: date | None = None
    is_refund: bool = False
    original_document_id: str | None = None
    payment_status: str = PaymentStatus.PENDING.value
    payment_date: date | None = None
    payment_method: str | None = None
    payment_reference: str | None = None
    external_reference: str | None = None
    notes: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def issue_month(self) -> str:
        """Calendar month of ``issue_date``; the duplicate-guard period."""
        return year_month(self.issue_date)

    def with_changes(self, **changes: Any) -> FinancialDocument:
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["issue_month"] = self.issue_month
        return data
