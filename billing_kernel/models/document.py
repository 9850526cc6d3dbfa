"""
Module: billing_kernel.models.document
Responsibility: ORM persistence for FinancialDocument and the per-family
    numbering high-water marks.
Architecture position: Kernel > Models.  Imported by the SQLAlchemy store
    and by db.engine.create_tables.

Invariants enforced:
    - (family, document_number) is unique.
    - document_sequences holds, per (family, prefix), the highest counter
      ever issued; deleting documents never lowers it.
    - The (family, "") row of document_sequences is the family lock row
      taken with SELECT ... FOR UPDATE around numbering and inserts.
"""

from __future__ import annotations

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID as PyUUID

from sqlalchemy import JSON, BigInteger, Boolean, Date, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import Base, TimestampedBase, UUIDString
from billing_kernel.domain.documents import FinancialDocument
from billing_kernel.domain.values import round2, to_decimal

FAMILY_LOCK_PREFIX = ""


def encode_subject_key(subject_key: tuple[str, ...]) -> str:
    return json.dumps(list(subject_key))


class FinancialDocumentModel(TimestampedBase):
    """One row per document of any family."""

    __tablename__ = "financial_documents"
    __table_args__ = (
        UniqueConstraint("family", "document_number", name="uq_document_family_number"),
        Index("idx_document_subject_month", "family", "subject_key", "issue_month"),
        Index("idx_document_status", "family", "payment_status"),
        Index("idx_document_original", "original_document_id"),
    )

    family: Mapped[str] = mapped_column(String(40), nullable=False)
    document_number: Mapped[str] = mapped_column(String(50), nullable=False)
    subject_key: Mapped[str] = mapped_column(String(500), nullable=False)
    subject_refs: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    issue_month: Mapped[str] = mapped_column(String(7), nullable=False)
    corresponding_month: Mapped[str] = mapped_column(String(7), nullable=False)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    lines: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    tax_base: Mapped[Decimal]
    vat_rate: Mapped[Decimal]
    withholding_rate: Mapped[Decimal]
    vat_amount: Mapped[Decimal]
    withholding_amount: Mapped[Decimal]
    total: Mapped[Decimal]

    is_proportional: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    period_start: Mapped[date | None] = mapped_column(Date, nullable=True)
    period_end: Mapped[date | None] = mapped_column(Date, nullable=True)

    is_refund: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    original_document_id: Mapped[PyUUID | None] = mapped_column(UUIDString(), nullable=True)

    payment_status: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(30), nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    external_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    @classmethod
    def from_domain(cls, document: FinancialDocument) -> FinancialDocumentModel:
        model = cls()
        model.apply(_document_columns(document))
        return model

    def apply(self, values: dict[str, Any]) -> None:
        for key, value in values.items():
            setattr(self, key, value)

    def to_domain(self) -> FinancialDocument:
        return FinancialDocument(
            id=str(self.id),
            family=self.family,
            document_number=self.document_number,
            subject_refs=dict(self.subject_refs or {}),
            subject_key=tuple(json.loads(self.subject_key)),
            issue_date=self.issue_date,
            corresponding_month=self.corresponding_month,
            due_date=self.due_date,
            lines={k: to_decimal(v) for k, v in (self.lines or {}).items()},
            tax_base=round2(self.tax_base),
            vat_rate=round2(self.vat_rate),
            withholding_rate=round2(self.withholding_rate),
            vat_amount=round2(self.vat_amount),
            withholding_amount=round2(self.withholding_amount),
            total=round2(self.total),
            is_proportional=self.is_proportional,
            period_start=self.period_start,
            period_end=self.period_end,
            is_refund=self.is_refund,
            original_document_id=(
                str(self.original_document_id) if self.original_document_id else None
            ),
            payment_status=self.payment_status,
            payment_date=self.payment_date,
            payment_method=self.payment_method,
            payment_reference=self.payment_reference,
            external_reference=self.external_reference,
            notes=self.notes,
            details=dict(self.details or {}),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class DocumentSequence(Base):
    """Per (family, prefix) numbering high-water mark and family lock row."""

    __tablename__ = "document_sequences"
    __table_args__ = (
        UniqueConstraint("family", "prefix", name="uq_sequence_family_prefix"),
    )

    family: Mapped[str] = mapped_column(String(40), nullable=False)
    prefix: Mapped[str] = mapped_column(String(30), nullable=False)
    last_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


_STORED_FIELDS = (
    "family",
    "document_number",
    "subject_refs",
    "issue_date",
    "corresponding_month",
    "due_date",
    "tax_base",
    "vat_rate",
    "withholding_rate",
    "vat_amount",
    "withholding_amount",
    "total",
    "is_proportional",
    "period_start",
    "period_end",
    "is_refund",
    "payment_status",
    "payment_date",
    "payment_method",
    "payment_reference",
    "external_reference",
    "notes",
    "details",
)


def _json_safe(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, PyUUID):
        return str(value)
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


def column_values(fields: dict[str, Any]) -> dict[str, Any]:
    """Translate FinancialDocument field values into model column values."""
    values: dict[str, Any] = {}
    for key, value in fields.items():
        if key in ("id", "created_at", "updated_at"):
            continue
        if key == "subject_key":
            values["subject_key"] = encode_subject_key(tuple(value))
        elif key == "lines":
            values["lines"] = {k: str(to_decimal(v)) for k, v in value.items()}
        elif key in ("subject_refs", "details"):
            values[key] = _json_safe(dict(value))
        elif key == "original_document_id":
            values[key] = PyUUID(str(value)) if value else None
        elif key == "issue_date":
            values["issue_date"] = value
            values["issue_month"] = f"{value.year:04d}-{value.month:02d}"
        else:
            values[key] = value
    return values


def _document_columns(document: FinancialDocument) -> dict[str, Any]:
    fields = {name: getattr(document, name) for name in _STORED_FIELDS}
    fields["subject_key"] = document.subject_key
    fields["lines"] = document.lines
    fields["original_document_id"] = document.original_document_id
    return column_values(fields)
