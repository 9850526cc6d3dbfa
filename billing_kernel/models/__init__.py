"""ORM models for the billing kernel."""

from billing_kernel.models.document import (
    DocumentSequence,
    FinancialDocumentModel,
    column_values,
    encode_subject_key,
)

__all__ = [
    "DocumentSequence",
    "FinancialDocumentModel",
    "column_values",
    "encode_subject_key",
]
