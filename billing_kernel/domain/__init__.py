"""Pure domain values for the billing kernel: money, dates, documents, workflows."""

from billing_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from billing_kernel.domain.documents import (
    CalculationType,
    FinancialDocument,
    PaymentMethod,
    PaymentStatus,
)
from billing_kernel.domain.store import DocumentStore
from billing_kernel.domain.values import round2, to_decimal
from billing_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "CalculationType",
    "Clock",
    "DeterministicClock",
    "DocumentStore",
    "FinancialDocument",
    "Guard",
    "PaymentMethod",
    "PaymentStatus",
    "SystemClock",
    "Transition",
    "Workflow",
    "round2",
    "to_decimal",
]
