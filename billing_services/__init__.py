"""Lifecycle orchestrator, payment and approval state machines."""

from billing_services.approval_service import ApprovalService
from billing_services.document_service import DocumentService
from billing_services.payment_service import PaymentService, resolve_payment_fields

__all__ = ["ApprovalService", "DocumentService", "PaymentService", "resolve_payment_fields"]
