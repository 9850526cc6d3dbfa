"""
Expense Approval State Machine (``billing_services.approval_service``).

Responsibility
--------------
Approves, rejects and pays internal expenses.  The approval status lives
in the document details (``approval_status``, ``approved_by``,
``approval_date``) next to the payment status, which it drives when an
approved expense is paid.

Architecture position
---------------------
**Services layer** -- composes the family's approval ``Workflow`` from
``billing_modules.workflows`` with a ``DocumentStore``.  The helper
``resolve_approval_fields`` is shared with ``DocumentService`` so that
creation and update apply exactly the same rules.

Invariants enforced
-------------------
* An expense is approved or rejected only while pending, and paid only
  once approved.  ``rejected`` and ``paid`` are terminal.
* Approval decisions record the approver and the decision date.
* Paying an expense settles its payment status (payment date defaults to
  today).

Failure modes
-------------
* ``InvalidEnumValueError`` -- unknown approval status.
* ``InvalidStatusTransitionError`` -- e.g. rejected -> approved.
* ``DocumentNotFoundError`` -- unknown document id.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Mapping

from billing_config import BillingConfig, get_active_config
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.domain.documents import FinancialDocument
from billing_kernel.domain.store import DocumentStore
from billing_kernel.domain.workflow import Transition, Workflow
from billing_kernel.exceptions import (
    DocumentNotFoundError,
    InvalidEnumValueError,
    InvalidStatusTransitionError,
)
from billing_kernel.logging_config import LogContext, get_logger
from billing_modules.families import get_family
from billing_modules.workflows import approval_workflow, payment_workflow
from billing_services.payment_service import resolve_payment_fields

logger = get_logger("services.approval")


def resolve_approval_fields(
    workflow: Workflow,
    today: date,
    current: Mapping[str, Any] | None = None,
    status: Any = None,
    approved_by: Any = None,
) -> tuple[dict[str, Any], Transition | None]:
    """
    Detail values after applying a requested approval status.

    ``current`` is the stored details mapping, None for a new document.
    Returns the detail changes and the transition taken (None when the
    status does not change).
    """
    from_status = None
    if current is not None:
        from_status = current.get("approval_status") or workflow.initial_state
    if status is None or (isinstance(status, str) and not status.strip()):
        to_status = from_status or workflow.initial_state
    else:
        to_status = str(status).strip()
    if to_status not in workflow.states:
        raise InvalidEnumValueError("approval_status", status, workflow.states)

    fields: dict[str, Any] = {"approval_status": to_status}
    if from_status is None or from_status == to_status:
        return fields, None

    transition = workflow.find_transition(from_status, to_status)
    if transition is None:
        raise InvalidStatusTransitionError(workflow.name, from_status, to_status)
    if transition.records_approver:
        fields["approved_by"] = approved_by
        fields["approval_date"] = today.isoformat()
    return fields, transition


class ApprovalService:
    """
    Drives the approval status of one family's documents.

    Contract:
        Only families declared with ``requires_approval`` have an approval
        workflow; any other family is rejected at construction.
    """

    def __init__(
        self,
        store: DocumentStore,
        family: str,
        config: BillingConfig | None = None,
        clock: Clock | None = None,
    ):
        if not get_family(family).requires_approval:
            raise ValueError(f"{family} has no approval workflow")
        self._store = store
        self._config = config or get_active_config()
        self._policy = self._config.family(family)
        self._clock = clock or SystemClock()
        self.family = family
        self.workflow = approval_workflow(family)
        self._payments = payment_workflow(family, self._policy.settled_status)

    def approve(self, document_id: str, approved_by: Any = None) -> FinancialDocument:
        return self.update_status(document_id, "approved", approved_by=approved_by)

    def reject(self, document_id: str, approved_by: Any = None) -> FinancialDocument:
        return self.update_status(document_id, "rejected", approved_by=approved_by)

    def mark_paid(
        self,
        document_id: str,
        payment_date: Any = None,
        payment_reference: Any = None,
    ) -> FinancialDocument:
        return self.update_status(
            document_id,
            "paid",
            payment_date=payment_date,
            payment_reference=payment_reference,
        )

    def update_status(
        self,
        document_id: str,
        status: str,
        approved_by: Any = None,
        payment_date: Any = None,
        payment_reference: Any = None,
    ) -> FinancialDocument:
        """
        Move an expense to approval ``status``.

        Postconditions:
            - Approved and rejected expenses carry approver and date.
            - Paid expenses are settled in their payment status too.
        """
        with LogContext.bind(family=self.family, document_id=document_id):
            with self._store.atomic():
                current = self._store.find_by_id(document_id)
                if current is None:
                    raise DocumentNotFoundError(self.family, document_id)
                today = self._clock.today()
                changes, transition = resolve_approval_fields(
                    self.workflow, today, current.details, status, approved_by
                )
                fields: dict[str, Any] = {"details": {**current.details, **changes}}
                if transition is not None and transition.requires_payment_date:
                    fields.update(resolve_payment_fields(
                        self._policy,
                        self._payments,
                        today,
                        current=current,
                        status=self._policy.settled_status,
                        payment_date=payment_date,
                        payment_reference=payment_reference,
                    ))
                self._store.update(document_id, fields)
                updated = self._store.find_by_id(document_id)

            logger.info(
                "approval_status_updated",
                extra={
                    "document_number": updated.document_number,
                    "from_status": current.details.get("approval_status"),
                    "to_status": changes["approval_status"],
                    "payment_status": updated.payment_status,
                },
            )
            return updated
