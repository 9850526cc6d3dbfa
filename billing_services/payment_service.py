"""
Payment / Collection State Machine (``billing_services.payment_service``).

Responsibility
--------------
Validates and applies changes to a document's payment status, method,
date and reference, and runs the time-based overdue sweep.

Architecture position
---------------------
**Services layer** -- composes the family's payment ``Workflow`` from
``billing_modules.workflows`` with a ``DocumentStore``.  The helper
``resolve_payment_fields`` is shared with ``DocumentService`` so that
creation and update apply exactly the same rules.

Invariants enforced
-------------------
* Status and method are members of the family's closed vocabularies.
* A status change must be a transition of the workflow; same-state
  updates are always accepted.
* Transition flags decide the payment evidence: entering the settled
  state without a payment date records today, entering ``pending`` clears
  payment date and reference.
* Guarded transitions (``pending -> overdue`` needs an elapsed due date)
  are applied only when the guard holds.

Failure modes
-------------
* ``InvalidEnumValueError`` -- unknown status or method.
* ``InvalidStatusTransitionError`` -- e.g. paid -> overdue.
* ``GuardFailedError`` -- e.g. overdue before the due date.
* ``DocumentNotFoundError`` -- unknown document id.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from billing_config import BillingConfig, FamilyPolicy, get_active_config
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.domain.documents import FinancialDocument, PaymentStatus
from billing_kernel.domain.store import DocumentStore
from billing_kernel.domain.values import parse_date
from billing_kernel.domain.workflow import Workflow
from billing_kernel.exceptions import (
    DocumentNotFoundError,
    GuardFailedError,
    InvalidEnumValueError,
    InvalidStatusTransitionError,
)
from billing_kernel.logging_config import LogContext, get_logger
from billing_modules.workflows import payment_workflow
from billing_services.guards import GuardExecutor, default_guard_executor

logger = get_logger("services.payment")

PENDING = PaymentStatus.PENDING.value
OVERDUE = PaymentStatus.OVERDUE.value

_DEFAULT_GUARDS = default_guard_executor()


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def resolve_payment_fields(
    policy: FamilyPolicy,
    workflow: Workflow,
    today: date,
    current: FinancialDocument | None = None,
    status: Any = None,
    payment_date: Any = None,
    payment_method: Any = None,
    payment_reference: Any = None,
    guards: GuardExecutor | None = None,
) -> dict[str, Any]:
    """
    Payment field values after applying a requested change.

    ``current`` is None for a new document, in which case any valid status
    may be the starting one.  Omitted (None / blank) arguments keep the
    current value.  The effect on payment date and reference comes from the
    flags of the workflow transition taken; a new document or a same-state
    update gets the effects of any transition into its status.
    """
    from_status = current.payment_status if current is not None else None
    to_status = (from_status or PENDING) if _blank(status) else str(status).strip()
    if to_status not in policy.statuses:
        raise InvalidEnumValueError("payment_status", status, policy.statuses)

    method = current.payment_method if current is not None else policy.default_payment_method
    if not _blank(payment_method):
        method = str(payment_method).strip()
        if method not in policy.payment_methods:
            raise InvalidEnumValueError("payment_method", payment_method, policy.payment_methods)

    transition = None
    if from_status is not None and to_status != from_status:
        transition = workflow.find_transition(from_status, to_status)
        if transition is None:
            raise InvalidStatusTransitionError(workflow.name, from_status, to_status)
        entered = (transition,)
    else:
        entered = workflow.transitions_into(to_status)

    supplied_date = parse_date(payment_date, "payment_date")
    kept_date = current.payment_date if current is not None else None
    reference = None if _blank(payment_reference) else str(payment_reference).strip()
    if reference is None and current is not None:
        reference = current.payment_reference

    if any(t.requires_payment_date for t in entered):
        if supplied_date is not None:
            paid_on = supplied_date
        elif from_status == to_status and kept_date is not None:
            paid_on = kept_date
        else:
            paid_on = today
    elif any(t.clears_payment for t in entered):
        paid_on = None
        reference = None
    else:
        paid_on = supplied_date or kept_date

    if transition is not None and transition.guard is not None:
        context = {"document": current, "as_of": today, "payment_date": paid_on}
        if not (guards or _DEFAULT_GUARDS).evaluate(transition.guard, context):
            raise GuardFailedError(
                workflow.name, transition.guard.name, from_status, to_status
            )

    return {
        "payment_status": to_status,
        "payment_date": paid_on,
        "payment_method": method,
        "payment_reference": reference,
    }


class PaymentService:
    """
    Drives the payment status of one family's documents.

    Contract:
        Every change goes through ``resolve_payment_fields`` and is written
        inside the store's ``atomic()`` block.

    Non-goals:
        Does not post accounting entries or reconcile bank movements.
    """

    def __init__(
        self,
        store: DocumentStore,
        family: str,
        config: BillingConfig | None = None,
        clock: Clock | None = None,
        guards: GuardExecutor | None = None,
    ):
        self._store = store
        self._config = config or get_active_config()
        self._policy = self._config.family(family)
        self._clock = clock or SystemClock()
        self._guards = guards or _DEFAULT_GUARDS
        self.family = family
        self.workflow = payment_workflow(family, self._policy.settled_status)

    def update_status(
        self,
        document_id: str,
        status: str,
        payment_date: Any = None,
        payment_method: Any = None,
        payment_reference: Any = None,
    ) -> FinancialDocument:
        """
        Move a document to ``status``.

        Postconditions:
            - Settled documents carry a payment date.
            - Pending documents carry neither payment date nor reference.
        """
        with LogContext.bind(family=self.family, document_id=document_id):
            with self._store.atomic():
                current = self._store.find_by_id(document_id)
                if current is None:
                    raise DocumentNotFoundError(self.family, document_id)
                fields = resolve_payment_fields(
                    self._policy,
                    self.workflow,
                    self._clock.today(),
                    current=current,
                    status=status,
                    payment_date=payment_date,
                    payment_method=payment_method,
                    payment_reference=payment_reference,
                    guards=self._guards,
                )
                self._store.update(document_id, fields)
                updated = self._store.find_by_id(document_id)

            logger.info(
                "payment_status_updated",
                extra={
                    "document_number": updated.document_number,
                    "from_status": current.payment_status,
                    "to_status": updated.payment_status,
                    "payment_date": updated.payment_date,
                },
            )
            return updated

    def mark_overdue(self, as_of: date | None = None) -> list[FinancialDocument]:
        """Move pending documents whose due date is before ``as_of`` to overdue."""
        as_of = as_of or self._clock.today()
        transition = self.workflow.find_transition(PENDING, OVERDUE)
        updated: list[FinancialDocument] = []
        with LogContext.bind(family=self.family):
            with self._store.atomic():
                for doc in self._store.find_by_status(PENDING):
                    context = {"document": doc, "as_of": as_of}
                    if transition.guard is not None and not self._guards.evaluate(
                        transition.guard, context
                    ):
                        continue
                    self._store.update(doc.id, {"payment_status": OVERDUE})
                    updated.append(self._store.find_by_id(doc.id))
            logger.info(
                "overdue_sweep_completed",
                extra={"as_of": as_of, "overdue_count": len(updated)},
            )
        return updated
