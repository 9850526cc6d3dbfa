"""
Document Workflows (``billing_modules.workflows``).

Responsibility
--------------
Declares the payment-status state machine shared by every document
family, and the approval state machine of internal expenses.  Payment
workflows differ only in the name of the settled state (``paid`` for
bills and expenses, ``collected`` for issued invoices), so they are built
by a factory keyed on that name.

Architecture position
---------------------
**Modules layer** -- declarative workflow definitions.  Imports canonical
Guard, Transition, Workflow from ``billing_kernel.domain.workflow``.
Consumed by ``billing_services.payment_service`` and
``billing_services.approval_service``; guards are evaluated by
``billing_services.guards``.

Invariants enforced
-------------------
* Entering the settled state requires a payment date (defaulted to today
  by the service when absent).
* Entering ``pending`` clears payment date and reference.
* ``pending -> overdue`` is guarded by the due date having elapsed.
* Same-state updates are not transitions; the service always allows them.
* An expense is approved or rejected only while pending, and paid only
  once approved; ``rejected`` and ``paid`` are terminal.
"""

from __future__ import annotations

from functools import lru_cache

from billing_kernel.domain.workflow import Guard, Transition, Workflow
from billing_kernel.logging_config import get_logger

logger = get_logger("modules.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

PAYMENT_DATE_RECORDED = Guard(
    name="payment_date_recorded",
    description="Settlement carries a payment date (defaults to today)",
)

DUE_DATE_ELAPSED = Guard(
    name="due_date_elapsed",
    description="Document due date is before the evaluation date",
)


# -----------------------------------------------------------------------------
# Payment workflow factory
# -----------------------------------------------------------------------------


def _registered(workflow: Workflow) -> Workflow:
    logger.info(
        "workflow_registered",
        extra={
            "workflow_name": workflow.name,
            "state_count": len(workflow.states),
            "transition_count": len(workflow.transitions),
        },
    )
    return workflow


@lru_cache(maxsize=None)
def payment_workflow(family: str, settled_state: str) -> Workflow:
    """Build the payment workflow of ``family`` with its settled state name."""
    settle = dict(
        action="settle", guard=PAYMENT_DATE_RECORDED, requires_payment_date=True
    )
    return _registered(Workflow(
        name=f"{family}_payment",
        description=f"Payment lifecycle of {family}",
        initial_state="pending",
        states=("pending", settled_state, "overdue", "disputed"),
        transitions=(
            Transition("pending", settled_state, **settle),
            Transition("pending", "overdue", action="mark_overdue", guard=DUE_DATE_ELAPSED),
            Transition("pending", "disputed", action="dispute"),
            Transition("overdue", settled_state, **settle),
            Transition("overdue", "disputed", action="dispute"),
            Transition("overdue", "pending", action="reopen", clears_payment=True),
            Transition(settled_state, "disputed", action="dispute"),
            Transition(settled_state, "pending", action="reopen", clears_payment=True),
            Transition("disputed", settled_state, **settle),
            Transition("disputed", "pending", action="reopen", clears_payment=True),
        ),
    ))


# -----------------------------------------------------------------------------
# Expense approval workflow
# -----------------------------------------------------------------------------

APPROVAL_STATES = ("pending", "approved", "rejected", "paid")

# Approved or paid expenses can no longer be deleted.
APPROVAL_LOCKED_STATES = ("approved", "paid")


@lru_cache(maxsize=None)
def approval_workflow(family: str) -> Workflow:
    """Approval lifecycle: pending -> approved | rejected, approved -> paid."""
    return _registered(Workflow(
        name=f"{family}_approval",
        description=f"Approval lifecycle of {family}",
        initial_state="pending",
        states=APPROVAL_STATES,
        transitions=(
            Transition("pending", "approved", action="approve", records_approver=True),
            Transition("pending", "rejected", action="reject", records_approver=True),
            Transition("approved", "paid", action="mark_paid", requires_payment_date=True),
        ),
        terminal_states=("rejected", "paid"),
    ))
