"""
Workflow guard evaluation (``billing_services.guards``).

Guards are declared on transitions by name and description only.  This
module holds the evaluation logic per guard name; the payment service
calls it before applying a guarded transition.

Context is a plain mapping.  Keys read by the built-in evaluators:

    document      the stored ``FinancialDocument`` (before the change)
    as_of         evaluation date
    payment_date  payment date the transition would record
"""

from __future__ import annotations

from typing import Any, Callable, Mapping

from billing_kernel.domain.workflow import Guard
from billing_kernel.logging_config import get_logger

logger = get_logger("services.guards")


def _payment_date_recorded(context: Mapping[str, Any]) -> bool:
    return context.get("payment_date") is not None


def _due_date_elapsed(context: Mapping[str, Any]) -> bool:
    document = context.get("document")
    as_of = context.get("as_of")
    due_date = getattr(document, "due_date", None)
    return due_date is not None and as_of is not None and due_date < as_of


class GuardExecutor:
    """Evaluates workflow guards against a context mapping."""

    def __init__(self) -> None:
        self._evaluators: dict[str, Callable[[Mapping[str, Any]], bool]] = {}

    def register(
        self, guard_name: str, evaluator: Callable[[Mapping[str, Any]], bool]
    ) -> None:
        self._evaluators[guard_name] = evaluator

    def evaluate(self, guard: Guard, context: Mapping[str, Any]) -> bool:
        """True if ``guard`` holds; unknown guards never hold."""
        fn = self._evaluators.get(guard.name)
        if fn is None:
            logger.warning("guard_no_evaluator", extra={"guard_name": guard.name})
            return False
        return fn(context)


def default_guard_executor() -> GuardExecutor:
    ex = GuardExecutor()
    ex.register("payment_date_recorded", _payment_date_recorded)
    ex.register("due_date_elapsed", _due_date_elapsed)
    return ex
