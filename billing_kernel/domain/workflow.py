"""
Canonical workflow types (``billing_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for state machines.  The payment / collection
workflow of every family and the approval workflow of internal expenses
are declared with these types in ``billing_modules.workflows`` so Guard,
Transition and Workflow are defined once.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states belong to ``states`` and have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """A condition attached to a transition.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- see
    ``billing_services.guards.GuardExecutor``.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    ``clears_payment`` marks transitions that wipe payment date and
    reference; ``requires_payment_date`` marks transitions into a settled
    state, where a missing date defaults to today.  ``records_approver``
    marks approval decisions, which stamp approver and decision date.
    """
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    requires_payment_date: bool = False
    clears_payment: bool = False
    records_approver: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    Guarantees: ``initial_state`` is a member of ``states``.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"{self.name}: initial state '{self.initial_state}' not in states"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"{self.name}: transition {t.action} references unknown state"
                )
        for state in self.terminal_states:
            if state not in self.states:
                raise ValueError(f"{self.name}: terminal state '{state}' not in states")
            if self.targets_from(state):
                raise ValueError(f"{self.name}: terminal state '{state}' has exits")

    def find_transition(self, from_state: str, to_state: str) -> Transition | None:
        """Return the transition from ``from_state`` to ``to_state``, if any."""
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None

    def transitions_into(self, to_state: str) -> tuple[Transition, ...]:
        return tuple(t for t in self.transitions if t.to_state == to_state)

    def targets_from(self, from_state: str) -> tuple[str, ...]:
        return tuple(t.to_state for t in self.transitions if t.from_state == from_state)

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states
