"""
Tests for document family definitions and payment workflows.
"""

import pytest

from billing_engines.duplicates import DuplicateRule
from billing_kernel.domain.workflow import Transition, Workflow
from billing_kernel.exceptions import UnknownDocumentFamilyError
from billing_modules.families import (
    FAMILIES,
    RENTAL_EXPENSE_LINES,
    DocumentFamily,
    get_family,
)
from billing_modules.workflows import (
    DUE_DATE_ELAPSED,
    PAYMENT_DATE_RECORDED,
    approval_workflow,
    payment_workflow,
)


# ---------------------------------------------------------------------------
# Families
# ---------------------------------------------------------------------------


class TestFamilies:

    def test_every_configured_family_is_defined(self, billing_config):
        assert set(FAMILIES) == {f.name for f in billing_config.families}

    def test_get_family(self):
        assert get_family("bills").subject_key_fields == ("owner_id", "estate_id")

    def test_unknown_family(self):
        with pytest.raises(UnknownDocumentFamilyError):
            get_family("receipts")

    def test_registry_is_read_only(self):
        with pytest.raises(TypeError):
            FAMILIES["other"] = get_family("bills")

    def test_rental_expenses_shape(self):
        family = get_family("rental_expenses")
        assert family.line_names == RENTAL_EXPENSE_LINES
        assert len(family.line_names) == 8
        assert family.duplicate_rule is DuplicateRule.LINE_MATCH
        assert not family.applies_vat
        assert not family.applies_withholding

    def test_internal_expenses_shape(self):
        family = get_family("internal_expenses")
        assert family.duplicate_rule is DuplicateRule.NONE
        assert "amount" in family.required_fields
        assert family.positive_lines
        assert family.supports_recurrence
        assert family.requires_approval
        assert family.detail_flags == (("is_deductible", True),)

    def test_ownership_percent_on_owner_families(self):
        for name in ("bills", "invoices_issued"):
            assert get_family(name).percent_fields == ("ownership_percent",)

    def test_percent_fields_must_be_detail_fields(self):
        with pytest.raises(ValueError, match="detail"):
            DocumentFamily(
                name="broken",
                subject_fields=("owner_id",),
                subject_key_fields=("owner_id",),
                line_names=("tax_base",),
                duplicate_rule=DuplicateRule.SUBJECT_PERIOD,
                percent_fields=("ownership_percent",),
            )

    def test_received_invoices_scoped_by_supplier(self):
        family = get_family("invoices_received")
        assert family.subject_key_fields == ("supplier_id",)
        assert family.duplicate_rule is DuplicateRule.EXTERNAL_REFERENCE
        assert "external_reference" in family.required_fields

    def test_bills_estate_is_immutable(self):
        assert get_family("bills").immutable_fields == ("estate_id",)

    def test_subject_key_stringifies_and_blanks_none(self):
        family = get_family("internal_expenses")
        refs = family.subject_refs({"property_id": None, "description": "x"})
        assert refs == {"property_id": None}
        assert family.subject_key(refs) == ("",)

    def test_subject_key_order(self):
        family = get_family("bills")
        refs = family.subject_refs({"estate_id": 3, "owner_id": 7, "client_id": 9})
        assert family.subject_key(refs) == ("7", "3")

    def test_key_fields_must_be_subject_fields(self):
        with pytest.raises(ValueError, match="subject key fields"):
            DocumentFamily(
                name="broken",
                subject_fields=("owner_id",),
                subject_key_fields=("estate_id",),
                line_names=("tax_base",),
                duplicate_rule=DuplicateRule.SUBJECT_PERIOD,
            )

    def test_at_least_one_line(self):
        with pytest.raises(ValueError, match="cost line"):
            DocumentFamily(
                name="broken",
                subject_fields=(),
                subject_key_fields=(),
                line_names=(),
                duplicate_rule=DuplicateRule.SUBJECT_PERIOD,
            )


# ---------------------------------------------------------------------------
# Workflows
# ---------------------------------------------------------------------------


class TestPaymentWorkflow:

    def test_states_use_settled_name(self):
        workflow = payment_workflow("invoices_issued", "collected")
        assert workflow.states == ("pending", "collected", "overdue", "disputed")
        assert workflow.initial_state == "pending"
        assert workflow.name == "invoices_issued_payment"

    def test_cached_per_family(self):
        assert payment_workflow("bills", "paid") is payment_workflow("bills", "paid")

    @pytest.mark.parametrize(
        "from_state, to_state",
        [
            ("pending", "paid"),
            ("pending", "overdue"),
            ("pending", "disputed"),
            ("overdue", "paid"),
            ("overdue", "pending"),
            ("paid", "disputed"),
            ("paid", "pending"),
            ("disputed", "paid"),
            ("disputed", "pending"),
        ],
    )
    def test_allowed_transitions(self, from_state, to_state):
        assert payment_workflow("bills", "paid").find_transition(from_state, to_state) is not None

    @pytest.mark.parametrize(
        "from_state, to_state",
        [("paid", "overdue"), ("disputed", "overdue"), ("overdue", "overdue")],
    )
    def test_rejected_transitions(self, from_state, to_state):
        assert payment_workflow("bills", "paid").find_transition(from_state, to_state) is None

    def test_settle_requires_payment_date(self):
        transition = payment_workflow("bills", "paid").find_transition("pending", "paid")
        assert transition.requires_payment_date
        assert transition.guard is PAYMENT_DATE_RECORDED

    def test_reopen_clears_payment(self):
        transition = payment_workflow("bills", "paid").find_transition("paid", "pending")
        assert transition.clears_payment
        assert transition.action == "reopen"

    def test_targets_from_overdue(self):
        targets = payment_workflow("bills", "paid").targets_from("overdue")
        assert set(targets) == {"paid", "disputed", "pending"}

    def test_overdue_guarded_by_due_date(self):
        transition = payment_workflow("bills", "paid").find_transition("pending", "overdue")
        assert transition.guard is DUE_DATE_ELAPSED

    def test_transitions_into_settled(self):
        sources = {t.from_state for t in payment_workflow("bills", "paid").transitions_into("paid")}
        assert sources == {"pending", "overdue", "disputed"}


class TestApprovalWorkflow:

    @pytest.fixture
    def workflow(self):
        return approval_workflow("internal_expenses")

    def test_shape(self, workflow):
        assert workflow.name == "internal_expenses_approval"
        assert workflow.initial_state == "pending"
        assert workflow.states == ("pending", "approved", "rejected", "paid")

    @pytest.mark.parametrize(
        "from_state, to_state, action",
        [
            ("pending", "approved", "approve"),
            ("pending", "rejected", "reject"),
            ("approved", "paid", "mark_paid"),
        ],
    )
    def test_allowed_transitions(self, workflow, from_state, to_state, action):
        assert workflow.find_transition(from_state, to_state).action == action

    @pytest.mark.parametrize(
        "from_state, to_state",
        [("pending", "paid"), ("rejected", "approved"), ("paid", "approved"), ("approved", "rejected")],
    )
    def test_rejected_transitions(self, workflow, from_state, to_state):
        assert workflow.find_transition(from_state, to_state) is None

    def test_terminal_states(self, workflow):
        assert workflow.is_terminal("rejected")
        assert workflow.is_terminal("paid")
        assert not workflow.is_terminal("approved")
        assert workflow.targets_from("paid") == ()

    def test_decisions_record_approver(self, workflow):
        assert workflow.find_transition("pending", "approved").records_approver
        assert not workflow.find_transition("approved", "paid").records_approver
        assert workflow.find_transition("approved", "paid").requires_payment_date


class TestWorkflowValidation:

    def test_initial_state_must_exist(self):
        with pytest.raises(ValueError, match="initial state"):
            Workflow(
                name="w", description="", initial_state="draft",
                states=("pending",), transitions=(),
            )

    def test_transition_states_must_exist(self):
        with pytest.raises(ValueError, match="unknown state"):
            Workflow(
                name="w", description="", initial_state="pending",
                states=("pending",),
                transitions=(Transition("pending", "paid", action="settle"),),
            )

    def test_terminal_state_must_exist(self):
        with pytest.raises(ValueError, match="not in states"):
            Workflow(
                name="w", description="", initial_state="pending",
                states=("pending",), transitions=(), terminal_states=("closed",),
            )

    def test_terminal_state_has_no_exits(self):
        with pytest.raises(ValueError, match="has exits"):
            Workflow(
                name="w", description="", initial_state="pending",
                states=("pending", "paid"),
                transitions=(Transition("paid", "pending", action="reopen"),),
                terminal_states=("paid",),
            )
