"""
Tests for the payment / collection state machine.

Covers:
- Allowed and rejected status transitions
- Payment date defaulting and clearing
- Method and status vocabulary checks
- The overdue sweep
"""

from datetime import date

import pytest

from billing_kernel.domain.documents import FinancialDocument
from billing_kernel.domain.workflow import Guard
from billing_kernel.exceptions import (
    DocumentNotFoundError,
    GuardFailedError,
    InvalidDateError,
    InvalidEnumValueError,
    InvalidStatusTransitionError,
)
from billing_modules.workflows import payment_workflow
from billing_services import PaymentService, resolve_payment_fields
from billing_services.guards import GuardExecutor, default_guard_executor


def _create(harness, estate_id=3, issue_date="2025-07-10", **extra):
    data = {"owner_id": 7, "estate_id": estate_id, "issue_date": issue_date, "tax_base": "100"}
    data.update(extra)
    return harness.documents.create(data)


# ---------------------------------------------------------------------------
# update_status
# ---------------------------------------------------------------------------


class TestUpdateStatus:

    def test_pay_defaults_to_today(self, bills):
        bill = _create(bills)
        paid = bills.payments.update_status(bill.id, "paid")
        assert paid.payment_status == "paid"
        assert paid.payment_date == date(2025, 7, 31)

    def test_pay_with_date_and_reference(self, bills):
        bill = _create(bills)
        paid = bills.payments.update_status(
            bill.id, "paid", payment_date="2025-07-20", payment_reference="TRX-881"
        )
        assert paid.payment_date == date(2025, 7, 20)
        assert paid.payment_reference == "TRX-881"

    def test_reopen_clears_payment(self, bills):
        bill = _create(bills)
        bills.payments.update_status(bill.id, "paid", payment_reference="TRX-881")
        reopened = bills.payments.update_status(bill.id, "pending")
        assert reopened.payment_status == "pending"
        assert reopened.payment_date is None
        assert reopened.payment_reference is None

    def test_paid_to_overdue_rejected(self, bills):
        bill = _create(bills)
        bills.payments.update_status(bill.id, "paid")
        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            bills.payments.update_status(bill.id, "overdue")
        assert exc_info.value.from_status == "paid"
        assert exc_info.value.to_status == "overdue"
        assert bills.documents.get(bill.id).payment_status == "paid"

    def test_same_state_keeps_date(self, bills):
        bill = _create(bills)
        bills.payments.update_status(bill.id, "paid", payment_date="2025-07-20")
        again = bills.payments.update_status(bill.id, "paid", payment_method="cash")
        assert again.payment_date == date(2025, 7, 20)
        assert again.payment_method == "cash"

    def test_same_state_new_date(self, bills):
        bill = _create(bills)
        bills.payments.update_status(bill.id, "paid", payment_date="2025-07-20")
        again = bills.payments.update_status(bill.id, "paid", payment_date="2025-07-22")
        assert again.payment_date == date(2025, 7, 22)

    def test_dispute_keeps_no_date(self, bills):
        bill = _create(bills)
        disputed = bills.payments.update_status(bill.id, "disputed")
        assert disputed.payment_status == "disputed"
        assert disputed.payment_date is None

    def test_dispute_after_payment_keeps_date(self, bills):
        bill = _create(bills)
        bills.payments.update_status(bill.id, "paid", payment_date="2025-07-20")
        disputed = bills.payments.update_status(bill.id, "disputed")
        assert disputed.payment_date == date(2025, 7, 20)

    def test_unknown_status(self, bills):
        bill = _create(bills)
        with pytest.raises(InvalidEnumValueError):
            bills.payments.update_status(bill.id, "refunded")

    def test_unknown_method(self, bills):
        bill = _create(bills)
        with pytest.raises(InvalidEnumValueError) as exc_info:
            bills.payments.update_status(bill.id, "paid", payment_method="bitcoin")
        assert exc_info.value.field == "payment_method"

    def test_bad_payment_date(self, bills):
        bill = _create(bills)
        with pytest.raises(InvalidDateError) as exc_info:
            bills.payments.update_status(bill.id, "paid", payment_date="yesterday")
        assert exc_info.value.field == "payment_date"

    def test_unknown_document(self, bills):
        with pytest.raises(DocumentNotFoundError):
            bills.payments.update_status("missing", "paid")

    def test_manual_overdue_before_due_date(self, bills):
        bill = _create(bills)
        with pytest.raises(GuardFailedError) as exc_info:
            bills.payments.update_status(bill.id, "overdue")
        assert exc_info.value.guard == "due_date_elapsed"
        assert bills.documents.get(bill.id).payment_status == "pending"

    def test_manual_overdue_after_due_date(self, bills):
        bill = _create(bills, issue_date="2025-06-01")
        assert bills.payments.update_status(bill.id, "overdue").payment_status == "overdue"

    def test_collected_for_issued_invoices(self, invoices_issued):
        invoice = _create(invoices_issued, client_id=11)
        collected = invoices_issued.payments.update_status(invoice.id, "collected")
        assert collected.payment_date == date(2025, 7, 31)
        with pytest.raises(InvalidEnumValueError):
            invoices_issued.payments.update_status(invoice.id, "paid")

    def test_status_change_logged(self, bills, captured_logs):
        bill = _create(bills)
        bills.payments.update_status(bill.id, "paid")
        records = [r for r in captured_logs() if r["message"] == "payment_status_updated"]
        assert records[0]["from_status"] == "pending"
        assert records[0]["to_status"] == "paid"
        assert records[0]["payment_date"] == "2025-07-31"
        assert records[0]["document_id"] == bill.id


# ---------------------------------------------------------------------------
# Overdue sweep
# ---------------------------------------------------------------------------


class TestMarkOverdue:

    def test_marks_pending_past_due(self, bills):
        late = _create(bills, issue_date="2025-06-01")  # due 2025-07-01
        current = _create(bills, issue_date="2025-07-10")  # due 2025-08-09

        updated = bills.payments.mark_overdue()

        assert [d.id for d in updated] == [late.id]
        assert bills.documents.get(late.id).payment_status == "overdue"
        assert bills.documents.get(current.id).payment_status == "pending"

    def test_as_of(self, bills):
        _create(bills, issue_date="2025-06-01")
        _create(bills, issue_date="2025-07-10")
        assert len(bills.payments.mark_overdue(as_of=date(2025, 8, 10))) == 2

    def test_due_today_is_not_overdue(self, bills):
        _create(bills, issue_date="2025-07-01", due_date="2025-07-31")
        assert bills.payments.mark_overdue() == []

    def test_settled_documents_untouched(self, bills):
        bill = _create(bills, issue_date="2025-06-01")
        bills.payments.update_status(bill.id, "paid")
        assert bills.payments.mark_overdue() == []

    def test_clock_advance(self, bills, deterministic_clock):
        bill = _create(bills, issue_date="2025-07-10")
        deterministic_clock.advance_days(10)
        updated = bills.payments.mark_overdue()
        assert [d.id for d in updated] == [bill.id]

    def test_overdue_can_then_be_paid(self, bills):
        bill = _create(bills, issue_date="2025-06-01")
        bills.payments.mark_overdue()
        paid = bills.payments.update_status(bill.id, "paid")
        assert paid.payment_status == "paid"


# ---------------------------------------------------------------------------
# resolve_payment_fields
# ---------------------------------------------------------------------------


class TestResolvePaymentFields:

    @pytest.fixture
    def policy(self, billing_config):
        return billing_config.family("bills")

    @pytest.fixture
    def workflow(self):
        return payment_workflow("bills", "paid")

    def _doc(self, **fields) -> FinancialDocument:
        return FinancialDocument(
            family="bills",
            document_number="FACT-0001",
            issue_date=date(2025, 7, 1),
            corresponding_month="2025-07",
            **fields,
        )

    def test_new_document_defaults(self, policy, workflow):
        fields = resolve_payment_fields(policy, workflow, date(2025, 7, 31))
        assert fields == {
            "payment_status": "pending",
            "payment_date": None,
            "payment_method": "transfer",
            "payment_reference": None,
        }

    def test_new_document_may_start_disputed(self, policy, workflow):
        fields = resolve_payment_fields(policy, workflow, date(2025, 7, 31), status="disputed")
        assert fields["payment_status"] == "disputed"

    def test_blank_status_keeps_current(self, policy, workflow):
        current = self._doc(payment_status="overdue", payment_method="cash")
        fields = resolve_payment_fields(policy, workflow, date(2025, 7, 31), current=current, status=" ")
        assert fields["payment_status"] == "overdue"
        assert fields["payment_method"] == "cash"

    def test_reference_kept_when_omitted(self, policy, workflow):
        current = self._doc(
            payment_status="paid", payment_date=date(2025, 7, 2), payment_reference="R-1"
        )
        fields = resolve_payment_fields(policy, workflow, date(2025, 7, 31), current=current)
        assert fields["payment_reference"] == "R-1"
        assert fields["payment_date"] == date(2025, 7, 2)


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------


class TestGuardExecutor:

    def test_unknown_guard_never_holds(self, captured_logs):
        executor = GuardExecutor()
        assert not executor.evaluate(Guard("nobody_home", "unregistered"), {})
        records = [r for r in captured_logs() if r["message"] == "guard_no_evaluator"]
        assert records[0]["guard_name"] == "nobody_home"

    def test_due_date_elapsed(self):
        executor = default_guard_executor()
        guard = Guard("due_date_elapsed", "")
        doc = FinancialDocument(
            family="bills",
            document_number="FACT-0001",
            issue_date=date(2025, 7, 1),
            corresponding_month="2025-07",
            due_date=date(2025, 7, 31),
        )
        assert not executor.evaluate(guard, {"document": doc, "as_of": date(2025, 7, 31)})
        assert executor.evaluate(guard, {"document": doc, "as_of": date(2025, 8, 1)})

    def test_injected_executor_drives_transitions(
        self, bills, billing_config, deterministic_clock
    ):
        executor = default_guard_executor()
        executor.register("due_date_elapsed", lambda context: True)
        payments = PaymentService(
            bills.store, "bills", config=billing_config,
            clock=deterministic_clock, guards=executor,
        )
        bill = _create(bills)
        assert payments.update_status(bill.id, "overdue").payment_status == "overdue"

    def test_settlement_guard_blocks_without_date(self, billing_config):
        executor = GuardExecutor()
        with pytest.raises(GuardFailedError) as exc_info:
            resolve_payment_fields(
                billing_config.family("bills"),
                payment_workflow("bills", "paid"),
                date(2025, 7, 31),
                current=FinancialDocument(
                    family="bills",
                    document_number="FACT-0001",
                    issue_date=date(2025, 7, 1),
                    corresponding_month="2025-07",
                ),
                status="paid",
                guards=executor,
            )
        assert exc_info.value.guard == "payment_date_recorded"
