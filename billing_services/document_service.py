"""
Document Lifecycle Orchestrator (``billing_services.document_service``).

Responsibility
--------------
Creates, updates and deletes the documents of one family, and spawns
refunds (rectifying documents) from originals.  Pure computation is
delegated to ``billing_engines``; persistence to the injected
``DocumentStore``.

Architecture position
---------------------
**Services layer** -- ``DocumentService`` is the sole public entry point
for document lifecycle operations of a family.  It composes the family
definition (``billing_modules.families``), the family policy
(``billing_config``), the engines and the store.

Invariants enforced
-------------------
* ``total`` and every derived amount are computed here on every write;
  a caller-supplied ``total`` is ignored.
* Numbering, duplicate check and insert run inside one ``atomic()``
  block of the family store, so concurrent creations cannot share a
  number or both pass the duplicate guard.
* Numbers are never reused: they come from the store's high-water mark,
  and a renumbered document may only move above it.
* Approved or paid expenses cannot be deleted.
* A refund references exactly one non-refund original and is never
  itself refunded or edited (only its payment status may change).
* Either a document is fully computed and stored, or nothing is stored.

Failure modes
-------------
* ``ValidationError`` subclasses -- bad or missing input.
* ``DuplicateDocumentError`` / ``DocumentNumberInUseError`` -- collisions.
* ``InvalidDocumentNumberError`` -- renumbering outside the regular prefix.
* ``DocumentNotFoundError`` -- unknown id.
* ``StateError`` subclasses -- refund rules, ``DocumentLockedError``.
* Store exceptions propagate after rollback; nothing is retried.

Audit relevance
---------------
Structured log events (``document_created``, ``document_updated``,
``document_deleted``, ``refund_created``, ``duplicate_rejected``) carry
family, id, number and total.

Usage::

    service = DocumentService(InMemoryDocumentStore("bills"), "bills")
    bill = service.create({
        "owner_id": 7, "estate_id": 3, "issue_date": "2025-07-17",
        "tax_base": "1000", "vat_rate": 21, "withholding_rate": 15,
        "is_proportional": True,
        "period_start": "2025-07-17", "period_end": "2025-07-31",
    })
    bill.document_number  # "FACT-0001"
    bill.total            # Decimal("512.90")
"""

from __future__ import annotations

import copy
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Mapping

from billing_config import BillingConfig, get_active_config
from billing_engines.calculation import DocumentAmounts, calculate_document_amounts
from billing_engines.duplicates import DuplicateRule, find_conflict
from billing_engines.numbering import next_number
from billing_engines.proration import describe_period
from billing_engines.rectification import negate_lines, refund_notes
from billing_engines.recurrence import next_occurrence, validate_recurrence
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.domain.documents import FinancialDocument, PaymentStatus
from billing_kernel.domain.store import DocumentStore
from billing_kernel.domain.workflow import Transition
from billing_kernel.domain.values import (
    HUNDRED,
    ZERO,
    parse_date,
    parse_decimal,
    parse_year_month,
    split_number,
    to_decimal,
    year_month,
)
from billing_kernel.exceptions import (
    DocumentLockedError,
    DocumentNotFoundError,
    DocumentNumberInUseError,
    DuplicateDocumentError,
    InvalidAmountError,
    InvalidDocumentNumberError,
    InvalidEnumValueError,
    InvalidRateError,
    MissingFieldError,
    OriginalAlreadyRefundedError,
    RefundImmutableError,
    RefundOfRefundError,
)
from billing_kernel.logging_config import LogContext, get_logger
from billing_modules.families import DocumentFamily, get_family
from billing_modules.workflows import (
    APPROVAL_LOCKED_STATES,
    approval_workflow,
    payment_workflow,
)
from billing_services.approval_service import resolve_approval_fields
from billing_services.payment_service import resolve_payment_fields

logger = get_logger("services.document")

_TRUE_STRINGS = frozenset({"1", "true", "yes", "on", "si", "sí"})

_RECURRENCE_FIELDS = ("is_recurring", "recurrence_period", "next_occurrence_date")

# Never taken from caller input.
_READ_ONLY_FIELDS = frozenset({
    "id", "family", "total", "vat_amount", "withholding_amount",
    "is_refund", "original_document_id", "subject_key", "created_at", "updated_at",
})


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


class DocumentService:
    """
    Lifecycle orchestrator for one document family.

    Contract:
        Input is a plain mapping of raw field values (strings, numbers,
        dates).  Subject references are trusted to exist; their format is
        the caller's concern.

    Guarantees:
        - Returned documents are the stored records, fully populated.
        - Every public write runs inside ``store.atomic()``.

    Non-goals:
        - No rendering, no HTTP concerns, no referential checks on owners,
          clients, suppliers or properties.
    """

    def __init__(
        self,
        store: DocumentStore,
        family: str,
        config: BillingConfig | None = None,
        clock: Clock | None = None,
    ):
        self._store = store
        self._family: DocumentFamily = get_family(family)
        self._config = config or get_active_config()
        self._policy = self._config.family(family)
        self._clock = clock or SystemClock()
        self._workflow = payment_workflow(family, self._policy.settled_status)
        self._approval = (
            approval_workflow(family) if self._family.requires_approval else None
        )

    @property
    def family(self) -> str:
        return self._family.name

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, document_id: str) -> FinancialDocument:
        """Return the document or raise ``DocumentNotFoundError``."""
        document = self._store.find_by_id(document_id)
        if document is None:
            raise DocumentNotFoundError(self.family, document_id)
        return document

    def calculation_details(self, document_id: str) -> DocumentAmounts:
        """Recompute the full amount breakdown of a stored document."""
        document = self.get(document_id)
        return self._amounts(
            document.lines,
            document.vat_rate,
            document.withholding_rate,
            document.is_proportional,
            document.period_start,
            document.period_end,
        )

    @staticmethod
    def describe_period(period_start: Any, period_end: Any) -> str:
        return describe_period(period_start, period_end)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, data: Mapping[str, Any]) -> FinancialDocument:
        """
        Validate, compute, duplicate-check, number and store a new document.

        Preconditions:
            - ``issue_date`` and the family's required fields are present.
            - Proportional documents carry ``period_start`` < ``period_end``.
        Postconditions:
            - The stored document has the next number of the regular
              partition and a server-computed ``total``.
        Raises:
            ValidationError, DuplicateDocumentError.
        """
        data = {k: v for k, v in data.items() if k not in _READ_ONLY_FIELDS}
        with LogContext.bind(family=self.family):
            issue_date = self._require_date(data, "issue_date")
            for name in self._family.required_fields:
                if _blank(data.get(name)):
                    raise MissingFieldError(name, self.family)

            subject_refs = self._family.subject_refs(data)
            lines = self._parse_lines(data, {})
            vat_rate, withholding_rate = self._parse_rates(data, None)
            is_proportional, period_start, period_end = self._parse_period(data, None)
            amounts = self._amounts(
                lines, vat_rate, withholding_rate, is_proportional, period_start, period_end
            )
            corresponding_month = (
                year_month(issue_date)
                if _blank(data.get("corresponding_month"))
                else parse_year_month(data["corresponding_month"])
            )
            due_date = parse_date(data.get("due_date"), "due_date") or (
                issue_date + timedelta(days=self._config.documents.default_due_days)
            )
            self._check_category(data)
            details, _ = self._build_details(data, None, issue_date, issue_date_changed=True)
            payment = resolve_payment_fields(
                self._policy,
                self._workflow,
                self._clock.today(),
                status=data.get("payment_status"),
                payment_date=data.get("payment_date"),
                payment_method=data.get("payment_method"),
                payment_reference=data.get("payment_reference"),
            )

            candidate = FinancialDocument(
                family=self.family,
                document_number="",
                issue_date=issue_date,
                corresponding_month=corresponding_month,
                subject_refs=subject_refs,
                subject_key=self._family.subject_key(subject_refs),
                lines=lines,
                is_proportional=is_proportional,
                period_start=period_start,
                period_end=period_end,
                due_date=due_date,
                external_reference=None if _blank(data.get("external_reference"))
                else str(data["external_reference"]).strip(),
                notes=data.get("notes"),
                details=details,
                **self._amount_fields(amounts),
                **payment,
            )

            with self._store.atomic():
                self._reject_duplicates(candidate)
                prefix = self._policy.regular_prefix
                number = next_number(self._store.find_last_number(prefix), prefix)
                document_id = self._store.insert(candidate.with_changes(document_number=number))
                created = self._store.find_by_id(document_id)

            logger.info(
                "document_created",
                extra={
                    "document_id": created.id,
                    "document_number": created.document_number,
                    "calculation_type": amounts.calculation_type.value,
                    "total": created.total,
                },
            )
            return created

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update(self, document_id: str, data: Mapping[str, Any]) -> FinancialDocument:
        """
        Merge ``data`` into a stored document and recompute its amounts.

        Fields absent from ``data`` keep their stored values.  Fields the
        family declares immutable (``estate_id`` on bills) are dropped.

        Raises:
            DocumentNotFoundError, RefundImmutableError,
            DocumentNumberInUseError, ValidationError.
        """
        data = {
            k: v for k, v in data.items()
            if k not in _READ_ONLY_FIELDS and k not in self._family.immutable_fields
        }
        with LogContext.bind(family=self.family, document_id=document_id):
            with self._store.atomic():
                existing = self.get(document_id)
                if existing.is_refund:
                    raise RefundImmutableError(document_id)

                for name in self._family.required_fields:
                    if name in data and _blank(data[name]):
                        raise MissingFieldError(name, self.family)

                issue_date = existing.issue_date
                if "issue_date" in data:
                    issue_date = self._require_date(data, "issue_date")

                subject_refs = dict(existing.subject_refs)
                for name in self._family.subject_fields:
                    if name in data:
                        subject_refs[name] = data[name]

                lines = self._parse_lines(data, existing.lines)
                vat_rate, withholding_rate = self._parse_rates(data, existing)
                is_proportional, period_start, period_end = self._parse_period(data, existing)
                amounts = self._amounts(
                    lines, vat_rate, withholding_rate, is_proportional, period_start, period_end
                )

                if not _blank(data.get("corresponding_month")):
                    corresponding_month = parse_year_month(data["corresponding_month"])
                elif issue_date != existing.issue_date:
                    corresponding_month = year_month(issue_date)
                else:
                    corresponding_month = existing.corresponding_month

                due_date = existing.due_date
                if "due_date" in data:
                    due_date = parse_date(data["due_date"], "due_date") or (
                        issue_date + timedelta(days=self._config.documents.default_due_days)
                    )

                self._check_category(data)
                details, approval = self._build_details(
                    data, existing.details, issue_date,
                    issue_date_changed=issue_date != existing.issue_date,
                )
                payment_status = data.get("payment_status")
                if approval is not None and approval.requires_payment_date and _blank(
                    payment_status
                ):
                    payment_status = self._policy.settled_status
                payment = resolve_payment_fields(
                    self._policy,
                    self._workflow,
                    self._clock.today(),
                    current=existing,
                    status=payment_status,
                    payment_date=data.get("payment_date"),
                    payment_method=data.get("payment_method"),
                    payment_reference=data.get("payment_reference"),
                )

                fields: dict[str, Any] = {
                    "issue_date": issue_date,
                    "corresponding_month": corresponding_month,
                    "subject_refs": subject_refs,
                    "subject_key": self._family.subject_key(subject_refs),
                    "lines": lines,
                    "is_proportional": is_proportional,
                    "period_start": period_start,
                    "period_end": period_end,
                    "due_date": due_date,
                    "details": details,
                    **self._amount_fields(amounts),
                    **payment,
                }
                if "external_reference" in data:
                    fields["external_reference"] = (
                        None if _blank(data["external_reference"])
                        else str(data["external_reference"]).strip()
                    )
                if "notes" in data:
                    fields["notes"] = data["notes"]

                new_number = data.get("document_number")
                if not _blank(new_number) and str(new_number).strip() != existing.document_number:
                    new_number = str(new_number).strip()
                    self._check_renumber(existing, new_number)
                    fields["document_number"] = new_number

                self._store.update(document_id, fields)
                updated = self._store.find_by_id(document_id)

            logger.info(
                "document_updated",
                extra={
                    "document_number": updated.document_number,
                    "updated_fields": sorted(data),
                    "total": updated.total,
                },
            )
            return updated

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete(self, document_id: str) -> FinancialDocument:
        """Delete a document outright and return the removed record."""
        with LogContext.bind(family=self.family, document_id=document_id):
            with self._store.atomic():
                existing = self.get(document_id)
                approval_status = existing.details.get("approval_status")
                if self._approval is not None and approval_status in APPROVAL_LOCKED_STATES:
                    raise DocumentLockedError(document_id, approval_status, "delete")
                self._store.delete(document_id)
            logger.info(
                "document_deleted",
                extra={
                    "document_number": existing.document_number,
                    "is_refund": existing.is_refund,
                },
            )
            return existing

    # ------------------------------------------------------------------
    # Refund
    # ------------------------------------------------------------------

    def create_refund(self, original_id: str, reason: str = "") -> FinancialDocument:
        """
        Create the rectifying document of ``original_id``.

        Classification fields (subject, period, corresponding month,
        proportional flag, rates) are copied; every cost line is negated
        independently and the amounts are recomputed from the negated lines.

        Raises:
            DocumentNotFoundError, RefundOfRefundError,
            OriginalAlreadyRefundedError.
        """
        with LogContext.bind(family=self.family, document_id=original_id):
            with self._store.atomic():
                original = self.get(original_id)
                if original.is_refund:
                    raise RefundOfRefundError(original_id)
                previous = self._store.find_refunds_of(original.id)
                if previous and not self._config.documents.allow_multiple_refunds:
                    raise OriginalAlreadyRefundedError(
                        original.id, tuple(r.id for r in previous)
                    )

                lines = negate_lines(original.lines)
                amounts = self._amounts(
                    lines,
                    original.vat_rate,
                    original.withholding_rate,
                    original.is_proportional,
                    original.period_start,
                    original.period_end,
                )
                today = self._clock.today()
                details = copy.deepcopy(original.details)
                if reason:
                    details["refund_reason"] = reason
                # A refund starts its own approval and never recurs.
                if self._approval is not None:
                    details["approval_status"] = self._approval.initial_state
                    details.pop("approved_by", None)
                    details.pop("approval_date", None)
                if self._family.supports_recurrence:
                    details.update(dict.fromkeys(_RECURRENCE_FIELDS))
                    details["is_recurring"] = False

                prefix = self._policy.refund_prefix
                refund = FinancialDocument(
                    family=self.family,
                    document_number=next_number(self._store.find_last_number(prefix), prefix),
                    issue_date=today,
                    corresponding_month=original.corresponding_month,
                    subject_refs=copy.deepcopy(original.subject_refs),
                    subject_key=original.subject_key,
                    lines=lines,
                    is_proportional=original.is_proportional,
                    period_start=original.period_start,
                    period_end=original.period_end,
                    due_date=today + timedelta(days=self._config.documents.default_due_days),
                    is_refund=True,
                    original_document_id=original.id,
                    payment_status=PaymentStatus.PENDING.value,
                    payment_method=original.payment_method,
                    external_reference=original.external_reference,
                    notes=refund_notes(original.document_number, reason),
                    details=details,
                    **self._amount_fields(amounts),
                )
                refund_id = self._store.insert(refund)
                created = self._store.find_by_id(refund_id)

            logger.info(
                "refund_created",
                extra={
                    "refund_id": created.id,
                    "refund_number": created.document_number,
                    "original_number": original.document_number,
                    "total": created.total,
                },
            )
            return created

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _reject_duplicates(self, candidate: FinancialDocument) -> None:
        rule = self._family.duplicate_rule
        if rule is DuplicateRule.NONE:
            return
        period = None if rule is DuplicateRule.EXTERNAL_REFERENCE else candidate.issue_month
        existing = self._store.find_by_subject_and_period(candidate.subject_key, period)
        conflict = find_conflict(candidate, existing, rule, self._family.line_names)
        if conflict is None:
            return
        logger.warning(
            "duplicate_rejected",
            extra={
                "duplicate_rule": rule.value,
                "subject_key": list(candidate.subject_key),
                "year_month": period,
                "existing_id": conflict.id,
                "existing_number": conflict.document_number,
            },
        )
        raise DuplicateDocumentError(self.family, candidate.subject_key, period, conflict.id)

    def _amounts(
        self,
        lines: Mapping[str, Any],
        vat_rate: Any,
        withholding_rate: Any,
        is_proportional: bool,
        period_start: date | None,
        period_end: date | None,
    ) -> DocumentAmounts:
        return calculate_document_amounts(
            lines,
            vat_rate,
            withholding_rate,
            is_proportional,
            period_start,
            period_end,
            self._config.proration.max_period_days,
        )

    @staticmethod
    def _amount_fields(amounts: DocumentAmounts) -> dict[str, Decimal]:
        return {
            "tax_base": amounts.tax_base,
            "vat_rate": amounts.vat_rate,
            "withholding_rate": amounts.withholding_rate,
            "vat_amount": amounts.vat_amount,
            "withholding_amount": amounts.withholding_amount,
            "total": amounts.total,
        }

    @staticmethod
    def _require_date(data: Mapping[str, Any], field: str) -> date:
        value = parse_date(data.get(field), field)
        if value is None:
            raise MissingFieldError(field)
        return value

    def _check_renumber(self, existing: FinancialDocument, number: str) -> None:
        """A new number must be unused, in the regular partition and never issued."""
        for holder in self._store.find_by_number(number):
            if holder.id != existing.id:
                raise DocumentNumberInUseError(self.family, number, holder.id)
        prefix = self._policy.regular_prefix
        parts = split_number(number)
        if parts is None or parts[0] != prefix:
            raise InvalidDocumentNumberError(number, prefix)
        issued = split_number(self._store.find_last_number(prefix))
        if issued is not None and parts[1] <= issued[1]:
            raise DocumentNumberInUseError(self.family, number, None)

    def _parse_lines(
        self, data: Mapping[str, Any], current: Mapping[str, Decimal]
    ) -> dict[str, Decimal]:
        lines: dict[str, Decimal] = {}
        for name in self._family.line_names:
            if name in data:
                try:
                    amount = parse_decimal(data[name])
                except ValueError:
                    raise InvalidAmountError(name, data[name], "not a number") from None
                if amount is None:
                    amount = ZERO
                elif amount < ZERO:
                    raise InvalidAmountError(name, data[name])
            else:
                amount = to_decimal(current.get(name))
            if self._family.positive_lines and amount <= ZERO:
                raise InvalidAmountError(
                    name, data.get(name, amount), "amount must be greater than zero"
                )
            lines[name] = amount
        return lines

    @staticmethod
    def _parse_rate(data: Mapping[str, Any], field: str) -> Decimal | None:
        try:
            return parse_decimal(data.get(field))
        except ValueError:
            raise InvalidRateError(field, data[field], "not a number") from None

    def _parse_rates(
        self, data: Mapping[str, Any], current: FinancialDocument | None
    ) -> tuple[Decimal, Decimal]:
        tax = self._config.tax

        vat_rate = ZERO
        if self._family.applies_vat:
            vat_rate = self._parse_rate(data, "vat_rate")
            if vat_rate is None:
                vat_rate = current.vat_rate if current is not None else tax.default_vat_rate
            elif not tax.is_allowed_vat(vat_rate):
                raise InvalidRateError(
                    "vat_rate",
                    data["vat_rate"],
                    f"VAT must be one of {', '.join(str(r) for r in tax.allowed_vat_rates)}",
                )

        withholding_rate = ZERO
        if self._family.applies_withholding:
            withholding_rate = self._parse_rate(data, "withholding_rate")
            if withholding_rate is None:
                withholding_rate = (
                    current.withholding_rate if current is not None
                    else tax.default_withholding_rate
                )
            elif not tax.is_allowed_withholding(withholding_rate):
                raise InvalidRateError(
                    "withholding_rate",
                    data["withholding_rate"],
                    f"withholding must be between {tax.min_withholding_rate} "
                    f"and {tax.max_withholding_rate}",
                )
        return vat_rate, withholding_rate

    def _parse_period(
        self, data: Mapping[str, Any], current: FinancialDocument | None
    ) -> tuple[bool, date | None, date | None]:
        if "is_proportional" in data:
            is_proportional = _as_bool(data["is_proportional"])
        else:
            is_proportional = current.is_proportional if current is not None else False
        if not is_proportional:
            return False, None, None

        period_start = parse_date(data.get("period_start"), "period_start")
        period_end = parse_date(data.get("period_end"), "period_end")
        if current is not None:
            if "period_start" not in data:
                period_start = current.period_start
            if "period_end" not in data:
                period_end = current.period_end
        if period_start is None:
            raise MissingFieldError("period_start", self.family)
        if period_end is None:
            raise MissingFieldError("period_end", self.family)
        return True, period_start, period_end

    def _parse_details(
        self, data: Mapping[str, Any], current: Mapping[str, Any]
    ) -> dict[str, Any]:
        details = dict(current)
        for name in self._family.detail_fields:
            if name in data:
                if data[name] is None:
                    details.pop(name, None)
                else:
                    details[name] = data[name]
        return details

    def _build_details(
        self,
        data: Mapping[str, Any],
        current: Mapping[str, Any] | None,
        issue_date: date,
        issue_date_changed: bool,
    ) -> tuple[dict[str, Any], Transition | None]:
        """Merge family details, flags, recurrence and approval status."""
        details = self._parse_details(data, current or {})

        for name, default in self._family.detail_flags:
            if name in data:
                details[name] = default if data[name] is None else _as_bool(data[name])
            else:
                details.setdefault(name, default)

        for name in self._family.percent_fields:
            if name not in data:
                continue
            try:
                percent = parse_decimal(data[name])
            except ValueError:
                raise InvalidRateError(name, data[name], "not a number") from None
            if percent is None:
                details.pop(name, None)
            elif not ZERO <= percent <= HUNDRED:
                raise InvalidRateError(name, data[name], "must be between 0 and 100")
            else:
                details[name] = str(percent)

        touched = issue_date_changed or any(k in data for k in _RECURRENCE_FIELDS)
        if self._family.supports_recurrence and (current is None or touched):
            if "is_recurring" in data:
                is_recurring = _as_bool(data["is_recurring"])
            else:
                is_recurring = bool(details.get("is_recurring"))
            period = data.get("recurrence_period") if "recurrence_period" in data else (
                details.get("recurrence_period") if is_recurring else None
            )
            period = validate_recurrence(
                is_recurring, period, data.get("next_occurrence_date")
            )
            if period is None:
                details.update(dict.fromkeys(_RECURRENCE_FIELDS))
                details["is_recurring"] = False
            else:
                next_date = parse_date(
                    data.get("next_occurrence_date"), "next_occurrence_date"
                ) or next_occurrence(issue_date, period)
                details["is_recurring"] = True
                details["recurrence_period"] = period.value
                details["next_occurrence_date"] = next_date.isoformat()

        transition = None
        if self._approval is not None:
            changes, transition = resolve_approval_fields(
                self._approval,
                self._clock.today(),
                current,
                data.get("approval_status"),
                data.get("approved_by"),
            )
            details.update(changes)
        return details, transition

    def _check_category(self, data: Mapping[str, Any]) -> None:
        categories = self._policy.categories
        if not categories or _blank(data.get("category")):
            return
        if data["category"] not in categories:
            raise InvalidEnumValueError("category", data["category"], categories)
