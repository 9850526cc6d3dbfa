"""
Typed Exception Hierarchy for the billing kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the document lifecycle must be able to tell a bad request apart
from a duplicate, a missing record, or an impossible state change, and map
each to its own outcome ("fix the form", "did you mean to edit the existing
one?", "404", "conflict").  Parsing message strings for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        service.create(data)
    except DuplicateDocumentError as e:
        return conflict(code=e.code, existing_id=e.existing_id)
    except ValidationError as e:
        return bad_request(code=e.code, field=e.field)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BillingError (base)
    |
    +-- ValidationError
    |   +-- MissingFieldError
    |   +-- InvalidDateError
    |   +-- InvalidPeriodError
    |   +-- PeriodTooLongError
    |   +-- InvalidEnumValueError
    |   +-- InvalidRateError
    |   +-- InvalidAmountError
    |   +-- InvalidCorrespondingMonthError
    |   +-- InvalidDocumentNumberError
    |   +-- InvalidRecurrenceError
    |
    +-- DuplicateError
    |   +-- DuplicateDocumentError
    |   +-- DocumentNumberInUseError
    |
    +-- NotFoundError
    |   +-- DocumentNotFoundError
    |
    +-- StateError
    |   +-- RefundOfRefundError
    |   +-- OriginalAlreadyRefundedError
    |   +-- RefundImmutableError
    |   +-- InvalidStatusTransitionError
    |   +-- GuardFailedError
    |   +-- DocumentLockedError
    |
    +-- UnknownDocumentFamilyError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                          | When Raised
-------------|-------------------------------|----------------------------------------
Validation   | MISSING_FIELD                 | Required field absent or blank
             | INVALID_DATE                  | Date not parseable as YYYY-MM-DD
             | INVALID_PERIOD                | period_start >= period_end
             | PERIOD_TOO_LONG               | Billed days exceed the configured max
             | INVALID_ENUM_VALUE            | Unknown status / method / category
             | INVALID_RATE                  | Unparsable, non-whitelisted or out of range
             | INVALID_AMOUNT                | Unparsable or negative cost line
             | INVALID_CORRESPONDING_MONTH   | Not YYYY-MM
             | INVALID_DOCUMENT_NUMBER       | Renumber outside the family prefix
             | INVALID_RECURRENCE            | Bad or inconsistent recurrence fields
-------------|-------------------------------|----------------------------------------
Duplicate    | DUPLICATE_DOCUMENT            | Same subject + period already billed
             | DOCUMENT_NUMBER_IN_USE        | Number held by another document
-------------|-------------------------------|----------------------------------------
Not found    | DOCUMENT_NOT_FOUND            | Unknown document id
-------------|-------------------------------|----------------------------------------
State        | REFUND_OF_REFUND              | Rectifying a rectification
             | ORIGINAL_ALREADY_REFUNDED     | Second refund against one original
             | REFUND_IMMUTABLE              | Editing a refund's amounts/fields
             | INVALID_STATUS_TRANSITION     | e.g. paid -> overdue
             | GUARD_FAILED                  | e.g. overdue before the due date
             | DOCUMENT_LOCKED               | Deleting an approved expense
-------------|-------------------------------|----------------------------------------
Family       | UNKNOWN_DOCUMENT_FAMILY       | Family name not registered

None of these are retried by the kernel.  Validation, duplicate and
not-found errors are always recoverable by the caller correcting input.
"""


class BillingError(Exception):
    """
    Base exception for all billing kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "BILLING_ERROR"


# Validation exceptions


class ValidationError(BillingError):
    """Base exception for input that fails validation."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class MissingFieldError(ValidationError):
    """A required field was not supplied."""

    code: str = "MISSING_FIELD"

    def __init__(self, field: str, family: str | None = None):
        self.family = family
        super().__init__(field, "field is required")


class InvalidDateError(ValidationError):
    """A date value could not be parsed."""

    code: str = "INVALID_DATE"

    def __init__(self, field: str, value: object):
        self.value = value
        super().__init__(field, f"'{value}' is not a valid YYYY-MM-DD date")


class InvalidPeriodError(ValidationError):
    """
    Billing period bounds are inconsistent.

    ``field`` names the offending bound (``period_start`` or ``period_end``).
    """

    code: str = "INVALID_PERIOD"

    def __init__(self, field: str, period_start: object, period_end: object, reason: str):
        self.period_start = period_start
        self.period_end = period_end
        super().__init__(field, reason)


class PeriodTooLongError(ValidationError):
    """Billing period covers more days than allowed."""

    code: str = "PERIOD_TOO_LONG"

    def __init__(self, days_billed: int, max_days: int):
        self.days_billed = days_billed
        self.max_days = max_days
        super().__init__(
            "period_end",
            f"period covers {days_billed} days, maximum is {max_days}",
        )


class InvalidEnumValueError(ValidationError):
    """Value is not a member of a closed enumeration."""

    code: str = "INVALID_ENUM_VALUE"

    def __init__(self, field: str, value: object, allowed: tuple[str, ...]):
        self.value = value
        self.allowed = allowed
        super().__init__(
            field, f"'{value}' is not one of: {', '.join(allowed)}"
        )


class InvalidRateError(ValidationError):
    """Tax rate outside the configured policy."""

    code: str = "INVALID_RATE"

    def __init__(self, field: str, value: object, reason: str):
        self.value = value
        super().__init__(field, reason)


class InvalidAmountError(ValidationError):
    """Monetary amount not acceptable for this document."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, value: object, reason: str = "amount cannot be negative"):
        self.value = value
        super().__init__(field, reason)


class InvalidCorrespondingMonthError(ValidationError):
    """Corresponding month is not a YYYY-MM string."""

    code: str = "INVALID_CORRESPONDING_MONTH"

    def __init__(self, value: object):
        self.value = value
        super().__init__("corresponding_month", f"'{value}' is not a YYYY-MM month")


class InvalidDocumentNumberError(ValidationError):
    """Requested document number does not belong to the family sequence."""

    code: str = "INVALID_DOCUMENT_NUMBER"

    def __init__(self, value: object, prefix: str):
        self.value = value
        self.prefix = prefix
        super().__init__("document_number", f"'{value}' is not a {prefix}NNNN number")


class InvalidRecurrenceError(ValidationError):
    """Recurrence fields are missing, unknown or set on a one-off expense."""

    code: str = "INVALID_RECURRENCE"

    def __init__(self, field: str, value: object, reason: str):
        self.value = value
        super().__init__(field, reason)


# Duplicate exceptions


class DuplicateError(BillingError):
    """Base exception for documents that would collide with existing ones."""

    code: str = "DUPLICATE_DOCUMENT"


class DuplicateDocumentError(DuplicateError):
    """
    The duplicate guard found a conflicting document.

    ``existing_id`` points at the document the caller probably meant to edit.
    """

    code: str = "DUPLICATE_DOCUMENT"

    def __init__(
        self,
        family: str,
        subject_key: tuple,
        year_month: str | None,
        existing_id: object,
    ):
        self.family = family
        self.subject_key = subject_key
        self.year_month = year_month
        self.existing_id = existing_id
        period = year_month or "any period"
        super().__init__(
            f"{family}: a document for {subject_key} already exists in {period} "
            f"(existing {existing_id})"
        )


class DocumentNumberInUseError(DuplicateError):
    """The number is held by another document or was issued before.

    ``existing_id`` is None when the holder has since been deleted.
    """

    code: str = "DOCUMENT_NUMBER_IN_USE"

    def __init__(self, family: str, document_number: str, existing_id: object):
        self.family = family
        self.document_number = document_number
        self.existing_id = existing_id
        if existing_id is None:
            super().__init__(f"{family}: number {document_number} was already issued")
        else:
            super().__init__(
                f"{family}: number {document_number} is already used by {existing_id}"
            )


# Not-found exceptions


class NotFoundError(BillingError):
    """Base exception for references to records that do not exist."""

    code: str = "NOT_FOUND"


class DocumentNotFoundError(NotFoundError):
    """Document with given ID was not found in its family."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, family: str, document_id: object):
        self.family = family
        self.document_id = document_id
        super().__init__(f"{family}: document not found: {document_id}")


# State exceptions


class StateError(BillingError):
    """Base exception for operations invalid in the document's current state."""

    code: str = "INVALID_STATE"


class RefundOfRefundError(StateError):
    """A refund cannot itself be rectified."""

    code: str = "REFUND_OF_REFUND"

    def __init__(self, document_id: object):
        self.document_id = document_id
        super().__init__(f"Document {document_id} is a refund and cannot be refunded")


class OriginalAlreadyRefundedError(StateError):
    """The original already has a refund and multiple refunds are disabled."""

    code: str = "ORIGINAL_ALREADY_REFUNDED"

    def __init__(self, original_id: object, refund_ids: tuple):
        self.original_id = original_id
        self.refund_ids = refund_ids
        super().__init__(
            f"Document {original_id} already refunded by {', '.join(map(str, refund_ids))}"
        )


class RefundImmutableError(StateError):
    """Refund documents only accept payment status changes."""

    code: str = "REFUND_IMMUTABLE"

    def __init__(self, document_id: object):
        self.document_id = document_id
        super().__init__(f"Refund {document_id} cannot be modified")


class InvalidStatusTransitionError(StateError):
    """Payment status transition not defined by the workflow."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, workflow: str, from_status: str, to_status: str):
        self.workflow = workflow
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"{workflow}: cannot move from '{from_status}' to '{to_status}'"
        )


class GuardFailedError(StateError):
    """The transition exists but its guard does not hold for this document."""

    code: str = "GUARD_FAILED"

    def __init__(self, workflow: str, guard: str, from_status: str, to_status: str):
        self.workflow = workflow
        self.guard = guard
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"{workflow}: guard '{guard}' blocks '{from_status}' -> '{to_status}'"
        )


class DocumentLockedError(StateError):
    """The document's approval status forbids this operation."""

    code: str = "DOCUMENT_LOCKED"

    def __init__(self, document_id: object, status: str, operation: str):
        self.document_id = document_id
        self.status = status
        self.operation = operation
        super().__init__(f"Document {document_id} is {status}; cannot {operation}")


# Registry exceptions


class UnknownDocumentFamilyError(BillingError):
    """Document family name is not registered."""

    code: str = "UNKNOWN_DOCUMENT_FAMILY"

    def __init__(self, family: str):
        self.family = family
        super().__init__(f"Unknown document family: {family}")
