"""
Configuration schema -- frozen dataclasses for billing policy.

    TaxPolicy        VAT whitelist, withholding range, defaults
    ProrationPolicy  maximum billable days of a proportional period
    DocumentPolicy   due-date default, refund multiplicity
    FamilyPolicy     numbering prefixes, statuses and payment methods
    BillingConfig    the assembled, checksummed configuration

Every class validates itself in ``__post_init__`` and raises ``ValueError``
on an inconsistent definition.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from billing_kernel.exceptions import UnknownDocumentFamilyError


@dataclass(frozen=True)
class TaxPolicy:
    allowed_vat_rates: tuple[Decimal, ...] = (
        Decimal("0"), Decimal("4"), Decimal("10"), Decimal("21"),
    )
    min_withholding_rate: Decimal = Decimal("0")
    max_withholding_rate: Decimal = Decimal("47")
    default_vat_rate: Decimal = Decimal("21")
    default_withholding_rate: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        if not self.allowed_vat_rates:
            raise ValueError("allowed_vat_rates cannot be empty")
        if self.default_vat_rate not in self.allowed_vat_rates:
            raise ValueError(
                f"default_vat_rate {self.default_vat_rate} is not an allowed VAT rate"
            )
        if not (
            Decimal("0") <= self.min_withholding_rate
            <= self.max_withholding_rate <= Decimal("100")
        ):
            raise ValueError("withholding range must satisfy 0 <= min <= max <= 100")
        if not self.is_allowed_withholding(self.default_withholding_rate):
            raise ValueError("default_withholding_rate outside withholding range")

    def is_allowed_vat(self, rate: Decimal) -> bool:
        return rate in self.allowed_vat_rates

    def is_allowed_withholding(self, rate: Decimal) -> bool:
        return self.min_withholding_rate <= rate <= self.max_withholding_rate


@dataclass(frozen=True)
class ProrationPolicy:
    max_period_days: int = 31

    def __post_init__(self) -> None:
        if self.max_period_days < 1:
            raise ValueError("max_period_days must be positive")


@dataclass(frozen=True)
class DocumentPolicy:
    default_due_days: int = 30
    allow_multiple_refunds: bool = False

    def __post_init__(self) -> None:
        if self.default_due_days < 0:
            raise ValueError("default_due_days cannot be negative")


@dataclass(frozen=True)
class FamilyPolicy:
    """Numbering and payment vocabulary of one document family.

    ``categories`` empty means the family does not classify documents.
    """

    name: str
    regular_prefix: str
    refund_prefix: str
    settled_status: str
    statuses: tuple[str, ...]
    payment_methods: tuple[str, ...]
    default_payment_method: str | None = None
    categories: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.regular_prefix or not self.refund_prefix:
            raise ValueError(f"{self.name}: numbering prefixes are required")
        if self.regular_prefix == self.refund_prefix:
            raise ValueError(f"{self.name}: regular and refund prefixes must differ")
        if "pending" not in self.statuses:
            raise ValueError(f"{self.name}: statuses must include 'pending'")
        if self.settled_status not in self.statuses:
            raise ValueError(
                f"{self.name}: settled status '{self.settled_status}' not in statuses"
            )
        if (
            self.default_payment_method is not None
            and self.default_payment_method not in self.payment_methods
        ):
            raise ValueError(
                f"{self.name}: default payment method "
                f"'{self.default_payment_method}' not in payment_methods"
            )


@dataclass(frozen=True)
class BillingConfig:
    version: str
    tax: TaxPolicy
    proration: ProrationPolicy
    documents: DocumentPolicy
    families: tuple[FamilyPolicy, ...]
    checksum: str = ""
    _by_name: dict[str, FamilyPolicy] = field(
        init=False, repr=False, compare=False, default_factory=dict
    )

    def __post_init__(self) -> None:
        names = [f.name for f in self.families]
        if len(names) != len(set(names)):
            raise ValueError("duplicate family names in configuration")
        self._by_name.update({f.name: f for f in self.families})

    def family(self, name: str) -> FamilyPolicy:
        try:
            return self._by_name[name]
        except KeyError:
            raise UnknownDocumentFamilyError(name) from None
