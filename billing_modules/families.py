"""
Document Families (``billing_modules.families``).

Responsibility
--------------
Declares the five document families: which business references each one
carries, which of them scope the duplicate guard, which cost lines make up
its tax base, which rates apply, and which fields are required.
Numbering prefixes and payment vocabulary live in configuration
(``FamilyPolicy``); everything here is structural and not meant to change
per deployment.

Architecture position
---------------------
**Modules layer** -- declarative definitions consumed by
``billing_services``.

Invariants enforced
-------------------
* ``subject_key_fields`` is a subset of ``subject_fields``.
* Every family has at least one cost line.
* Percent fields are detail fields.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping

from billing_kernel.exceptions import UnknownDocumentFamilyError
from billing_engines.duplicates import DuplicateRule

RENTAL_EXPENSE_LINES = (
    "monthly_rent",
    "electricity",
    "gas",
    "water",
    "community_fees",
    "insurance",
    "waste_tax",
    "others",
)


@dataclass(frozen=True)
class DocumentFamily:
    """Structure of one document family.

    ``detail_flags`` are boolean details with their default value;
    ``percent_fields`` are details holding a 0..100 percentage.
    ``positive_lines`` requires every cost line to be greater than zero.

    Contract: frozen; validated at construction.
    Non-goals: does not know numbering prefixes or statuses -- see
    ``billing_config.FamilyPolicy``.
    """

    name: str
    subject_fields: tuple[str, ...]
    subject_key_fields: tuple[str, ...]
    line_names: tuple[str, ...]
    duplicate_rule: DuplicateRule
    required_fields: tuple[str, ...] = ()
    detail_fields: tuple[str, ...] = ()
    detail_flags: tuple[tuple[str, bool], ...] = ()
    percent_fields: tuple[str, ...] = ()
    applies_vat: bool = True
    applies_withholding: bool = True
    immutable_fields: tuple[str, ...] = ()
    positive_lines: bool = False
    supports_recurrence: bool = False
    requires_approval: bool = False

    def __post_init__(self) -> None:
        if not self.line_names:
            raise ValueError(f"{self.name}: at least one cost line is required")
        missing = set(self.subject_key_fields) - set(self.subject_fields)
        if missing:
            raise ValueError(
                f"{self.name}: subject key fields {sorted(missing)} not in subject_fields"
            )
        stray = set(self.percent_fields) - set(self.detail_fields)
        if stray:
            raise ValueError(
                f"{self.name}: percent fields {sorted(stray)} not in detail_fields"
            )

    def subject_refs(self, data: Mapping[str, Any]) -> dict[str, Any]:
        return {name: data.get(name) for name in self.subject_fields}

    def subject_key(self, refs: Mapping[str, Any]) -> tuple[str, ...]:
        """Stringified duplicate-scope key; absent references become ``""``."""
        return tuple(
            "" if refs.get(name) is None else str(refs.get(name))
            for name in self.subject_key_fields
        )


BILLS = DocumentFamily(
    name="bills",
    subject_fields=("owner_id", "estate_id", "client_id"),
    subject_key_fields=("owner_id", "estate_id"),
    line_names=("tax_base",),
    duplicate_rule=DuplicateRule.SUBJECT_PERIOD,
    required_fields=("owner_id", "estate_id"),
    detail_fields=("concept", "ownership_percent"),
    percent_fields=("ownership_percent",),
    immutable_fields=("estate_id",),
)

INVOICES_ISSUED = DocumentFamily(
    name="invoices_issued",
    subject_fields=("owner_id", "estate_id", "client_id"),
    subject_key_fields=("owner_id", "estate_id"),
    line_names=("tax_base",),
    duplicate_rule=DuplicateRule.SUBJECT_PERIOD,
    required_fields=("owner_id", "estate_id", "client_id"),
    detail_fields=("concept", "ownership_percent"),
    percent_fields=("ownership_percent",),
)

INVOICES_RECEIVED = DocumentFamily(
    name="invoices_received",
    subject_fields=("supplier_id", "estate_id"),
    subject_key_fields=("supplier_id",),
    line_names=("tax_base",),
    duplicate_rule=DuplicateRule.EXTERNAL_REFERENCE,
    required_fields=("supplier_id", "external_reference", "description"),
    detail_fields=("description", "category", "subcategory"),
)

RENTAL_EXPENSES = DocumentFamily(
    name="rental_expenses",
    subject_fields=("property_id",),
    subject_key_fields=("property_id",),
    line_names=RENTAL_EXPENSE_LINES,
    duplicate_rule=DuplicateRule.LINE_MATCH,
    required_fields=("property_id",),
    detail_fields=("property_name", "property_type"),
    applies_vat=False,
    applies_withholding=False,
)

INTERNAL_EXPENSES = DocumentFamily(
    name="internal_expenses",
    subject_fields=("property_id",),
    subject_key_fields=("property_id",),
    line_names=("amount",),
    duplicate_rule=DuplicateRule.NONE,
    required_fields=("description", "supplier_name", "category", "amount"),
    detail_fields=(
        "description", "supplier_name", "supplier_nif", "category", "subcategory",
        "project_code", "cost_center",
    ),
    detail_flags=(("is_deductible", True),),
    applies_withholding=False,
    positive_lines=True,
    supports_recurrence=True,
    requires_approval=True,
)

FAMILIES: Mapping[str, DocumentFamily] = MappingProxyType(
    {
        f.name: f
        for f in (BILLS, INVOICES_ISSUED, INVOICES_RECEIVED, RENTAL_EXPENSES, INTERNAL_EXPENSES)
    }
)


def get_family(name: str) -> DocumentFamily:
    try:
        return FAMILIES[name]
    except KeyError:
        raise UnknownDocumentFamilyError(name) from None
