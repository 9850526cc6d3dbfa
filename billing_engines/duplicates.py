"""
Duplicate Guard.

Decides whether a candidate document collides with documents already
stored for the same subject.  The guard never raises; it returns the
verdict and lets the orchestrator reject the creation.

Rules (``DuplicateRule``):

    SUBJECT_PERIOD      any non-refund document with the same subject key
                        issued in the same calendar month.
    EXTERNAL_REFERENCE  any non-refund document with the same subject key
                        and the same external reference (supplier invoice
                        number), whatever its period.
    LINE_MATCH          among non-refund documents with the same subject key
                        in the same calendar month, any single cost line
                        where both values are positive and equal.
    NONE                no duplicate check (internal expenses are
                        not tied to a subject).

LINE_MATCH is a coarse heuristic kept as existing business behavior: two
genuinely different utility bills with an identical amount are flagged,
and a real duplicate whose every line differs by a cent is not.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Sequence

from billing_kernel.domain.documents import FinancialDocument
from billing_kernel.domain.values import ZERO, to_decimal


class DuplicateRule(str, Enum):
    SUBJECT_PERIOD = "subject_period"
    EXTERNAL_REFERENCE = "external_reference"
    LINE_MATCH = "line_match"
    NONE = "none"


def _in_scope(
    candidate: FinancialDocument,
    existing: FinancialDocument,
    same_month: bool,
) -> bool:
    if existing.is_refund:
        return False
    if candidate.id is not None and existing.id == candidate.id:
        return False
    if existing.subject_key != candidate.subject_key:
        return False
    return not same_month or existing.issue_month == candidate.issue_month


def _lines_match(
    candidate: FinancialDocument,
    existing: FinancialDocument,
    line_names: Sequence[str],
) -> bool:
    for name in line_names:
        ours = to_decimal(candidate.lines.get(name))
        theirs = to_decimal(existing.lines.get(name))
        if ours > ZERO and theirs > ZERO and ours == theirs:
            return True
    return False


def find_conflict(
    candidate: FinancialDocument,
    existing: Iterable[FinancialDocument],
    rule: DuplicateRule,
    line_names: Sequence[str] = (),
) -> FinancialDocument | None:
    """Return the first existing document that conflicts, or None."""
    if rule is DuplicateRule.NONE:
        return None
    for doc in existing:
        if rule is DuplicateRule.SUBJECT_PERIOD:
            if _in_scope(candidate, doc, same_month=True):
                return doc
        elif rule is DuplicateRule.EXTERNAL_REFERENCE:
            if (
                _in_scope(candidate, doc, same_month=False)
                and candidate.external_reference
                and doc.external_reference == candidate.external_reference
            ):
                return doc
        elif rule is DuplicateRule.LINE_MATCH:
            if _in_scope(candidate, doc, same_month=True) and _lines_match(
                candidate, doc, line_names
            ):
                return doc
    return None


def has_conflict(
    candidate: FinancialDocument,
    existing: Iterable[FinancialDocument],
    rule: DuplicateRule,
    line_names: Sequence[str] = (),
) -> bool:
    return find_conflict(candidate, existing, rule, line_names) is not None
