"""
Document Numbering Sequencer.

Derives the next human-readable number of a family partition from the
last one issued: ``FACT-0042`` -> ``FACT-0043``.  Numbers are zero-padded
to four digits and grow past ``9999`` without truncation.

This only computes the candidate.  Callers must run it inside the store's
``atomic()`` block so that reading the last number and inserting the new
document cannot interleave with another creation.
"""

from __future__ import annotations

import re

from billing_kernel.domain.values import format_number, split_number

_NON_DIGITS = re.compile(r"\D")

__all__ = ["format_number", "next_number", "parse_number", "split_number"]


def parse_number(document_number: str | None, prefix: str) -> int:
    """
    Numeric counter of ``document_number`` under ``prefix``.

    Non-digit characters after the prefix are ignored.  Returns 0 when
    there is no number or no digits to parse.
    """
    if not document_number:
        return 0
    suffix = (
        document_number[len(prefix):]
        if document_number.startswith(prefix)
        else document_number
    )
    digits = _NON_DIGITS.sub("", suffix)
    return int(digits) if digits else 0


def next_number(last_issued: str | None, prefix: str) -> str:
    """Next number after ``last_issued``; ``PREFIX-0001`` when there is none."""
    return format_number(prefix, parse_number(last_issued, prefix) + 1)
