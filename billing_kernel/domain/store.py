"""DocumentStore -- persistence port for one document family.

The orchestrator and payment service talk to storage only through this
protocol.  Implementations: ``InMemoryDocumentStore`` (tests, embedding)
and ``SqlAlchemyDocumentStore`` (SQLAlchemy ORM).
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Any, Protocol, runtime_checkable

from billing_kernel.domain.documents import FinancialDocument


@runtime_checkable
class DocumentStore(Protocol):
    """Protocol for storing and querying the documents of a single family.

    Contract:
        ``atomic()`` is the concurrency boundary.  Everything executed inside
        it (read last number, duplicate lookup, insert) is mutually exclusive
        with every other ``atomic()`` block of the same family and is
        committed or rolled back as a unit.  Blocks may nest; only the
        outermost commits.

    Guarantees:
        ``find_last_number`` returns the highest number ever issued under the
        prefix, including numbers of deleted documents.
    """

    family: str

    def atomic(self) -> AbstractContextManager[Any]:
        ...

    def find_last_number(self, prefix: str) -> str | None:
        ...

    def find_by_subject_and_period(
        self, subject_key: tuple[str, ...], year_month: str | None
    ) -> list[FinancialDocument]:
        """Documents with ``subject_key``; ``year_month=None`` means any month."""
        ...

    def find_by_id(self, document_id: str) -> FinancialDocument | None:
        ...

    def find_by_number(self, document_number: str) -> list[FinancialDocument]:
        ...

    def find_refunds_of(self, original_id: str) -> list[FinancialDocument]:
        ...

    def find_by_status(self, status: str) -> list[FinancialDocument]:
        ...

    def insert(self, document: FinancialDocument) -> str:
        """Persist ``document`` and return its new id."""
        ...

    def update(self, document_id: str, fields: dict[str, Any]) -> int:
        """Apply ``fields`` to the stored document; return affected count."""
        ...

    def delete(self, document_id: str) -> int:
        ...
