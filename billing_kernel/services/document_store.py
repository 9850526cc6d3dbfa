"""
SqlAlchemyDocumentStore -- DocumentStore over the SQLAlchemy ORM.

Responsibility:
    Persists one family's documents in ``financial_documents`` and keeps
    numbering high-water marks in ``document_sequences``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  Injected into
    DocumentService and PaymentService.

Invariants enforced:
    - Numbering and duplicate-checked inserts happen under the family lock
      row (``SELECT ... FOR UPDATE`` on the ``(family, "")`` sequence row),
      so concurrent creations of one family serialize in the database.
    - High-water marks only grow; deleting a document never frees its number.
    - The aggregate-max-plus-one pattern over ``financial_documents`` is not
      used; the sequence row is the source of truth.

Failure modes:
    - IntegrityError on concurrent creation of the lock row (handled with
      a savepoint and retry).
    - Any exception inside ``atomic()`` rolls the session back and
      propagates.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator
from uuid import UUID as PyUUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from billing_kernel.domain.documents import FinancialDocument
from billing_kernel.domain.values import format_number, split_number
from billing_kernel.logging_config import get_logger
from billing_kernel.models.document import (
    FAMILY_LOCK_PREFIX,
    DocumentSequence,
    FinancialDocumentModel,
    column_values,
    encode_subject_key,
)

logger = get_logger("services.document_store")


def _as_uuid(value: Any) -> PyUUID | None:
    try:
        return value if isinstance(value, PyUUID) else PyUUID(str(value))
    except ValueError:
        return None


class SqlAlchemyDocumentStore:
    """
    DocumentStore for one family, bound to a session.

    Contract:
        ``atomic()`` commits the session when the outermost block exits
        normally and rolls it back otherwise.  Writes outside ``atomic()``
        are flushed only; the caller owns the commit.

    Non-goals:
        Does not manage session lifetime -- see ``db.engine.session_scope``.
    """

    def __init__(self, session: Session, family: str):
        self._session = session
        self.family = family
        self._depth = 0

    # ------------------------------------------------------------------
    # Transaction boundary
    # ------------------------------------------------------------------

    @contextmanager
    def atomic(self) -> Iterator[SqlAlchemyDocumentStore]:
        if self._depth:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return

        self._depth = 1
        try:
            self._lock_family()
            yield self
            self._session.commit()
            logger.debug("document_store_committed", extra={"store_family": self.family})
        except Exception:
            self._session.rollback()
            logger.warning(
                "document_store_rolled_back",
                extra={"store_family": self.family},
                exc_info=True,
            )
            raise
        finally:
            self._depth = 0

    def _sequence_row(self, prefix: str) -> DocumentSequence | None:
        return self._session.execute(
            select(DocumentSequence)
            .where(DocumentSequence.family == self.family)
            .where(DocumentSequence.prefix == prefix)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _get_or_create_sequence(self, prefix: str) -> DocumentSequence:
        row = self._sequence_row(prefix)
        if row is not None:
            return row
        if self._session.get_bind().dialect.name == "sqlite":
            # single-writer database; pysqlite savepoints are unreliable
            row = DocumentSequence(family=self.family, prefix=prefix, last_value=0)
            self._session.add(row)
            self._session.flush()
            return row
        savepoint = self._session.begin_nested()
        try:
            row = DocumentSequence(family=self.family, prefix=prefix, last_value=0)
            self._session.add(row)
            self._session.flush()
            savepoint.commit()
            return row
        except IntegrityError:
            logger.debug(
                "sequence_row_race_retry",
                extra={"store_family": self.family, "prefix": prefix},
            )
            savepoint.rollback()
            row = self._sequence_row(prefix)
            if row is None:
                raise
            return row

    def _lock_family(self) -> None:
        self._get_or_create_sequence(FAMILY_LOCK_PREFIX)

    def _bump(self, document_number: str) -> None:
        split = split_number(document_number)
        if split is None:
            return
        prefix, counter = split
        row = self._get_or_create_sequence(prefix)
        if counter > row.last_value:
            row.last_value = counter
            self._session.flush()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _select(self):
        return select(FinancialDocumentModel).where(FinancialDocumentModel.family == self.family)

    def find_last_number(self, prefix: str) -> str | None:
        row = self._session.execute(
            select(DocumentSequence)
            .where(DocumentSequence.family == self.family)
            .where(DocumentSequence.prefix == prefix)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None or not row.last_value:
            return None
        return format_number(prefix, row.last_value)

    def find_by_subject_and_period(
        self, subject_key: tuple[str, ...], year_month: str | None
    ) -> list[FinancialDocument]:
        stmt = self._select().where(
            FinancialDocumentModel.subject_key == encode_subject_key(tuple(subject_key))
        )
        if year_month is not None:
            stmt = stmt.where(FinancialDocumentModel.issue_month == year_month)
        return [m.to_domain() for m in self._session.execute(stmt).scalars()]

    def _model(self, document_id: str) -> FinancialDocumentModel | None:
        uid = _as_uuid(document_id)
        if uid is None:
            return None
        return self._session.execute(
            self._select().where(FinancialDocumentModel.id == uid)
        ).scalar_one_or_none()

    def find_by_id(self, document_id: str) -> FinancialDocument | None:
        model = self._model(document_id)
        return model.to_domain() if model is not None else None

    def find_by_number(self, document_number: str) -> list[FinancialDocument]:
        stmt = self._select().where(FinancialDocumentModel.document_number == document_number)
        return [m.to_domain() for m in self._session.execute(stmt).scalars()]

    def find_refunds_of(self, original_id: str) -> list[FinancialDocument]:
        uid = _as_uuid(original_id)
        if uid is None:
            return []
        stmt = (
            self._select()
            .where(FinancialDocumentModel.is_refund.is_(True))
            .where(FinancialDocumentModel.original_document_id == uid)
        )
        return [m.to_domain() for m in self._session.execute(stmt).scalars()]

    def find_by_status(self, status: str) -> list[FinancialDocument]:
        stmt = self._select().where(FinancialDocumentModel.payment_status == status)
        return [m.to_domain() for m in self._session.execute(stmt).scalars()]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, document: FinancialDocument) -> str:
        model = FinancialDocumentModel.from_domain(document)
        self._session.add(model)
        self._session.flush()
        self._bump(document.document_number)
        logger.debug(
            "document_row_inserted",
            extra={"store_family": self.family, "document_number": document.document_number},
        )
        return str(model.id)

    def update(self, document_id: str, fields: dict[str, Any]) -> int:
        model = self._model(document_id)
        if model is None:
            return 0
        model.apply(column_values(fields))
        self._session.flush()
        if "document_number" in fields:
            self._bump(fields["document_number"])
        return 1

    def delete(self, document_id: str) -> int:
        uid = _as_uuid(document_id)
        if uid is None:
            return 0
        result = self._session.execute(
            delete(FinancialDocumentModel)
            .where(FinancialDocumentModel.family == self.family)
            .where(FinancialDocumentModel.id == uid)
        )
        self._session.flush()
        return result.rowcount
