"""
InMemoryDocumentStore -- thread-safe DocumentStore for tests and embedding.

Responsibility:
    Keeps one family's documents in a dict and serializes every
    ``atomic()`` block of the family behind a re-entrant lock.

Invariants enforced:
    - Per-prefix numbering high-water marks survive deletion.
    - ``atomic()`` rolls back every write made inside the block when it
      exits with an exception.

Non-goals:
    No cross-process exclusion; use SqlAlchemyDocumentStore for that.
"""

from __future__ import annotations

import copy
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator
from uuid import uuid4

from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.domain.documents import FinancialDocument
from billing_kernel.domain.values import format_number, split_number
from billing_kernel.logging_config import get_logger

logger = get_logger("services.memory_store")


class InMemoryDocumentStore:
    """DocumentStore backed by a dict, one instance per family."""

    def __init__(self, family: str, clock: Clock | None = None):
        self.family = family
        self._clock = clock or SystemClock()
        self._lock = threading.RLock()
        self._depth = threading.local()
        self._documents: dict[str, FinancialDocument] = {}
        self._high_water: dict[str, int] = {}

    # ------------------------------------------------------------------
    # Transaction boundary
    # ------------------------------------------------------------------

    @contextmanager
    def atomic(self) -> Iterator[InMemoryDocumentStore]:
        with self._lock:
            depth = getattr(self._depth, "value", 0)
            snapshot = None
            if depth == 0:
                snapshot = (dict(self._documents), dict(self._high_water))
            self._depth.value = depth + 1
            try:
                yield self
            except Exception:
                if snapshot is not None:
                    self._documents, self._high_water = snapshot
                    logger.debug("memory_store_rolled_back", extra={"store_family": self.family})
                raise
            finally:
                self._depth.value = depth

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_last_number(self, prefix: str) -> str | None:
        with self._lock:
            counter = self._high_water.get(prefix)
        return format_number(prefix, counter) if counter else None

    def find_by_subject_and_period(
        self, subject_key: tuple[str, ...], year_month: str | None
    ) -> list[FinancialDocument]:
        with self._lock:
            return [
                doc
                for doc in self._documents.values()
                if doc.subject_key == tuple(subject_key)
                and (year_month is None or doc.issue_month == year_month)
            ]

    def find_by_id(self, document_id: str) -> FinancialDocument | None:
        with self._lock:
            return self._documents.get(str(document_id))

    def find_by_number(self, document_number: str) -> list[FinancialDocument]:
        with self._lock:
            return [
                doc for doc in self._documents.values()
                if doc.document_number == document_number
            ]

    def find_refunds_of(self, original_id: str) -> list[FinancialDocument]:
        with self._lock:
            return [
                doc for doc in self._documents.values()
                if doc.is_refund and doc.original_document_id == str(original_id)
            ]

    def find_by_status(self, status: str) -> list[FinancialDocument]:
        with self._lock:
            return [doc for doc in self._documents.values() if doc.payment_status == status]

    def all(self) -> list[FinancialDocument]:
        with self._lock:
            return list(self._documents.values())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, document: FinancialDocument) -> str:
        document_id = str(uuid4())
        now = self._now()
        stored = document.with_changes(
            id=document_id,
            subject_refs=copy.deepcopy(document.subject_refs),
            lines=dict(document.lines),
            details=copy.deepcopy(document.details),
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._documents[document_id] = stored
            self._bump(document.document_number)
        return document_id

    def update(self, document_id: str, fields: dict[str, Any]) -> int:
        with self._lock:
            current = self._documents.get(str(document_id))
            if current is None:
                return 0
            changes = {k: v for k, v in fields.items() if k not in ("id", "created_at")}
            changes["updated_at"] = self._now()
            self._documents[str(document_id)] = current.with_changes(**changes)
            if "document_number" in fields:
                self._bump(fields["document_number"])
        return 1

    def delete(self, document_id: str) -> int:
        with self._lock:
            return 1 if self._documents.pop(str(document_id), None) is not None else 0

    def _bump(self, document_number: str) -> None:
        split = split_number(document_number)
        if split is None:
            return
        prefix, counter = split
        if counter > self._high_water.get(prefix, 0):
            self._high_water[prefix] = counter

    def _now(self) -> datetime:
        return self._clock.now().astimezone(timezone.utc)
