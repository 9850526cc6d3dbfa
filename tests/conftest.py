"""
Pytest fixtures for the billing test suite.

Provides:
- Structured logging configured once per session, plus log capture
- A deterministic clock pinned to 2025-07-31
- In-memory stores and services per document family
- A throwaway SQLite database per test for the SQLAlchemy store

Environment Variables:
- None.  SQLite is built into Python; no external database is needed.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session

from billing_config import BillingConfig, get_active_config
from billing_kernel.db.engine import (
    create_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from billing_kernel.domain.clock import DeterministicClock
from billing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from billing_kernel.services.document_store import SqlAlchemyDocumentStore
from billing_kernel.services.memory_store import InMemoryDocumentStore
from billing_modules.families import get_family
from billing_services import ApprovalService, DocumentService, PaymentService

TODAY = datetime(2025, 7, 31, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture billing logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, bills):
            bills.documents.create({...})
            logs = captured_logs()
            assert any(r["message"] == "document_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("billing")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Clock and configuration
# =============================================================================


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    """Clock pinned to noon UTC on 2025-07-31."""
    return DeterministicClock(TODAY)


@pytest.fixture(scope="session")
def billing_config() -> BillingConfig:
    """The packaged default configuration."""
    return get_active_config()


# =============================================================================
# Family harnesses (in-memory store + services sharing one clock)
# =============================================================================


@dataclass
class FamilyHarness:
    family: str
    store: InMemoryDocumentStore
    documents: DocumentService
    payments: PaymentService
    approvals: ApprovalService | None = None


@pytest.fixture
def make_family(billing_config, deterministic_clock):
    """Factory building an in-memory harness for a document family."""

    def _make(family: str, config: BillingConfig | None = None) -> FamilyHarness:
        config = config or billing_config
        store = InMemoryDocumentStore(family, clock=deterministic_clock)
        return FamilyHarness(
            family=family,
            store=store,
            documents=DocumentService(store, family, config=config, clock=deterministic_clock),
            payments=PaymentService(store, family, config=config, clock=deterministic_clock),
            approvals=(
                ApprovalService(store, family, config=config, clock=deterministic_clock)
                if get_family(family).requires_approval else None
            ),
        )

    return _make


@pytest.fixture
def bills(make_family) -> FamilyHarness:
    return make_family("bills")


@pytest.fixture
def invoices_issued(make_family) -> FamilyHarness:
    return make_family("invoices_issued")


@pytest.fixture
def invoices_received(make_family) -> FamilyHarness:
    return make_family("invoices_received")


@pytest.fixture
def rental_expenses(make_family) -> FamilyHarness:
    return make_family("rental_expenses")


@pytest.fixture
def internal_expenses(make_family) -> FamilyHarness:
    return make_family("internal_expenses")


# =============================================================================
# SQLite-backed persistence
# =============================================================================


@pytest.fixture
def sqlite_session() -> Generator[Session, None, None]:
    """Fresh in-memory SQLite database with every billing table created."""
    init_engine_from_url("sqlite://")
    create_tables()
    session = get_session()
    yield session
    try:
        session.close()
    finally:
        reset_engine()


@pytest.fixture
def make_sql_family(sqlite_session, billing_config, deterministic_clock):
    """Factory building a harness whose store is the SQLAlchemy store."""

    def _make(family: str) -> FamilyHarness:
        store = SqlAlchemyDocumentStore(sqlite_session, family)
        return FamilyHarness(
            family=family,
            store=store,
            documents=DocumentService(
                store, family, config=billing_config, clock=deterministic_clock
            ),
            payments=PaymentService(
                store, family, config=billing_config, clock=deterministic_clock
            ),
            approvals=(
                ApprovalService(
                    store, family, config=billing_config, clock=deterministic_clock
                )
                if get_family(family).requires_approval else None
            ),
        )

    return _make
