"""
Pytest fixtures for the condo kernel test suite.

Provides:
- In-memory SQLite sessions with per-test rollback isolation
- A deterministic clock pinned to 2025-03-20 12:00 UTC
- Factories for deposits, vouchers, houses and period configs
- Log capture as parsed JSON dicts

Environment Variables:
- DATABASE_URL: PostgreSQL connection URL.  Only tests marked ``postgres``
  use it; they are skipped when it is not set.
"""

import json
import logging
import os
from collections.abc import Generator
from datetime import date, datetime, time, timezone
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest
from sqlalchemy import create_engine, event, func, select
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

import condo_kernel.models  # noqa: F401
from condo_config import CondoSettings
from condo_kernel.db.base import Base
from condo_kernel.domain.clock import DeterministicClock
from condo_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from condo_kernel.models.balance import PaymentAllocation
from condo_kernel.models.bank import BankTransaction, Voucher
from condo_kernel.models.reconciliation import TransactionStatus
from condo_services.orchestrator import CondoOrchestrator

# Test actor ID for all operator actions
TEST_ACTOR_ID = uuid4()

CLOCK_START = datetime(2025, 3, 20, 12, 0, 0, tzinfo=timezone.utc)


def get_database_url() -> str | None:
    return os.environ.get("DATABASE_URL")


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL (DATABASE_URL)"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
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
    Capture condo_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, services):
            services.reconciliation.reconcile()
            logs = captured_logs()
            assert any(r["message"] == "reconciliation_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("condo_kernel")
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
# Database
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single in-memory SQLite engine for the whole run.

    pysqlite's own transaction handling is switched off so that BEGIN and
    SAVEPOINT are emitted by SQLAlchemy, which nested transactions need.
    """
    eng = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(eng, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(eng, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    """Session joined to an outer transaction that is rolled back at teardown."""
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


# =============================================================================
# Clock, actor, settings and services
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(CLOCK_START)


@pytest.fixture
def test_actor_id() -> UUID:
    return TEST_ACTOR_ID


@pytest.fixture
def settings() -> CondoSettings:
    return CondoSettings()


@pytest.fixture
def services(session, settings, deterministic_clock) -> CondoOrchestrator:
    return CondoOrchestrator(session, settings, deterministic_clock)


@pytest.fixture
def period_service(services):
    return services.period_service


@pytest.fixture
def balance_service(services):
    return services.balance_service


@pytest.fixture
def house_service(services):
    return services.house_service


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def period_config(period_service):
    """Open-ended config from 2025-01-01: maintenance 800, nothing else."""
    return period_service.create_period_config(
        date(2025, 1, 1),
        default_maintenance_amount=Decimal("800"),
    )


@pytest.fixture
def create_deposit(session):
    """Factory fixture to create bank deposits."""

    def _create(
        amount: str | Decimal,
        on: date = date(2025, 3, 15),
        at: time | None = time(10, 0),
        concept: str | None = None,
        is_deposit: bool = True,
    ) -> BankTransaction:
        tx = BankTransaction(
            date=on,
            time=at,
            concept=concept,
            amount=Decimal(amount),
            is_deposit=is_deposit,
        )
        session.add(tx)
        session.flush()
        return tx

    return _create


@pytest.fixture
def create_voucher(session):
    """Factory fixture to create resident vouchers."""

    def _create(
        amount: str | Decimal,
        on: date = date(2025, 3, 15),
        at: time | None = time(10, 0),
        house_number: int | None = None,
        confirmation_code: str | None = None,
    ) -> Voucher:
        voucher = Voucher(
            date=on,
            time=at,
            amount=Decimal(amount),
            house_number=house_number,
            confirmation_code=confirmation_code,
        )
        session.add(voucher)
        session.flush()
        return voucher

    return _create


@pytest.fixture
def status_of(session):
    """Return the TransactionStatus of a deposit (or None)."""

    def _get(deposit_id: UUID) -> TransactionStatus | None:
        return session.execute(
            select(TransactionStatus).where(
                TransactionStatus.bank_transaction_id == deposit_id
            )
        ).scalar_one_or_none()

    return _get


@pytest.fixture
def allocation_count(session):
    """Number of PaymentAllocation rows currently in the session."""

    def _count() -> int:
        return session.execute(
            select(func.count()).select_from(PaymentAllocation)
        ).scalar_one()

    return _count
