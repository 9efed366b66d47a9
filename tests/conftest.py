"""
Pytest fixtures for the SACCO kernel test suite.

Provides:
- One engine and schema per test session, with per-test rollback isolation
- A deterministic clock and actor factories for every role
- Service and selector fixtures wired to the test session
- SACCO and return factories that drive the real workflow

Environment Variables:
- DATABASE_URL: Database to test against.  Defaults to in-memory SQLite;
  set a postgresql+psycopg2:// URL to run the suite on PostgreSQL.
"""

import itertools
import json
import logging
import os
from datetime import date
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import uuid4

import pytest
from sqlalchemy import text
from sqlalchemy.orm import Session, sessionmaker

import sacco_kernel.models  # noqa: F401  registers every table
from sacco_kernel.db.base import Base
from sacco_kernel.db.engine import (
    build_engine,
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    is_postgres,
    reset_engine,
)
from sacco_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from sacco_kernel.domain.clock import DeterministicClock
from sacco_kernel.domain.dtos import FinancialDataInput, SaccoInput
from sacco_kernel.domain.roles import Actor, Role
from sacco_kernel.domain.workflow import ReturnStatus, ReviewDecision
from sacco_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from sacco_kernel.selectors import ComplianceSelector, ReturnSelector
from sacco_kernel.services import (
    AuditService,
    ReturnWorkflowService,
    SaccoRegistryService,
    UserService,
)

DEFAULT_TEST_URL = "sqlite://"


def get_database_url() -> str:
    """Get database URL from environment, or use in-memory SQLite."""
    return os.environ.get("DATABASE_URL", DEFAULT_TEST_URL)


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
    Capture sacco_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, workflow):
            workflow.submit(...)
            logs = captured_logs()
            assert any(r["message"] == "return_submitted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("sacco_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Session-scoped DB infrastructure (create engine + tables ONCE per suite)
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single engine for the entire test session."""
    eng = init_engine_from_url(get_database_url(), echo=False)
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session, drop once at end."""
    drop_tables()
    create_tables()
    register_immutability_listeners()
    yield
    drop_tables()


def _truncate_all_tables(engine):
    """Remove all rows after tests that really commit (PostgreSQL only)."""
    table_names = [t.name for t in reversed(Base.metadata.sorted_tables)]
    with engine.connect() as conn:
        conn.execute(text("TRUNCATE " + ", ".join(table_names) + " CASCADE"))
        conn.commit()


# =============================================================================
# Per-test session with automatic rollback
# =============================================================================


@pytest.fixture(scope="function")
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    The session joins an outer transaction on a dedicated connection;
    ``session.commit()`` inside a test only releases a savepoint, and the
    outer transaction is rolled back at teardown.
    """
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


@pytest.fixture(scope="function")
def race_session_factory(tmp_path, db_engine, db_tables):
    """Independent sessions that really commit, for two-writer tests.

    On SQLite the in-memory database has a single connection, so each test
    gets its own file-backed database.  On PostgreSQL the shared engine is
    used and rows are truncated at teardown.
    """
    owns_engine = not is_postgres()
    if owns_engine:
        engine = build_engine(f"sqlite:///{tmp_path / 'race.db'}")
        Base.metadata.create_all(engine)
        factory = sessionmaker(bind=engine, expire_on_commit=False)
    else:
        engine = db_engine
        factory = get_session_factory()
    created: list[Session] = []

    def tracked_factory() -> Session:
        s = factory()
        created.append(s)
        return s

    yield tracked_factory

    for s in created:
        if s.in_transaction():
            s.rollback()
        s.close()
    if owns_engine:
        engine.dispose()
    else:
        _truncate_all_tables(engine)


@pytest.fixture
def without_immutability():
    """Temporarily remove the ORM immutability listeners."""
    unregister_immutability_listeners()
    yield
    register_immutability_listeners()


# =============================================================================
# Clock and actors
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    """2024-03-15 12:00 UTC, frozen until advanced."""
    return DeterministicClock()


@pytest.fixture
def make_actor():
    """Build an Actor for any role, optionally affiliated and/or inactive."""

    def _make(role: Role, sacco_id=None, active: bool = True) -> Actor:
        return Actor(id=uuid4(), role=Role(role), affiliated_sacco_id=sacco_id, active=active)

    return _make


@pytest.fixture
def admin(make_actor) -> Actor:
    return make_actor(Role.SYSTEM_ADMIN)


@pytest.fixture
def analyst(make_actor) -> Actor:
    return make_actor(Role.ANALYST)


@pytest.fixture
def supervisor(make_actor) -> Actor:
    return make_actor(Role.SUPERVISOR)


# =============================================================================
# Services and selectors
# =============================================================================


@pytest.fixture
def auditor(session, clock) -> AuditService:
    return AuditService(session, clock)


@pytest.fixture
def registry(session, clock, auditor) -> SaccoRegistryService:
    return SaccoRegistryService(session, clock, auditor)


@pytest.fixture
def workflow(session, clock, auditor) -> ReturnWorkflowService:
    return ReturnWorkflowService(session, clock, auditor, max_document_bytes=5_000_000)


@pytest.fixture
def users(session, clock, auditor) -> UserService:
    return UserService(session, clock, auditor)


@pytest.fixture
def compliance(session, clock) -> ComplianceSelector:
    return ComplianceSelector(session, clock)


@pytest.fixture
def returns(session, clock) -> ReturnSelector:
    return ReturnSelector(session, clock)


# =============================================================================
# Data factories
# =============================================================================


@pytest.fixture
def sacco_input():
    """SaccoInput with unique registration numbers; keyword overrides apply."""
    counter = itertools.count(1)

    def _make(**overrides) -> SaccoInput:
        n = next(counter)
        values = {
            "registration_number": f"CS/2020/{n:04d}",
            "name": f"Test Sacco {n}",
            "county": "Nairobi",
            "contact_person": "Jane Muthoni",
            "phone": "+254700000000",
            "registration_date": date(2020, 1, 1),
        }
        values.update(overrides)
        return SaccoInput(**values)

    return _make


@pytest.fixture
def create_sacco(registry, admin, sacco_input):
    def _create(**overrides):
        return registry.create(sacco_input(**overrides), admin)

    return _create


@pytest.fixture
def sacco(create_sacco):
    return create_sacco(registration_number="REG-001", name="Alpha")


@pytest.fixture
def officer(sacco, make_actor) -> Actor:
    """Accounts_Officer affiliated with ``sacco``."""
    return make_actor(Role.ACCOUNTS_OFFICER, sacco.id)


@pytest.fixture
def financial_input() -> FinancialDataInput:
    return FinancialDataInput(
        share_capital=Decimal("12345.67"),
        member_deposits=Decimal("250000.00"),
        total_assets=Decimal("410000.50"),
        total_liabilities=Decimal("300000.25"),
        total_members=320,
        new_members=14,
        exited_members=2,
        total_loans_cumulative=Decimal("1200000.00"),
        loans_issued_monthly=Decimal("85000.00"),
        loans_repaid_monthly=Decimal("61000.40"),
        outstanding_loan_balance=Decimal("390000.00"),
        number_of_loanees=118,
        interest_earned_monthly=Decimal("9100.10"),
        par30=Decimal("5.25"),
        par60=Decimal("3.10"),
        par90=Decimal("1.05"),
        total_income_monthly=Decimal("15000.00"),
        total_expenses_monthly=Decimal("11250.99"),
    )


_DECISIONS = {
    ReturnStatus.APPROVED: ReviewDecision.APPROVED,
    ReturnStatus.REJECTED: ReviewDecision.REJECTED,
    ReturnStatus.FLAGGED: ReviewDecision.FLAGGED,
}


@pytest.fixture
def return_in_state(workflow, officer, analyst, sacco, financial_input):
    """Drive a new return through the real workflow to ``status``.

    Defaults to ``sacco`` and ``officer`` for March 2024; pass ``sacco_id``
    together with ``staff`` to file for another SACCO.
    """

    def _drive(status: ReturnStatus, month: date = date(2024, 3, 1), sacco_id=None, staff=None):
        staff = staff or officer
        ret = workflow.create_draft(sacco_id or sacco.id, month, staff)
        if status == ReturnStatus.DRAFT:
            return ret
        workflow.attach_financial_data(ret.id, financial_input, staff)
        ret = workflow.submit(ret.id, staff)
        if status == ReturnStatus.SUBMITTED:
            return ret
        ret = workflow.begin_review(ret.id, analyst)
        if status == ReturnStatus.UNDER_REVIEW:
            return ret
        return workflow.decide(ret.id, _DECISIONS[status], "reviewed", analyst)

    return _drive
