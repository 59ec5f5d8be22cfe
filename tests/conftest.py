"""
Pytest fixtures for the recurrence kernel test suite.

Provides:
- In-memory SQLite sessions (no PostgreSQL required)
- A deterministic clock pinned to 2025-01-01
- Recurrence / occurrence factories
- Structured log capture
"""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

import recurrence_kernel.models  # noqa: F401  (registers tables)
from recurrence_config import EngineSettings
from recurrence_kernel.db.base import Base
from recurrence_kernel.db.engine import enable_sqlite_savepoints
from recurrence_kernel.domain.clock import DeterministicClock
from recurrence_kernel.domain.types import (
    Frequency,
    OccurrenceStatus,
    OccurrenceType,
    RecurrenceDraft,
)
from recurrence_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from recurrence_kernel.models.occurrence import OccurrenceModel
from recurrence_kernel.services import (
    MaintenanceService,
    MaterializationService,
    RecurrenceService,
    RegenerationService,
    VersionService,
)

TEST_USER_ID = uuid4()
TEST_COMPANY_ID = uuid4()


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
    Capture recurrence_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, materializer):
            materializer.generate(...)
            logs = captured_logs()
            assert any(r["message"] == "occurrences_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("recurrence_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    """In-memory SQLite engine with working SAVEPOINT support."""
    engine = create_engine("sqlite:///:memory:")

    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def clock():
    return DeterministicClock(date(2025, 1, 1))


@pytest.fixture
def settings():
    return EngineSettings()


@pytest.fixture
def user_id():
    return TEST_USER_ID


@pytest.fixture
def company_id():
    return TEST_COMPANY_ID


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def materializer(session, clock, settings):
    return MaterializationService(session, clock, settings)


@pytest.fixture
def recurrence_service(session, clock, settings, materializer):
    return RecurrenceService(session, clock, settings, materializer=materializer)


@pytest.fixture
def version_service(session, clock, settings):
    return VersionService(session, clock, settings)


@pytest.fixture
def regeneration_service(session, clock, settings, materializer):
    return RegenerationService(session, clock, settings, materializer=materializer)


@pytest.fixture
def maintenance_service(session, clock, settings):
    return MaintenanceService(session, clock, settings)


# =============================================================================
# Factories
# =============================================================================


def _draft(**overrides) -> RecurrenceDraft:
    values = dict(
        user_id=TEST_USER_ID,
        company_id=TEST_COMPANY_ID,
        type=OccurrenceType.EXPENSE,
        name="Office rent",
        base_amount=Decimal("400.00"),
        frequency=Frequency.MONTHLY,
        start_date=date(2025, 1, 15),
        counterparty_name="Acme Properties",
    )
    values.update(overrides)
    return RecurrenceDraft(**values)


@pytest.fixture
def make_recurrence(recurrence_service):
    """Store a template without materializing it; returns the template DTO."""

    def _make(**overrides):
        return recurrence_service.create_recurrence(
            _draft(**overrides), materialize=False
        ).recurrence

    return _make


@pytest.fixture
def make_occurrence(session):
    """Insert a standalone occurrence; returns the ORM model."""

    def _make(**overrides):
        values = dict(
            id=uuid4(),
            user_id=TEST_USER_ID,
            company_id=TEST_COMPANY_ID,
            type=OccurrenceType.EXPENSE.value,
            amount=Decimal("400.00"),
            status=OccurrenceStatus.PENDING.value,
            due_date=date(2025, 1, 15),
            description="Office rent",
            counterparty_name="Acme Properties",
            created_by_id=TEST_USER_ID,
        )
        values.update(overrides)
        occurrence = OccurrenceModel(**values)
        session.add(occurrence)
        session.flush()
        return occurrence

    return _make


@pytest.fixture
def linked_occurrences(session):
    """All occurrences of a recurrence ordered by due date."""

    def _get(recurrence_id):
        return list(
            session.scalars(
                select(OccurrenceModel)
                .where(OccurrenceModel.recurrence_id == recurrence_id)
                .order_by(OccurrenceModel.due_date)
            )
        )

    return _get


@pytest.fixture
def make_draft():
    """Build a RecurrenceDraft for the test user/company (monthly rent)."""
    return _draft
