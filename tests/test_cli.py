"""
Tests for scripts/regenerate_recurrences.py, run against a SQLite file.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session

import recurrence_kernel.models  # noqa: F401  (registers tables)
from recurrence_kernel.db.base import Base
from recurrence_kernel.db.engine import enable_sqlite_savepoints
from recurrence_kernel.domain.clock import DeterministicClock
from recurrence_kernel.domain.types import Frequency, OccurrenceType, RecurrenceDraft
from recurrence_kernel.models.occurrence import OccurrenceModel
from recurrence_kernel.services import RecurrenceService
from scripts.regenerate_recurrences import main


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'recurrences.db'}"


@pytest.fixture
def seeded(database_url):
    """One stored, not yet materialized monthly template."""
    engine = create_engine(database_url)
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(engine)
    user_id = uuid4()
    with Session(engine) as session:
        RecurrenceService(session, DeterministicClock(date(2025, 1, 1))).create_recurrence(
            RecurrenceDraft(
                user_id=user_id,
                company_id=uuid4(),
                type=OccurrenceType.EXPENSE,
                name="Office rent",
                base_amount=Decimal("400.00"),
                frequency=Frequency.MONTHLY,
                start_date=date(2025, 1, 15),
            ),
            materialize=False,
        )
        session.commit()
    yield engine, user_id
    engine.dispose()


def _occurrence_count(engine) -> int:
    with Session(engine) as session:
        return session.scalar(select(func.count()).select_from(OccurrenceModel))


class TestRegenerateRecurrencesCli:
    def test_generate_commits(self, seeded, database_url, capsys):
        engine, user_id = seeded

        code = main(
            [
                "--user-id", str(user_id),
                "--database-url", database_url,
                "--as-of-date", "2025-01-01",
            ]
        )

        assert code == 0
        out = capsys.readouterr().out
        assert "occurrences generated: 6" in out
        assert _occurrence_count(engine) == 6

    def test_maintenance_job(self, seeded, database_url, capsys):
        _, user_id = seeded

        code = main(
            [
                "--user-id", str(user_id),
                "--database-url", database_url,
                "--job", "cleanup-duplicates",
            ]
        )

        assert code == 0
        assert "recurrences analyzed:  1" in capsys.readouterr().out

    def test_create_tables_on_empty_database(self, database_url, capsys):
        code = main(
            [
                "--user-id", str(uuid4()),
                "--database-url", database_url,
                "--create-tables",
            ]
        )

        assert code == 0
        assert "recurrences processed: 0" in capsys.readouterr().out

    def test_missing_config_file(self, database_url, tmp_path, capsys):
        code = main(
            [
                "--user-id", str(uuid4()),
                "--database-url", database_url,
                "--config", str(tmp_path / "missing.yaml"),
            ]
        )

        assert code == 1
        assert "Config file not found" in capsys.readouterr().err

    def test_invalid_horizon_rolls_back(self, seeded, database_url, capsys):
        engine, user_id = seeded

        code = main(
            [
                "--user-id", str(user_id),
                "--database-url", database_url,
                "--horizon-months", "99",
            ]
        )

        assert code == 0
        out = capsys.readouterr().out
        assert "FAILED" in out
        assert "INVALID_HORIZON" in out
        assert _occurrence_count(engine) == 0
