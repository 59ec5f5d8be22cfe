"""
Tests for RecurrenceService -- template lifecycle.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from recurrence_kernel.domain.types import (
    Frequency,
    OccurrenceStatus,
    OccurrenceType,
    RecurrenceStatus,
)
from recurrence_kernel.exceptions import (
    InvalidAmountError,
    InvalidAnchorError,
    InvalidFrequencyError,
    InvalidHorizonError,
    RecurrenceNotFoundError,
)
from recurrence_kernel.models.occurrence import OccurrenceModel
from recurrence_kernel.models.recurrence import RecurrenceModel, RecurrenceVersionModel


def _count(session, model) -> int:
    return session.scalar(select(func.count()).select_from(model))


class TestCreateRecurrence:
    def test_active_template_is_materialized(self, recurrence_service, make_draft):
        result = recurrence_service.create_recurrence(make_draft())

        assert result.generation.generated_count == 6
        assert result.recurrence.last_generated_date == date(2025, 6, 15)
        assert result.recurrence.next_occurrence_date == date(2025, 7, 15)

    def test_initial_version(self, recurrence_service, make_draft):
        result = recurrence_service.create_recurrence(make_draft())

        assert result.version.version_number == 1
        assert result.version.amount == Decimal("400.00")
        assert result.version.effective_from == date(2025, 1, 15)
        assert result.version.effective_to is None
        assert result.recurrence.current_version_id == result.version.id

    def test_paused_template_is_not_materialized(
        self, session, recurrence_service, make_draft
    ):
        result = recurrence_service.create_recurrence(
            make_draft(status=RecurrenceStatus.PAUSED)
        )

        assert result.generation is None
        assert _count(session, OccurrenceModel) == 0

    def test_next_occurrence_uses_anchor(self, recurrence_service, make_draft):
        result = recurrence_service.create_recurrence(
            make_draft(day_of_month=1), materialize=False
        )

        assert result.recurrence.next_occurrence_date == date(2025, 2, 1)
        assert result.generation is None

    def test_default_horizon_from_settings(self, recurrence_service, make_draft):
        result = recurrence_service.create_recurrence(make_draft(), materialize=False)
        assert result.recurrence.horizon_months == 6

    def test_actor_recorded(self, session, recurrence_service, make_draft):
        actor = uuid4()
        result = recurrence_service.create_recurrence(make_draft(), actor_id=actor)

        model = session.get(RecurrenceModel, result.recurrence.id)
        assert model.created_by_id == actor
        assert result.version.created_by_id == actor

    @pytest.mark.parametrize(
        "overrides, error",
        [
            ({"frequency": Frequency.NONE}, InvalidFrequencyError),
            ({"day_of_month": 0}, InvalidAnchorError),
            ({"day_of_week": 7}, InvalidAnchorError),
            ({"horizon_months": 0}, InvalidHorizonError),
            ({"base_amount": Decimal("-10")}, InvalidAmountError),
        ],
    )
    def test_invalid_draft_writes_nothing(
        self, session, recurrence_service, make_draft, overrides, error
    ):
        with pytest.raises(error):
            recurrence_service.create_recurrence(make_draft(**overrides))

        assert _count(session, RecurrenceModel) == 0
        assert _count(session, RecurrenceVersionModel) == 0


class TestQueries:
    def test_get_recurrence(self, recurrence_service, make_recurrence):
        template = make_recurrence()

        fetched = recurrence_service.get_recurrence(template.id, template.user_id)

        assert fetched == template

    def test_get_recurrence_of_other_user(self, recurrence_service, make_recurrence):
        template = make_recurrence()

        with pytest.raises(RecurrenceNotFoundError):
            recurrence_service.get_recurrence(template.id, uuid4())

    def test_list_filters(self, recurrence_service, make_recurrence, user_id):
        make_recurrence(name="Rent")
        make_recurrence(name="Consulting", type=OccurrenceType.INCOME)
        make_recurrence(name="Gym", status=RecurrenceStatus.PAUSED)
        make_recurrence(name="Elsewhere", user_id=uuid4())

        names = [r.name for r in recurrence_service.list_recurrences(user_id)]
        assert names == ["Consulting", "Gym", "Rent"]

        income = recurrence_service.list_recurrences(user_id, type=OccurrenceType.INCOME)
        assert [r.name for r in income] == ["Consulting"]

        paused = recurrence_service.list_recurrences(user_id, status=RecurrenceStatus.PAUSED)
        assert [r.name for r in paused] == ["Gym"]


class TestDeleteRecurrence:
    @pytest.fixture
    def created(self, recurrence_service, make_draft):
        return recurrence_service.create_recurrence(make_draft()).recurrence

    def test_default_unlinks_occurrences(self, session, recurrence_service, created):
        result = recurrence_service.delete_recurrence(created.id, created.user_id)

        assert result.unlinked_occurrences == 6
        assert result.deleted_occurrences == 0
        assert result.deleted_versions == 1
        assert session.get(RecurrenceModel, created.id) is None
        orphans = session.scalars(select(OccurrenceModel)).all()
        assert len(orphans) == 6
        assert all(o.recurrence_id is None for o in orphans)
        assert not any(o.is_recurrence_instance for o in orphans)

    def test_delete_pending_keeps_settled(
        self, session, recurrence_service, created, linked_occurrences
    ):
        occurrences = linked_occurrences(created.id)
        occurrences[0].status = OccurrenceStatus.SETTLED.value
        occurrences[1].status = OccurrenceStatus.CANCELLED.value
        session.flush()

        result = recurrence_service.delete_recurrence(
            created.id, created.user_id, delete_occurrences=True
        )

        assert result.deleted_occurrences == 4
        assert result.unlinked_occurrences == 2
        remaining = session.scalars(select(OccurrenceModel)).all()
        assert {o.status for o in remaining} == {"SETTLED", "CANCELLED"}

    def test_delete_all_unresolved(
        self, session, recurrence_service, created, linked_occurrences
    ):
        occurrences = linked_occurrences(created.id)
        occurrences[0].status = OccurrenceStatus.SETTLED.value
        occurrences[1].status = OccurrenceStatus.CANCELLED.value
        session.flush()

        result = recurrence_service.delete_recurrence(
            created.id, created.user_id, delete_occurrences=True, pending_only=False
        )

        assert result.deleted_occurrences == 5
        remaining = session.scalars(select(OccurrenceModel)).all()
        assert [o.status for o in remaining] == ["SETTLED"]

    def test_unknown_recurrence(self, recurrence_service, user_id):
        with pytest.raises(RecurrenceNotFoundError):
            recurrence_service.delete_recurrence(uuid4(), user_id)
