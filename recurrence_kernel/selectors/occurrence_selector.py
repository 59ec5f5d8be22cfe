"""
OccurrenceSelector -- read-only queries over occurrences.

``find`` is the generic equality-filter query the deduplication strategies
are expressed against (see ``recurrence_kernel.domain.fingerprint``).
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import select

from recurrence_kernel.domain.types import Frequency, Occurrence
from recurrence_kernel.models.occurrence import OccurrenceModel
from recurrence_kernel.selectors.base import BaseSelector


class OccurrenceSelector(BaseSelector[OccurrenceModel]):
    """Occurrence lookups."""

    def get(self, occurrence_id: UUID, user_id: UUID) -> Occurrence | None:
        model = self._owned(OccurrenceModel, occurrence_id, user_id)
        return None if model is None else model.to_dto()

    def find(self, user_id: UUID, **filters: Any) -> list[Occurrence]:
        """Occurrences of ``user_id`` matching every equality filter.

        Raises:
            ValueError: If a filter names an unknown column.
        """
        stmt = select(OccurrenceModel).where(OccurrenceModel.user_id == user_id)
        for name, value in filters.items():
            column = getattr(OccurrenceModel, name, None)
            if column is None:
                raise ValueError(f"Unknown occurrence filter: {name}")
            if isinstance(value, Enum):
                value = value.value
            stmt = stmt.where(column.is_(None) if value is None else column == value)
        return [m.to_dto() for m in self.session.scalars(stmt)]

    def linked(self, recurrence_id: UUID, user_id: UUID) -> list[Occurrence]:
        """Occurrences linked to a recurrence, ordered by due date."""
        return sorted(
            self.find(user_id, recurrence_id=recurrence_id),
            key=lambda o: (o.due_date, str(o.id)),
        )

    def linked_due_dates(
        self, recurrence_id: UUID, user_id: UUID, dates: Iterable[date]
    ) -> set[date]:
        """Subset of ``dates`` already taken by a linked occurrence."""
        wanted = list(dates)
        if not wanted:
            return set()
        stmt = select(OccurrenceModel.due_date).where(
            OccurrenceModel.user_id == user_id,
            OccurrenceModel.recurrence_id == recurrence_id,
            OccurrenceModel.due_date.in_(wanted),
        )
        return set(self.session.scalars(stmt))

    def legacy_recurring(self, user_id: UUID) -> list[Occurrence]:
        """Standalone occurrences labelled as recurring but never linked."""
        stmt = (
            select(OccurrenceModel)
            .where(
                OccurrenceModel.user_id == user_id,
                OccurrenceModel.recurrence_label != Frequency.NONE.value,
                OccurrenceModel.recurrence_id.is_(None),
                OccurrenceModel.is_recurrence_instance.is_(False),
            )
            .order_by(OccurrenceModel.due_date, OccurrenceModel.id)
        )
        return [m.to_dto() for m in self.session.scalars(stmt)]
