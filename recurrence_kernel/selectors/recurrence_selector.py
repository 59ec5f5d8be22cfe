"""
RecurrenceSelector -- read-only queries over recurrence templates and versions.

All methods are scoped to ``user_id``; a template owned by someone else is
indistinguishable from a missing one.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from recurrence_kernel.domain.types import (
    OccurrenceType,
    RecurrenceStatus,
    RecurrenceTemplate,
    RecurrenceVersion,
)
from recurrence_kernel.models.recurrence import RecurrenceModel, RecurrenceVersionModel
from recurrence_kernel.selectors.base import BaseSelector


class RecurrenceSelector(BaseSelector[RecurrenceModel]):
    """Template and version lookups."""

    def get(self, recurrence_id: UUID, user_id: UUID) -> RecurrenceTemplate | None:
        model = self._owned(RecurrenceModel, recurrence_id, user_id)
        return None if model is None else model.to_dto()

    def list_recurrences(
        self,
        user_id: UUID,
        company_id: UUID | None = None,
        status: RecurrenceStatus | None = None,
        type: OccurrenceType | None = None,
    ) -> list[RecurrenceTemplate]:
        """Templates of a user, ordered by name."""
        stmt = select(RecurrenceModel).where(RecurrenceModel.user_id == user_id)
        if company_id is not None:
            stmt = stmt.where(RecurrenceModel.company_id == company_id)
        if status is not None:
            stmt = stmt.where(RecurrenceModel.status == RecurrenceStatus(status).value)
        if type is not None:
            stmt = stmt.where(RecurrenceModel.type == OccurrenceType(type).value)
        stmt = stmt.order_by(RecurrenceModel.name, RecurrenceModel.id)
        return [m.to_dto() for m in self.session.scalars(stmt)]

    def active(
        self, user_id: UUID, company_id: UUID | None = None
    ) -> list[RecurrenceTemplate]:
        return self.list_recurrences(
            user_id, company_id=company_id, status=RecurrenceStatus.ACTIVE
        )

    def versions(self, recurrence_id: UUID, user_id: UUID) -> list[RecurrenceVersion]:
        """Version history, oldest first."""
        stmt = (
            select(RecurrenceVersionModel)
            .where(
                RecurrenceVersionModel.recurrence_id == recurrence_id,
                RecurrenceVersionModel.user_id == user_id,
            )
            .order_by(RecurrenceVersionModel.version_number)
        )
        return [m.to_dto() for m in self.session.scalars(stmt)]

    def get_version(self, version_id: UUID, user_id: UUID) -> RecurrenceVersion | None:
        model = self._owned(RecurrenceVersionModel, version_id, user_id)
        return None if model is None else model.to_dto()
