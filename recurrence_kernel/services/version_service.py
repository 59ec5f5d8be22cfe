"""
VersionService -- append-only amount history with cascade to future entries.

Contract:
    ``apply_version()`` closes the active version, opens the next one,
    reprices the template, and (optionally) cascades the new amount to the
    template's unresolved future occurrences -- all in one atomic batch.

Invariants enforced:
    - At most one version per recurrence is open (``effective_to is None``).
    - Version numbers strictly increase; ``effective_from`` of version n+1 is
      strictly after that of version n.
    - The cascade touches an occurrence only if it is PENDING, not
      ``overridden_from_recurrence`` and due on or after ``effective_from``.
      Settled history keeps its historical amount.

Failure modes:
    - InvalidAmountError for a non-positive or non-numeric amount.
    - VersionOrderingError when ``effective_from`` does not move forward.
    - VersionNotActiveError when deleting any version but the active one.
    - RecurrenceNotFoundError / VersionNotFoundError for missing or foreign ids.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from recurrence_config import EngineSettings
from recurrence_kernel.db.types import is_positive_amount, to_money
from recurrence_kernel.domain.clock import Clock
from recurrence_kernel.domain.types import (
    OccurrenceStatus,
    RecurrenceVersion,
    VersionResult,
)
from recurrence_kernel.exceptions import (
    InvalidAmountError,
    RecurrenceNotFoundError,
    VersionNotActiveError,
    VersionNotFoundError,
    VersionOrderingError,
)
from recurrence_kernel.logging_config import LogContext, get_logger
from recurrence_kernel.models.occurrence import OccurrenceModel
from recurrence_kernel.models.recurrence import RecurrenceModel, RecurrenceVersionModel
from recurrence_kernel.selectors.recurrence_selector import RecurrenceSelector
from recurrence_kernel.services.base import BaseService

logger = get_logger("services.version")


def validate_amount(amount: object) -> Decimal:
    """Coerce and check an amount.

    Raises:
        InvalidAmountError: Not numeric, not finite, or not strictly positive.
    """
    try:
        value = to_money(amount)
    except ValueError:
        raise InvalidAmountError(amount) from None
    if not is_positive_amount(value):
        raise InvalidAmountError(amount)
    return value


class VersionService(BaseService[RecurrenceVersionModel]):
    """Manage the amount-version history of recurrences."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
    ):
        super().__init__(session, clock, settings)
        self._recurrences = RecurrenceSelector(session)

    def apply_version(
        self,
        recurrence_id: UUID,
        user_id: UUID,
        amount: Decimal | int | str,
        effective_from: date,
        reason: str | None = None,
        cascade: bool = True,
        actor_id: UUID | None = None,
    ) -> VersionResult:
        """Record a new amount effective from ``effective_from``.

        Returns the new version and how many occurrences were repriced.
        """
        new_amount = validate_amount(amount)
        actor = actor_id or user_id

        with LogContext.bind(user_id=user_id, recurrence_id=recurrence_id):
            model = self._lock_recurrence(recurrence_id, user_id)
            latest = self._latest_version(recurrence_id, user_id)
            if latest is not None and effective_from <= latest.effective_from:
                raise VersionOrderingError(
                    str(recurrence_id), effective_from, latest.effective_from
                )
            active = self._active_version(recurrence_id, user_id)

            updated: list[OccurrenceModel] = []
            with self.atomic_batch(recurrence_id, "apply_version"):
                if active is not None:
                    active.effective_to = effective_from - timedelta(days=1)
                    active.is_active = False
                    active.updated_by_id = actor

                version = RecurrenceVersionModel(
                    id=uuid4(),
                    user_id=user_id,
                    recurrence_id=recurrence_id,
                    amount=new_amount,
                    effective_from=effective_from,
                    effective_to=None,
                    version_number=(latest.version_number + 1) if latest else 1,
                    is_active=True,
                    change_reason=reason,
                    created_by_id=actor,
                )
                self.session.add(version)

                model.base_amount = new_amount
                model.current_version_id = version.id
                model.updated_by_id = actor

                if cascade:
                    for occurrence in self._cascade_targets(
                        recurrence_id, user_id, effective_from
                    ):
                        occurrence.amount = new_amount
                        occurrence.recurrence_version_id = version.id
                        occurrence.updated_by_id = actor
                        updated.append(occurrence)

            logger.info(
                "version_applied",
                extra={
                    "version_number": version.version_number,
                    "amount": new_amount,
                    "effective_from": effective_from,
                    "closed_version": active.version_number if active else None,
                },
            )
            if cascade:
                logger.info(
                    "cascade_applied",
                    extra={
                        "updated_occurrence_count": len(updated),
                        "effective_from": effective_from,
                    },
                )

            return VersionResult(
                version=version.to_dto(),
                updated_occurrence_count=len(updated),
                closed_version=active.to_dto() if active is not None else None,
            )

    def list_versions(self, recurrence_id: UUID, user_id: UUID) -> list[RecurrenceVersion]:
        """Version history ordered by version number.

        Raises:
            RecurrenceNotFoundError: Missing, or owned by another user.
        """
        if self._recurrences.get(recurrence_id, user_id) is None:
            raise RecurrenceNotFoundError(str(recurrence_id))
        return self._recurrences.versions(recurrence_id, user_id)

    def get_version(self, version_id: UUID, user_id: UUID) -> RecurrenceVersion:
        version = self._recurrences.get_version(version_id, user_id)
        if version is None:
            raise VersionNotFoundError(str(version_id))
        return version

    def delete_latest_version(
        self,
        version_id: UUID,
        user_id: UUID,
        actor_id: UUID | None = None,
    ) -> RecurrenceVersion | None:
        """Delete the active version and reactivate the one before it.

        The template's amount reverts to the reactivated version.  Existing
        occurrences are not repriced.  Returns the reactivated version, or
        None when the deleted version was the only one.
        """
        version = self.session.get(RecurrenceVersionModel, version_id)
        if version is None or version.user_id != user_id:
            raise VersionNotFoundError(str(version_id))

        recurrence_id = version.recurrence_id
        with LogContext.bind(user_id=user_id, recurrence_id=recurrence_id):
            model = self._lock_recurrence(recurrence_id, user_id)
            latest = self._latest_version(recurrence_id, user_id)
            if not version.is_active or latest is None or latest.id != version.id:
                raise VersionNotActiveError(str(version_id))

            previous = self.session.scalars(
                select(RecurrenceVersionModel).where(
                    RecurrenceVersionModel.recurrence_id == recurrence_id,
                    RecurrenceVersionModel.user_id == user_id,
                    RecurrenceVersionModel.version_number == version.version_number - 1,
                )
            ).one_or_none()

            actor = actor_id or user_id
            with self.atomic_batch(recurrence_id, "delete_version"):
                self.session.delete(version)
                if previous is not None:
                    previous.is_active = True
                    previous.effective_to = None
                    previous.updated_by_id = actor
                    model.base_amount = previous.amount
                    model.current_version_id = previous.id
                else:
                    model.current_version_id = None
                model.updated_by_id = actor

            logger.info(
                "version_deleted",
                extra={
                    "version_number": version.version_number,
                    "reactivated_version": previous.version_number if previous else None,
                },
            )
            return previous.to_dto() if previous is not None else None

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def open_initial_version(
        self,
        model: RecurrenceModel,
        actor_id: UUID,
        reason: str = "initial",
    ) -> RecurrenceVersionModel:
        """Stage version 1 for a freshly created template (caller flushes)."""
        version = RecurrenceVersionModel(
            id=uuid4(),
            user_id=model.user_id,
            recurrence_id=model.id,
            amount=model.base_amount,
            effective_from=model.start_date,
            effective_to=None,
            version_number=1,
            is_active=True,
            change_reason=reason,
            created_by_id=actor_id,
        )
        self.session.add(version)
        model.current_version_id = version.id
        return version

    def _latest_version(
        self, recurrence_id: UUID, user_id: UUID
    ) -> RecurrenceVersionModel | None:
        return self.session.scalars(
            select(RecurrenceVersionModel)
            .where(
                RecurrenceVersionModel.recurrence_id == recurrence_id,
                RecurrenceVersionModel.user_id == user_id,
            )
            .order_by(RecurrenceVersionModel.version_number.desc())
            .limit(1)
        ).first()

    def _active_version(
        self, recurrence_id: UUID, user_id: UUID
    ) -> RecurrenceVersionModel | None:
        return self.session.scalars(
            select(RecurrenceVersionModel)
            .where(
                RecurrenceVersionModel.recurrence_id == recurrence_id,
                RecurrenceVersionModel.user_id == user_id,
                RecurrenceVersionModel.effective_to.is_(None),
            )
            .order_by(RecurrenceVersionModel.version_number.desc())
        ).first()

    def _cascade_targets(
        self, recurrence_id: UUID, user_id: UUID, effective_from: date
    ) -> list[OccurrenceModel]:
        return list(
            self.session.scalars(
                select(OccurrenceModel).where(
                    OccurrenceModel.user_id == user_id,
                    OccurrenceModel.recurrence_id == recurrence_id,
                    OccurrenceModel.status == OccurrenceStatus.PENDING.value,
                    OccurrenceModel.overridden_from_recurrence.is_(False),
                    OccurrenceModel.due_date >= effective_from,
                )
            )
        )
