"""
RegenerationService -- apply template edits and rebuild future occurrences.

Contract:
    ``regenerate()`` applies a partial edit to a template.  When the edit
    changes a schedule-defining field (frequency, anchor, start date, base
    amount, horizon) on a template that stays ACTIVE, future unresolved
    occurrences are deleted and the horizon is refilled under the new
    configuration.  A transition from ACTIVE to PAUSED/ENDED deletes future
    unresolved occurrences and generates nothing.

    ``cascade_by_similarity()`` is the fallback for entries that were never
    linked to a template: it reprices lookalike occurrences by company, type,
    counterparty and description.

Invariants enforced:
    - Only PENDING, non-overridden occurrences due on/after the cutoff are
      deleted.  SETTLED and overridden occurrences always survive.
    - Validation of the edited configuration happens before any write.
    - A changed base amount opens a new amount version (no cascade) before
      anything is rebuilt, so regenerated occurrences point at the version
      that priced them.
    - After a deletion the bookmarks point at the newest occurrence still
      linked (or are cleared), so the rebuild does not read as a broken link.
    - Versioning, deletion and regeneration run in the caller's transaction;
      a failure while regenerating leaves the caller to roll back all three.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from recurrence_config import EngineSettings
from recurrence_kernel.domain.clock import Clock
from recurrence_kernel.domain.schedule import (
    coerce_frequency,
    effective_anchors,
    first_occurrence_date,
    next_occurrence_date,
    validate_horizon,
    validate_schedule,
)
from recurrence_kernel.domain.types import (
    CascadeResult,
    Certainty,
    Frequency,
    OccurrenceStatus,
    RecurrenceChanges,
    RecurrenceStatus,
    RegenerationResult,
)
from recurrence_kernel.exceptions import OccurrenceNotFoundError
from recurrence_kernel.logging_config import LogContext, get_logger
from recurrence_kernel.models.occurrence import OccurrenceModel
from recurrence_kernel.models.recurrence import RecurrenceModel
from recurrence_kernel.selectors.recurrence_selector import RecurrenceSelector
from recurrence_kernel.services.base import BaseService
from recurrence_kernel.services.materialization_service import MaterializationService
from recurrence_kernel.services.version_service import VersionService, validate_amount

logger = get_logger("services.regeneration")

_ENUM_FIELDS = {
    "frequency": Frequency,
    "status": RecurrenceStatus,
    "certainty": Certainty,
}

_STOPPED = (RecurrenceStatus.PAUSED, RecurrenceStatus.ENDED)


class RegenerationService(BaseService[RecurrenceModel]):
    """Edit-driven cleanup and regeneration."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
        materializer: MaterializationService | None = None,
    ):
        super().__init__(session, clock, settings)
        self._materializer = materializer or MaterializationService(
            session, self.clock, self.settings
        )
        self._versions = VersionService(session, self.clock, self.settings)
        self._recurrences = RecurrenceSelector(session)

    def regenerate(
        self,
        recurrence_id: UUID,
        user_id: UUID,
        changes: RecurrenceChanges,
        actor_id: UUID | None = None,
        cutoff: date | None = None,
    ) -> RegenerationResult:
        """Apply ``changes`` and clean up / regenerate as the edit requires."""
        actor = actor_id or user_id
        cutoff = cutoff or self.clock.today()

        with LogContext.bind(user_id=user_id, recurrence_id=recurrence_id):
            model = self._lock_recurrence(recurrence_id, user_id)
            before = model.to_dto()

            values = self._normalize(changes.provided())
            validate_schedule(
                values.get("frequency", before.frequency),
                values.get("day_of_month", before.day_of_month),
                values.get("day_of_week", before.day_of_week),
            )
            if "horizon_months" in values:
                validate_horizon(
                    values["horizon_months"],
                    self.settings.generation.max_horizon_months,
                )

            changed = tuple(
                sorted(
                    name for name, value in values.items()
                    if getattr(before, name) != value
                )
            )
            needs_regeneration = any(
                name in self.settings.regeneration.trigger_fields for name in changed
            )
            final_status = values.get("status", before.status)
            stopping = (
                before.status == RecurrenceStatus.ACTIVE and final_status in _STOPPED
            )
            resuming = (
                before.status != RecurrenceStatus.ACTIVE
                and final_status == RecurrenceStatus.ACTIVE
            )

            version = None
            if "base_amount" in changed:
                version = self._versions.apply_version(
                    recurrence_id,
                    user_id,
                    values["base_amount"],
                    effective_from=self._repricing_date(recurrence_id, user_id, cutoff),
                    reason="template edit",
                    cascade=False,
                    actor_id=actor,
                ).version

            deleted = 0
            with self.atomic_batch(recurrence_id, "regenerate"):
                for name in changed:
                    if name == "base_amount":
                        continue
                    value = values[name]
                    setattr(model, name, value.value if name in _ENUM_FIELDS else value)
                if changed:
                    model.updated_by_id = actor

                if stopping or (
                    needs_regeneration and final_status == RecurrenceStatus.ACTIVE
                ):
                    deleted = self._delete_future(recurrence_id, user_id, cutoff)
                    if deleted:
                        self._rewind_bookmarks(model)

            generation = None
            refill = needs_regeneration or resuming
            if final_status == RecurrenceStatus.ACTIVE and refill:
                generation = self._materializer.materialize(
                    model.to_dto(), actor_id=actor
                )

            result = RegenerationResult(
                recurrence=model.to_dto(),
                deleted_count=deleted,
                generated_count=generation.generated_count if generation else 0,
                regenerated=generation is not None,
                changed_fields=changed,
                generation=generation,
                version=version,
            )
            logger.info(
                "regeneration_completed",
                extra={
                    "changed_fields": list(changed),
                    "regenerated": result.regenerated,
                    "deleted_count": deleted,
                    "generated_count": result.generated_count,
                    "final_status": final_status,
                },
            )
            return result

    def delete_future_occurrences(
        self,
        recurrence_id: UUID,
        user_id: UUID,
        cutoff: date | None = None,
    ) -> int:
        """Delete PENDING, non-overridden occurrences due on/after ``cutoff``."""
        cutoff = cutoff or self.clock.today()
        with LogContext.bind(user_id=user_id, recurrence_id=recurrence_id):
            model = self._lock_recurrence(recurrence_id, user_id)
            with self.atomic_batch(recurrence_id, "delete_future"):
                deleted = self._delete_future(recurrence_id, user_id, cutoff)
                if deleted:
                    self._rewind_bookmarks(model)
            return deleted

    def cascade_by_similarity(
        self,
        source_occurrence_id: UUID,
        user_id: UUID,
        new_amount: Decimal | int | str,
        effective_from: date,
        reason: str | None = None,
        actor_id: UUID | None = None,
    ) -> CascadeResult:
        """Reprice unlinked lookalikes of an occurrence, and the occurrence itself.

        A lookalike shares company and type, is PENDING and not overridden,
        has a recurring label, the same description (case-insensitive) and
        the same counterparty (by id, or by case-insensitive name), and is
        due on or after ``effective_from``.  The source itself is repriced only
        while it is PENDING and not overridden.
        """
        amount = validate_amount(new_amount)
        actor = actor_id or user_id
        today = self.clock.today()

        source = self.session.get(OccurrenceModel, source_occurrence_id)
        if source is None or source.user_id != user_id:
            raise OccurrenceNotFoundError(str(source_occurrence_id))

        description = _fold(source.description)
        counterparty_name = _fold(source.counterparty_name)

        candidates = self.session.scalars(
            select(OccurrenceModel).where(
                OccurrenceModel.user_id == user_id,
                OccurrenceModel.company_id == source.company_id,
                OccurrenceModel.type == source.type,
                OccurrenceModel.status == OccurrenceStatus.PENDING.value,
                OccurrenceModel.overridden_from_recurrence.is_(False),
                OccurrenceModel.recurrence_label != Frequency.NONE.value,
                OccurrenceModel.due_date >= effective_from,
                OccurrenceModel.id != source.id,
            )
        ).all()
        matches = [
            o
            for o in candidates
            if _fold(o.description) == description
            and (
                _fold(o.counterparty_name) == counterparty_name
                or (
                    source.counterparty_id is not None
                    and o.counterparty_id == source.counterparty_id
                )
            )
        ]

        updated: list[OccurrenceModel] = []
        batch_key = source.recurrence_id or source.id
        with self.atomic_batch(batch_key, "cascade_by_similarity"):
            if (
                source.status == OccurrenceStatus.PENDING.value
                and not source.overridden_from_recurrence
            ):
                self._reprice(source, amount, reason or "amount update", today, actor)
                updated.append(source)
            for occurrence in matches:
                self._reprice(
                    occurrence, amount, reason or "cascaded amount update", today, actor
                )
                updated.append(occurrence)

        logger.info(
            "similarity_cascade_applied",
            extra={
                "source_occurrence_id": str(source.id),
                "updated_count": len(updated),
                "effective_from": effective_from,
            },
        )
        return CascadeResult(
            source_occurrence_id=source.id,
            updated_count=len(updated),
            updated_ids=tuple(o.id for o in updated),
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _delete_future(self, recurrence_id: UUID, user_id: UUID, cutoff: date) -> int:
        result = self.session.execute(
            delete(OccurrenceModel)
            .where(
                OccurrenceModel.user_id == user_id,
                OccurrenceModel.recurrence_id == recurrence_id,
                OccurrenceModel.status == OccurrenceStatus.PENDING.value,
                OccurrenceModel.overridden_from_recurrence.is_(False),
                OccurrenceModel.due_date >= cutoff,
            )
            .execution_options(synchronize_session="fetch")
        )
        deleted = result.rowcount or 0
        logger.info(
            "future_occurrences_deleted",
            extra={"deleted_count": deleted, "cutoff": cutoff},
        )
        return deleted

    def _repricing_date(self, recurrence_id: UUID, user_id: UUID, cutoff: date) -> date:
        # Version starts must strictly increase; a version that has not
        # started by the cutoff is followed the day after it starts.
        history = self._recurrences.versions(recurrence_id, user_id)
        if history and history[-1].effective_from >= cutoff:
            return history[-1].effective_from + timedelta(days=1)
        return cutoff

    def _rewind_bookmarks(self, model: RecurrenceModel) -> None:
        """Point the bookmarks at the newest occurrence that is still linked."""
        survivor = self.session.scalar(
            select(func.max(OccurrenceModel.due_date)).where(
                OccurrenceModel.user_id == model.user_id,
                OccurrenceModel.recurrence_id == model.id,
            )
        )
        day_of_month, day_of_week = effective_anchors(
            model.frequency, model.start_date, model.day_of_month, model.day_of_week
        )
        model.last_generated_date = survivor
        if survivor is None:
            model.next_occurrence_date = first_occurrence_date(
                model.start_date, model.frequency, day_of_month, day_of_week
            )
        else:
            model.next_occurrence_date = next_occurrence_date(
                survivor, model.frequency, day_of_month, day_of_week
            )

    @staticmethod
    def _reprice(
        occurrence: OccurrenceModel,
        amount: Decimal,
        reason: str,
        today: date,
        actor_id: UUID,
    ) -> None:
        occurrence.amount = amount
        occurrence.cascade_reason = reason
        occurrence.cascade_date = today
        occurrence.updated_by_id = actor_id

    @staticmethod
    def _normalize(values: dict[str, Any]) -> dict[str, Any]:
        normalized = dict(values)
        if "frequency" in normalized:
            normalized["frequency"] = coerce_frequency(normalized["frequency"])
        for name in ("status", "certainty"):
            if name in normalized:
                normalized[name] = _ENUM_FIELDS[name](normalized[name])
        if "base_amount" in normalized:
            normalized["base_amount"] = validate_amount(normalized["base_amount"])
        return normalized


def _fold(value: str | None) -> str:
    return (value or "").strip().lower()
