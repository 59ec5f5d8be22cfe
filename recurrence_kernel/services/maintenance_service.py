"""
MaintenanceService -- repair jobs over already-stored data.

Three user-scoped jobs, each safe to re-run:

    repair_dates()
        Rebuilds the generated instances of every ACTIVE template whose dates
        drifted from its start-date anchor.

    cleanup_duplicates()
        Collapses duplicate templates and duplicate occurrences that earlier
        double submissions or racing generators left behind.

    migrate_legacy_recurrences()
        Converts standalone occurrences that only carry a recurrence label
        into real templates with linked instances.

Invariants enforced:
    - Only PENDING, non-overridden occurrences are ever deleted.
    - Within a duplicate group the oldest row (``created_at``, then id) is
      the one kept.
    - A template's failure is recorded and does not abort the job.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Iterable
from typing import TypeVar
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from recurrence_config import EngineSettings
from recurrence_kernel.domain.clock import Clock
from recurrence_kernel.domain.schedule import (
    coerce_frequency,
    day_key,
    effective_anchors,
    instance_key,
)
from recurrence_kernel.domain.types import (
    CleanupSummary,
    GenerationFailure,
    MigrationSummary,
    OccurrenceStatus,
    RecurrenceDraft,
    RecurrenceStatus,
    RepairDetail,
    RepairSummary,
)
from recurrence_kernel.exceptions import RecurrenceKernelError
from recurrence_kernel.logging_config import LogContext, get_logger
from recurrence_kernel.models.occurrence import OccurrenceModel
from recurrence_kernel.models.recurrence import RecurrenceModel, RecurrenceVersionModel
from recurrence_kernel.selectors.occurrence_selector import OccurrenceSelector
from recurrence_kernel.services.base import BaseService
from recurrence_kernel.services.materialization_service import MaterializationService
from recurrence_kernel.services.recurrence_service import RecurrenceService

logger = get_logger("services.maintenance")

_Row = TypeVar("_Row", OccurrenceModel, RecurrenceModel)


class MaintenanceService(BaseService[RecurrenceModel]):
    """User-scoped repair, deduplication and legacy migration jobs."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
    ):
        super().__init__(session, clock, settings)
        self._occurrences = OccurrenceSelector(session)
        self._materializer = MaterializationService(session, self.clock, self.settings)
        self._lifecycle = RecurrenceService(
            session, self.clock, self.settings, materializer=self._materializer
        )

    # ------------------------------------------------------------------
    # Date repair
    # ------------------------------------------------------------------

    def repair_dates(self, user_id: UUID) -> RepairSummary:
        """Delete drifted generated instances and regenerate them.

        For each ACTIVE template, linked PENDING instances that are not
        overridden and not due on the start date are removed, the bookmarks
        are reset and the template is materialized again.
        """
        details: list[RepairDetail] = []
        templates = self.session.scalars(
            select(RecurrenceModel)
            .where(
                RecurrenceModel.user_id == user_id,
                RecurrenceModel.status == RecurrenceStatus.ACTIVE.value,
            )
            .order_by(RecurrenceModel.name, RecurrenceModel.id)
        ).all()

        for template in templates:
            with LogContext.bind(user_id=user_id, recurrence_id=template.id):
                model = self._lock_recurrence(template.id, user_id)
                with self.atomic_batch(model.id, "repair_dates"):
                    deleted = self.session.execute(
                        delete(OccurrenceModel)
                        .where(
                            OccurrenceModel.user_id == user_id,
                            OccurrenceModel.recurrence_id == model.id,
                            OccurrenceModel.is_recurrence_instance.is_(True),
                            OccurrenceModel.status == OccurrenceStatus.PENDING.value,
                            OccurrenceModel.overridden_from_recurrence.is_(False),
                            OccurrenceModel.due_date != model.start_date,
                        )
                        .execution_options(synchronize_session="fetch")
                    ).rowcount or 0
                    model.last_generated_date = None
                    model.next_occurrence_date = None

                generation = self._materializer.materialize(model.to_dto())
                details.append(
                    RepairDetail(
                        recurrence_id=model.id,
                        name=model.name,
                        deleted=deleted,
                        generated=generation.generated_count,
                    )
                )
                logger.info(
                    "recurrence_dates_repaired",
                    extra={
                        "deleted_count": deleted,
                        "generated_count": generation.generated_count,
                    },
                )

        summary = RepairSummary(
            recurrences_processed=len(details),
            occurrences_deleted=sum(d.deleted for d in details),
            occurrences_generated=sum(d.generated for d in details),
            details=tuple(details),
        )
        logger.info(
            "repair_dates_completed",
            extra={
                "user_id": str(user_id),
                "recurrences_processed": summary.recurrences_processed,
                "occurrences_deleted": summary.occurrences_deleted,
                "occurrences_generated": summary.occurrences_generated,
            },
        )
        return summary

    # ------------------------------------------------------------------
    # Duplicate cleanup
    # ------------------------------------------------------------------

    def cleanup_duplicates(self, user_id: UUID) -> CleanupSummary:
        """Remove duplicate templates, then duplicate occurrences.

        Occurrences of a removed template are re-linked to the kept one
        before the occurrence pass, so a relinked copy of an existing date is
        collapsed in the same run.
        """
        recurrences = self.session.scalars(
            select(RecurrenceModel).where(RecurrenceModel.user_id == user_id)
        ).all()
        recurrences_deleted = 0
        relinked = 0

        with self.atomic_batch(user_id, "cleanup_recurrences"):
            for group in _duplicate_groups(recurrences, _recurrence_key):
                keeper, *extras = group
                for duplicate in extras:
                    relinked += self._relink(duplicate, keeper)
                    self.session.execute(
                        delete(RecurrenceVersionModel).where(
                            RecurrenceVersionModel.recurrence_id == duplicate.id
                        )
                    )
                    self.session.delete(duplicate)
                    recurrences_deleted += 1

        occurrences = self.session.scalars(
            select(OccurrenceModel).where(OccurrenceModel.user_id == user_id)
        ).all()
        occurrences_deleted = 0

        with self.atomic_batch(user_id, "cleanup_occurrences"):
            for group in _duplicate_groups(occurrences, _occurrence_key):
                for duplicate in group[1:]:
                    if _protected(duplicate):
                        continue
                    self.session.delete(duplicate)
                    occurrences_deleted += 1

        summary = CleanupSummary(
            occurrences_analyzed=len(occurrences),
            occurrences_deleted=occurrences_deleted,
            recurrences_analyzed=len(recurrences),
            recurrences_deleted=recurrences_deleted,
            occurrences_relinked=relinked,
        )
        logger.info(
            "cleanup_duplicates_completed",
            extra={
                "user_id": str(user_id),
                "occurrences_analyzed": summary.occurrences_analyzed,
                "occurrences_deleted": occurrences_deleted,
                "recurrences_analyzed": summary.recurrences_analyzed,
                "recurrences_deleted": recurrences_deleted,
                "occurrences_relinked": relinked,
            },
        )
        return summary

    def _relink(self, duplicate: RecurrenceModel, keeper: RecurrenceModel) -> int:
        linked = self.session.scalars(
            select(OccurrenceModel).where(
                OccurrenceModel.user_id == duplicate.user_id,
                OccurrenceModel.recurrence_id == duplicate.id,
            )
        ).all()
        for occurrence in linked:
            occurrence.recurrence_id = keeper.id
            occurrence.recurrence_version_id = keeper.current_version_id
        return len(linked)

    # ------------------------------------------------------------------
    # Legacy migration
    # ------------------------------------------------------------------

    def migrate_legacy_recurrences(
        self, user_id: UUID, actor_id: UUID | None = None
    ) -> MigrationSummary:
        """Turn labelled-but-unlinked occurrences into templates."""
        actor = actor_id or user_id
        legacy = self._occurrences.legacy_recurring(user_id)
        created: list[UUID] = []
        generated = 0
        errors: list[GenerationFailure] = []

        for source in legacy:
            try:
                frequency = coerce_frequency(source.recurrence_label)
                day_of_month, day_of_week = effective_anchors(
                    frequency, source.due_date, None, None
                )
                creation = self._lifecycle.create_recurrence(
                    RecurrenceDraft(
                        user_id=user_id,
                        company_id=source.company_id,
                        type=source.type,
                        name=source.description,
                        base_amount=source.amount,
                        frequency=frequency,
                        start_date=source.due_date,
                        category=source.category,
                        counterparty_id=source.counterparty_id,
                        counterparty_name=source.counterparty_name,
                        account_id=source.account_id,
                        certainty=source.certainty,
                        notes=source.notes,
                        day_of_month=day_of_month,
                        day_of_week=day_of_week,
                    ),
                    actor_id=actor,
                    materialize=False,
                )
            except RecurrenceKernelError as exc:
                logger.warning(
                    "legacy_migration_failed",
                    extra={
                        "occurrence_id": str(source.id),
                        "error_code": exc.code,
                        "error_message": str(exc),
                    },
                )
                errors.append(
                    GenerationFailure(
                        recurrence_id=source.id,
                        error_code=exc.code,
                        error_message=str(exc),
                    )
                )
                continue

            template = creation.recurrence
            with LogContext.bind(user_id=user_id, recurrence_id=template.id):
                model = self._lock_recurrence(template.id, user_id)
                with self.atomic_batch(template.id, "migrate_legacy"):
                    occurrence = self.session.get(OccurrenceModel, source.id)
                    occurrence.recurrence_id = template.id
                    occurrence.is_recurrence_instance = True
                    occurrence.instance_key = instance_key(source.due_date)
                    occurrence.recurrence_version_id = template.current_version_id
                    occurrence.updated_by_id = actor
                    model.last_generated_date = source.due_date
                    model.updated_by_id = actor

                generation = self._materializer.materialize(model.to_dto(), actor_id=actor)
                created.append(template.id)
                generated += generation.generated_count
                logger.info(
                    "legacy_recurrence_migrated",
                    extra={
                        "occurrence_id": str(source.id),
                        "generated_count": generation.generated_count,
                    },
                )

        summary = MigrationSummary(
            occurrences_examined=len(legacy),
            recurrences_created=tuple(created),
            occurrences_generated=generated,
            errors=tuple(errors),
        )
        logger.info(
            "legacy_migration_completed",
            extra={
                "user_id": str(user_id),
                "occurrences_examined": summary.occurrences_examined,
                "migrated_count": summary.migrated_count,
                "occurrences_generated": generated,
                "errors": len(errors),
            },
        )
        return summary


def _recurrence_key(model: RecurrenceModel) -> str:
    return "|".join(
        (str(model.company_id), model.name.strip().lower(), model.type, model.frequency)
    )


def _occurrence_key(model: OccurrenceModel) -> str:
    return "|".join(
        (
            str(model.company_id),
            model.type,
            str(model.amount.normalize()),
            model.description.strip().lower(),
            day_key(model.due_date),
        )
    )


def _protected(occurrence: OccurrenceModel) -> bool:
    return (
        occurrence.status != OccurrenceStatus.PENDING.value
        or occurrence.overridden_from_recurrence
    )


def _duplicate_groups(
    rows: Iterable[_Row], key: Callable[[_Row], str]
) -> list[list[_Row]]:
    """Groups of two or more rows sharing ``key``, oldest first."""
    groups: dict[str, list[_Row]] = defaultdict(list)
    for row in rows:
        groups[key(row)].append(row)
    return [
        sorted(group, key=lambda r: (r.created_at, str(r.id)))
        for group in groups.values()
        if len(group) > 1
    ]
