"""
RecurrenceService -- lifecycle of recurrence templates.

Contract:
    ``create_recurrence()`` validates a draft, stores the template with its
    first amount version and, when ACTIVE, materializes it immediately.
    ``delete_recurrence()`` removes a template without ever deleting settled
    history: linked occurrences are soft-unlinked unless the caller asks for
    (pending) occurrences to be deleted.

Invariants enforced:
    - Drafts are validated (frequency, anchors, horizon, amount) before any
      write.
    - Every template has version 1 effective from its start date.
    - Settled occurrences outlive their template as standalone entries.
"""

from __future__ import annotations

from uuid import UUID, uuid4

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from recurrence_config import EngineSettings
from recurrence_kernel.domain.clock import Clock
from recurrence_kernel.domain.schedule import (
    effective_anchors,
    first_occurrence_date,
    validate_horizon,
    validate_schedule,
)
from recurrence_kernel.domain.types import (
    CreationResult,
    DeletionResult,
    OccurrenceStatus,
    OccurrenceType,
    RecurrenceDraft,
    RecurrenceStatus,
    RecurrenceTemplate,
)
from recurrence_kernel.exceptions import RecurrenceNotFoundError
from recurrence_kernel.logging_config import LogContext, get_logger
from recurrence_kernel.models.occurrence import OccurrenceModel
from recurrence_kernel.models.recurrence import RecurrenceModel, RecurrenceVersionModel
from recurrence_kernel.selectors.recurrence_selector import RecurrenceSelector
from recurrence_kernel.services.base import BaseService
from recurrence_kernel.services.materialization_service import MaterializationService
from recurrence_kernel.services.version_service import VersionService, validate_amount

logger = get_logger("services.recurrence")


class RecurrenceService(BaseService[RecurrenceModel]):
    """Create, read, list and delete recurrence templates."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
        materializer: MaterializationService | None = None,
    ):
        super().__init__(session, clock, settings)
        self._recurrences = RecurrenceSelector(session)
        self._versions = VersionService(session, self.clock, self.settings)
        self._materializer = materializer or MaterializationService(
            session, self.clock, self.settings
        )

    def create_recurrence(
        self,
        draft: RecurrenceDraft,
        actor_id: UUID | None = None,
        materialize: bool = True,
    ) -> CreationResult:
        """Persist a new template, open version 1 and materialize it.

        With ``materialize=False`` the template is stored without generating
        occurrences, leaving the caller to link existing entries first.

        Raises:
            ConfigurationError: Invalid frequency, anchor, horizon or amount.
        """
        generation = self.settings.generation
        frequency = validate_schedule(
            draft.frequency, draft.day_of_month, draft.day_of_week
        )
        horizon = validate_horizon(
            draft.horizon_months
            if draft.horizon_months is not None
            else generation.default_horizon_months,
            generation.max_horizon_months,
        )
        amount = validate_amount(draft.base_amount)
        status = RecurrenceStatus(draft.status)
        actor = actor_id or draft.user_id

        day_of_month, day_of_week = effective_anchors(
            frequency, draft.start_date, draft.day_of_month, draft.day_of_week
        )
        model = RecurrenceModel(
            id=uuid4(),
            user_id=draft.user_id,
            company_id=draft.company_id,
            account_id=draft.account_id,
            type=OccurrenceType(draft.type).value,
            name=draft.name,
            base_amount=amount,
            category=draft.category,
            counterparty_id=draft.counterparty_id,
            counterparty_name=draft.counterparty_name,
            certainty=draft.certainty.value,
            notes=draft.notes,
            frequency=frequency.value,
            day_of_month=draft.day_of_month,
            day_of_week=draft.day_of_week,
            start_date=draft.start_date,
            end_date=draft.end_date,
            horizon_months=horizon,
            next_occurrence_date=first_occurrence_date(
                draft.start_date, frequency, day_of_month, day_of_week
            ),
            status=status.value,
            created_by_id=actor,
        )

        with LogContext.bind(
            user_id=draft.user_id, company_id=draft.company_id, recurrence_id=model.id
        ):
            with self.atomic_batch(model.id, "create"):
                self.session.add(model)
                version = self._versions.open_initial_version(model, actor)

            logger.info(
                "recurrence_created",
                extra={
                    "frequency": frequency,
                    "start_date": draft.start_date,
                    "base_amount": amount,
                    "status": status,
                },
            )

            generation_result = None
            if materialize and status == RecurrenceStatus.ACTIVE:
                generation_result = self._materializer.materialize(
                    model.to_dto(), actor_id=actor
                )

            return CreationResult(
                recurrence=model.to_dto(),
                version=version.to_dto(),
                generation=generation_result,
            )

    def get_recurrence(self, recurrence_id: UUID, user_id: UUID) -> RecurrenceTemplate:
        template = self._recurrences.get(recurrence_id, user_id)
        if template is None:
            raise RecurrenceNotFoundError(str(recurrence_id))
        return template

    def list_recurrences(
        self,
        user_id: UUID,
        company_id: UUID | None = None,
        status: RecurrenceStatus | None = None,
        type: OccurrenceType | None = None,
    ) -> list[RecurrenceTemplate]:
        return self._recurrences.list_recurrences(
            user_id, company_id=company_id, status=status, type=type
        )

    def delete_recurrence(
        self,
        recurrence_id: UUID,
        user_id: UUID,
        delete_occurrences: bool = False,
        pending_only: bool = True,
    ) -> DeletionResult:
        """Delete a template and deal with its linked occurrences.

        By default every linked occurrence is unlinked and kept.  With
        ``delete_occurrences`` the PENDING ones are deleted; with
        ``pending_only=False`` CANCELLED ones go as well.  SETTLED occurrences
        are never deleted, only unlinked.
        """
        with LogContext.bind(user_id=user_id, recurrence_id=recurrence_id):
            model = self._lock_recurrence(recurrence_id, user_id)

            linked = self.session.scalars(
                select(OccurrenceModel).where(
                    OccurrenceModel.user_id == user_id,
                    OccurrenceModel.recurrence_id == recurrence_id,
                )
            ).all()

            deleted = 0
            unlinked = 0
            with self.atomic_batch(recurrence_id, "delete_recurrence"):
                for occurrence in linked:
                    if delete_occurrences and _deletable(occurrence, pending_only):
                        self.session.delete(occurrence)
                        deleted += 1
                    else:
                        occurrence.recurrence_id = None
                        occurrence.is_recurrence_instance = False
                        unlinked += 1

                versions = self.session.execute(
                    delete(RecurrenceVersionModel).where(
                        RecurrenceVersionModel.recurrence_id == recurrence_id,
                        RecurrenceVersionModel.user_id == user_id,
                    )
                ).rowcount or 0
                self.session.delete(model)

            logger.info(
                "recurrence_deleted",
                extra={
                    "deleted_occurrences": deleted,
                    "unlinked_occurrences": unlinked,
                    "deleted_versions": versions,
                },
            )
            return DeletionResult(
                recurrence_id=recurrence_id,
                deleted_occurrences=deleted,
                unlinked_occurrences=unlinked,
                deleted_versions=versions,
            )


def _deletable(occurrence: OccurrenceModel, pending_only: bool) -> bool:
    if occurrence.status == OccurrenceStatus.SETTLED.value:
        return False
    if occurrence.overridden_from_recurrence:
        return False
    return not pending_only or occurrence.status == OccurrenceStatus.PENDING.value
