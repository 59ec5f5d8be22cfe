"""
MaterializationService -- turn recurrence templates into occurrences.

Contract:
    ``materialize()`` computes the occurrence window of a template, removes
    every date an existing occurrence already represents, and writes the rest
    as PENDING occurrences in one atomic batch together with the template's
    generation bookmarks.

Architecture position:
    Kernel > Services.  Uses the pure calendar in ``domain.schedule``, the
    dedup strategies in ``domain.fingerprint`` and ``OccurrenceSelector`` for
    the fingerprint queries.

Invariants enforced:
    - Idempotence: a second call with the same arguments creates nothing.
    - The window always starts at the template's original ``start_date``;
      deduplication, not the bookmark, prevents re-creation.
    - The horizon is anchored to ``as_of`` (today by default), so it rolls
      forward on every call.
    - Bookmarks (``last_generated_date``, ``next_occurrence_date``) are only
      written when the batch writes at least one occurrence, and in the same
      SAVEPOINT.  ``last_generated_date`` never moves backwards; a run that
      only backfills an older gap leaves it where it was.

Failure modes:
    - ConfigurationError before any write for a bad frequency/anchor/horizon.
    - RecurrenceNotFoundError for a missing or foreign template.
    - BatchCommitError / OptimisticLockError from the batch; safe to retry.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from recurrence_config import EngineSettings
from recurrence_kernel.domain.clock import Clock
from recurrence_kernel.domain.fingerprint import (
    FingerprintSet,
    LinkedFingerprint,
    SimilarityFingerprint,
    build_fingerprint,
)
from recurrence_kernel.domain.schedule import (
    effective_anchors,
    horizon_date,
    instance_key,
    next_occurrence_date,
    occurrence_window,
    validate_horizon,
    validate_schedule,
)
from recurrence_kernel.domain.types import (
    GenerationFailure,
    GenerationResult,
    GenerationSummary,
    OccurrenceStatus,
    RecurrenceStatus,
    RecurrenceTemplate,
)
from recurrence_kernel.exceptions import (
    DataIntegrityWarning,
    RecurrenceKernelError,
    RecurrenceNotFoundError,
)
from recurrence_kernel.logging_config import LogContext, get_logger
from recurrence_kernel.models.occurrence import OccurrenceModel
from recurrence_kernel.models.recurrence import RecurrenceVersionModel
from recurrence_kernel.selectors.occurrence_selector import OccurrenceSelector
from recurrence_kernel.selectors.recurrence_selector import RecurrenceSelector
from recurrence_kernel.services.base import BaseService

logger = get_logger("services.materialization")


class MaterializationService(BaseService[OccurrenceModel]):
    """Idempotent occurrence generation for recurrence templates."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
    ):
        super().__init__(session, clock, settings)
        self._occurrences = OccurrenceSelector(session)
        self._recurrences = RecurrenceSelector(session)
        self._linked = LinkedFingerprint()
        self._similar = SimilarityFingerprint()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate(
        self,
        recurrence_id: UUID,
        user_id: UUID,
        as_of: date | None = None,
        horizon_months: int | None = None,
        skip_existing: bool = True,
        actor_id: UUID | None = None,
    ) -> GenerationResult:
        """Materialize a stored template by id.

        Raises:
            RecurrenceNotFoundError: Missing, or owned by another user.
        """
        template = self._recurrences.get(recurrence_id, user_id)
        if template is None:
            raise RecurrenceNotFoundError(str(recurrence_id))
        return self.materialize(
            template,
            as_of=as_of,
            horizon_months=horizon_months,
            skip_existing=skip_existing,
            actor_id=actor_id,
        )

    def generate_all(
        self,
        user_id: UUID,
        company_id: UUID | None = None,
        as_of: date | None = None,
        horizon_months: int | None = None,
        skip_existing: bool = True,
        actor_id: UUID | None = None,
    ) -> GenerationSummary:
        """Materialize every ACTIVE template of a user (optionally one company).

        A failing template is recorded in ``failures`` and does not stop the
        others; its own writes were rolled back with its SAVEPOINT.
        """
        results: list[GenerationResult] = []
        failures: list[GenerationFailure] = []

        for template in self._recurrences.active(user_id, company_id=company_id):
            try:
                results.append(
                    self.materialize(
                        template,
                        as_of=as_of,
                        horizon_months=horizon_months,
                        skip_existing=skip_existing,
                        actor_id=actor_id,
                    )
                )
            except RecurrenceKernelError as exc:
                logger.warning(
                    "materialization_failed",
                    extra={
                        "recurrence_id": str(template.id),
                        "error_code": exc.code,
                        "error_message": str(exc),
                    },
                )
                failures.append(
                    GenerationFailure(
                        recurrence_id=template.id,
                        error_code=exc.code,
                        error_message=str(exc),
                    )
                )

        summary = GenerationSummary(results=tuple(results), failures=tuple(failures))
        logger.info(
            "generate_all_completed",
            extra={
                "user_id": str(user_id),
                "recurrences_processed": summary.recurrences_processed,
                "total_generated": summary.total_generated,
                "total_skipped": summary.total_skipped,
                "failures": len(failures),
            },
        )
        return summary

    def materialize(
        self,
        template: RecurrenceTemplate,
        as_of: date | None = None,
        horizon_months: int | None = None,
        skip_existing: bool = True,
        actor_id: UUID | None = None,
    ) -> GenerationResult:
        """Create the missing occurrences of ``template`` up to the horizon.

        ``template`` supplies the schedule and pricing; the stored row with
        the same id receives the bookmarks.  Templates that are not ACTIVE
        produce an empty result without writing.
        """
        generation = self.settings.generation
        frequency = validate_schedule(
            template.frequency, template.day_of_month, template.day_of_week
        )
        months = validate_horizon(
            horizon_months
            if horizon_months is not None
            else template.horizon_months or generation.default_horizon_months,
            generation.max_horizon_months,
        )

        if template.status != RecurrenceStatus.ACTIVE:
            logger.info(
                "materialization_skipped_inactive",
                extra={"recurrence_id": str(template.id), "status": template.status},
            )
            return GenerationResult(
                recurrence_id=template.id, generated_count=0, skipped_count=0
            )

        as_of = as_of or self.clock.today()
        horizon = horizon_date(as_of, months)
        day_of_month, day_of_week = effective_anchors(
            frequency, template.start_date, template.day_of_month, template.day_of_week
        )

        with LogContext.bind(
            user_id=template.user_id,
            company_id=template.company_id,
            recurrence_id=template.id,
        ):
            model = self._lock_recurrence(template.id, template.user_id)

            dates = occurrence_window(
                template.start_date,
                template.end_date,
                frequency,
                day_of_month,
                day_of_week,
                horizon,
                max_occurrences=generation.max_occurrences_per_window,
            )
            logger.info(
                "materialization_started",
                extra={
                    "as_of": as_of,
                    "horizon": horizon,
                    "window_size": len(dates),
                    "skip_existing": skip_existing,
                },
            )
            if not dates:
                return GenerationResult(
                    recurrence_id=template.id, generated_count=0, skipped_count=0
                )

            warnings: list[DataIntegrityWarning] = []
            if skip_existing:
                fingerprint = self._fingerprint(template)
                if template.last_generated_date is not None and not fingerprint.linked:
                    warning = DataIntegrityWarning(
                        str(template.id),
                        "bookmark is set but no linked occurrences were found",
                    )
                    warnings.append(warning)
                    logger.warning(
                        "dedup_link_missing",
                        extra={"last_generated_date": template.last_generated_date},
                    )
                pending = [d for d in dates if d not in fingerprint]
            else:
                pending = list(dates)

            actor = actor_id or template.user_id
            priced_from = self._version_start(template)
            created: list[OccurrenceModel] = []

            with self.atomic_batch(template.id, "materialize"):
                if skip_existing and self.settings.dedup.recheck_at_write:
                    taken = self._occurrences.linked_due_dates(
                        template.id, template.user_id, pending
                    )
                    if taken:
                        logger.info(
                            "dedup_recheck_removed",
                            extra={"dates": sorted(d.isoformat() for d in taken)},
                        )
                        pending = [d for d in pending if d not in taken]

                for due in pending:
                    occurrence = self._build_occurrence(template, due, actor)
                    if priced_from is None or due < priced_from:
                        occurrence.recurrence_version_id = None
                    self.session.add(occurrence)
                    created.append(occurrence)

                if created:
                    newest = max(o.due_date for o in created)
                    model.last_generated_date = max(
                        newest, model.last_generated_date or newest
                    )
                    model.next_occurrence_date = next_occurrence_date(
                        dates[-1], frequency, day_of_month, day_of_week
                    )
                    model.updated_by_id = actor

            skipped = len(dates) - len(created)
            created_dates = tuple(o.due_date for o in created)
            logger.info(
                "occurrences_created",
                extra={
                    "generated_count": len(created),
                    "skipped_count": skipped,
                    "first_date": created_dates[0] if created_dates else None,
                    "last_date": created_dates[-1] if created_dates else None,
                },
            )
            return GenerationResult(
                recurrence_id=template.id,
                generated_count=len(created),
                skipped_count=skipped,
                occurrence_ids=tuple(o.id for o in created),
                created_dates=created_dates,
                last_generated_date=model.last_generated_date if created else None,
                next_occurrence_date=model.next_occurrence_date,
                warnings=tuple(warnings),
            )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _version_start(self, template: RecurrenceTemplate) -> date | None:
        # Dates before the current version started were not priced by it.
        if template.current_version_id is None:
            return None
        version = self.session.get(RecurrenceVersionModel, template.current_version_id)
        return version.effective_from if version is not None else None

    def _fingerprint(self, template: RecurrenceTemplate) -> FingerprintSet:
        linked = self._occurrences.find(
            template.user_id, **self._linked.filters(template)
        )
        similar = None
        if self.settings.dedup.similarity_enabled:
            filters = self._similar.filters(template)
            if filters is not None:
                similar = self._occurrences.find(template.user_id, **filters)
        fingerprint = build_fingerprint(linked, similar)
        logger.debug("fingerprint_built", extra=fingerprint.counts())
        return fingerprint

    @staticmethod
    def _build_occurrence(
        template: RecurrenceTemplate, due: date, actor_id: UUID
    ) -> OccurrenceModel:
        return OccurrenceModel(
            id=uuid4(),
            user_id=template.user_id,
            company_id=template.company_id,
            account_id=template.account_id,
            type=template.type.value,
            amount=template.base_amount,
            status=OccurrenceStatus.PENDING.value,
            due_date=due,
            category=template.category,
            description=template.name,
            counterparty_id=template.counterparty_id,
            counterparty_name=template.counterparty_name,
            notes=template.notes,
            certainty=template.certainty.value,
            recurrence_label=template.frequency.value,
            recurrence_id=template.id,
            is_recurrence_instance=True,
            instance_key=instance_key(due),
            overridden_from_recurrence=False,
            recurrence_version_id=template.current_version_id,
            created_by_id=actor_id,
            updated_by_id=actor_id,
        )
