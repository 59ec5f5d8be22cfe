"""
ORM models for recurrence templates and their amount-version history.

Contract:
    RecurrenceModel persists a recurrence template plus its generation
    bookmarks.  RecurrenceVersionModel persists the append-only amount
    history.  Both expose ``to_dto()``.

Architecture: recurrence_kernel/models.  Imports from recurrence_kernel.db only
    (domain types are imported lazily inside ``to_dto``).

Invariants enforced:
    - ``row_version`` is the mapper's version counter: an UPDATE issued from a
      stale snapshot fails with StaleDataError (surfaced by services as
      OptimisticLockError).
    - ``(recurrence_id, version_number)`` is unique.
    - Enum-valued columns are stored as their string value.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from recurrence_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from recurrence_kernel.domain.types import RecurrenceTemplate, RecurrenceVersion


class RecurrenceModel(TrackedBase):
    """Persistent recurrence template."""

    __tablename__ = "recurrences"

    __table_args__ = (
        Index("ix_recurrences_user_status", "user_id", "status"),
        Index("ix_recurrences_company", "company_id"),
        CheckConstraint("base_amount > 0", name="ck_recurrences_amount_positive"),
        CheckConstraint(
            "day_of_month IS NULL OR (day_of_month BETWEEN 1 AND 31)",
            name="ck_recurrences_day_of_month",
        ),
        CheckConstraint(
            "day_of_week IS NULL OR (day_of_week BETWEEN 0 AND 6)",
            name="ck_recurrences_day_of_week",
        ),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    account_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    type: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    base_amount: Mapped[Decimal] = mapped_column(nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    counterparty_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    counterparty_name: Mapped[str] = mapped_column(
        String(255), nullable=False, default=""
    )
    certainty: Mapped[str] = mapped_column(String(20), nullable=False, default="HIGH")
    notes: Mapped[str] = mapped_column(String(4000), nullable=False, default="")

    # Schedule
    frequency: Mapped[str] = mapped_column(String(20), nullable=False)
    day_of_month: Mapped[int | None] = mapped_column(Integer, nullable=True)
    day_of_week: Mapped[int | None] = mapped_column(Integer, nullable=True)
    start_date: Mapped[date] = mapped_column(nullable=False)
    end_date: Mapped[date | None] = mapped_column(nullable=True)
    horizon_months: Mapped[int] = mapped_column(Integer, nullable=False, default=6)

    # Generation bookmarks
    last_generated_date: Mapped[date | None] = mapped_column(nullable=True)
    next_occurrence_date: Mapped[date | None] = mapped_column(nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="ACTIVE")
    current_version_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), nullable=True
    )

    row_version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": row_version}

    def to_dto(self) -> RecurrenceTemplate:
        from recurrence_kernel.domain.types import (
            Certainty,
            Frequency,
            OccurrenceType,
            RecurrenceStatus,
            RecurrenceTemplate,
        )

        return RecurrenceTemplate(
            id=self.id,
            user_id=self.user_id,
            company_id=self.company_id,
            type=OccurrenceType(self.type),
            name=self.name,
            base_amount=Decimal(self.base_amount),
            frequency=Frequency(self.frequency),
            start_date=self.start_date,
            status=RecurrenceStatus(self.status),
            category=self.category,
            counterparty_id=self.counterparty_id,
            counterparty_name=self.counterparty_name,
            account_id=self.account_id,
            certainty=Certainty(self.certainty),
            notes=self.notes,
            day_of_month=self.day_of_month,
            day_of_week=self.day_of_week,
            end_date=self.end_date,
            horizon_months=self.horizon_months,
            last_generated_date=self.last_generated_date,
            next_occurrence_date=self.next_occurrence_date,
            current_version_id=self.current_version_id,
        )

    def __repr__(self) -> str:
        return f"<Recurrence {self.name} {self.frequency} ({self.status})>"


class RecurrenceVersionModel(TrackedBase):
    """One row of a recurrence's amount history."""

    __tablename__ = "recurrence_versions"

    __table_args__ = (
        UniqueConstraint(
            "recurrence_id", "version_number", name="uq_recurrence_version_number"
        ),
        Index("ix_recurrence_versions_recurrence", "recurrence_id"),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    recurrence_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("recurrences.id", ondelete="CASCADE"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    effective_from: Mapped[date] = mapped_column(nullable=False)
    effective_to: Mapped[date | None] = mapped_column(nullable=True)
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    change_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def to_dto(self) -> RecurrenceVersion:
        from recurrence_kernel.domain.types import RecurrenceVersion

        return RecurrenceVersion(
            id=self.id,
            recurrence_id=self.recurrence_id,
            amount=Decimal(self.amount),
            effective_from=self.effective_from,
            version_number=self.version_number,
            is_active=self.is_active,
            effective_to=self.effective_to,
            change_reason=self.change_reason,
            created_by_id=self.created_by_id,
        )

    def __repr__(self) -> str:
        return f"<RecurrenceVersion v{self.version_number} {self.amount}>"
