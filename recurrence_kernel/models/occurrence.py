"""
ORM model for occurrences (materialized, individually payable ledger entries).

Contract:
    An occurrence is either standalone (``recurrence_id`` is None) or linked
    to the recurrence that generated it.  ``overridden_from_recurrence`` marks
    an entry the user diverged from its template; the engine never changes
    its amount and never deletes it.

Architecture: recurrence_kernel/models.  Imports from recurrence_kernel.db only.

Invariants enforced:
    - Only PENDING, non-overridden occurrences are touched by the engine.
    - ``recurrence_id`` is a plain column, not an enforced foreign key, so a
      template can be soft-unlinked from settled history.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from recurrence_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from recurrence_kernel.domain.types import Occurrence


class OccurrenceModel(TrackedBase):
    """Persistent occurrence."""

    __tablename__ = "occurrences"

    __table_args__ = (
        Index("ix_occurrences_recurrence", "user_id", "recurrence_id"),
        Index("ix_occurrences_due", "user_id", "company_id", "due_date"),
        Index("ix_occurrences_counterparty", "user_id", "counterparty_id"),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    account_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    due_date: Mapped[date] = mapped_column(nullable=False)
    settled_date: Mapped[date | None] = mapped_column(nullable=True)

    category: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    counterparty_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    counterparty_name: Mapped[str] = mapped_column(
        String(255), nullable=False, default=""
    )
    notes: Mapped[str] = mapped_column(String(4000), nullable=False, default="")
    certainty: Mapped[str] = mapped_column(String(20), nullable=False, default="HIGH")

    # Recurrence linkage
    recurrence_label: Mapped[str] = mapped_column(
        String(20), nullable=False, default="NONE"
    )
    recurrence_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    is_recurrence_instance: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    instance_key: Mapped[str | None] = mapped_column(String(7), nullable=True)
    overridden_from_recurrence: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    recurrence_version_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), nullable=True
    )

    # Last similarity cascade applied to this row
    cascade_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    cascade_date: Mapped[date | None] = mapped_column(nullable=True)

    @property
    def is_mutable_by_engine(self) -> bool:
        """PENDING and not user-overridden."""
        return self.status == "PENDING" and not self.overridden_from_recurrence

    def to_dto(self) -> Occurrence:
        from recurrence_kernel.domain.types import (
            Certainty,
            Frequency,
            Occurrence,
            OccurrenceStatus,
            OccurrenceType,
        )

        return Occurrence(
            id=self.id,
            user_id=self.user_id,
            company_id=self.company_id,
            type=OccurrenceType(self.type),
            amount=Decimal(self.amount),
            status=OccurrenceStatus(self.status),
            due_date=self.due_date,
            description=self.description,
            category=self.category,
            counterparty_id=self.counterparty_id,
            counterparty_name=self.counterparty_name,
            account_id=self.account_id,
            certainty=Certainty(self.certainty),
            notes=self.notes,
            recurrence_label=Frequency(self.recurrence_label),
            recurrence_id=self.recurrence_id,
            is_recurrence_instance=self.is_recurrence_instance,
            instance_key=self.instance_key,
            overridden_from_recurrence=self.overridden_from_recurrence,
            recurrence_version_id=self.recurrence_version_id,
            settled_date=self.settled_date,
            cascade_reason=self.cascade_reason,
            cascade_date=self.cascade_date,
        )

    def __repr__(self) -> str:
        return f"<Occurrence {self.description} {self.due_date} {self.status}>"
