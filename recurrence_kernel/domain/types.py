"""
recurrence_kernel.domain.types -- Pure enums and frozen dataclasses.

ZERO I/O.  Services hand these out instead of ORM instances so callers never
hold a live, session-bound row.

Invariants enforced:
    - All DTOs are frozen dataclasses; collections are tuples.
    - Amounts are Decimal, dates are timezone-naive ``datetime.date``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from recurrence_kernel.exceptions import DataIntegrityWarning

# Actor recorded on rows written by unattended callers (CLI, maintenance).
SYSTEM_ACTOR_ID = UUID(int=0)


# =============================================================================
# Enums
# =============================================================================


class OccurrenceType(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class Frequency(str, Enum):
    """Cadence of a recurrence.  NONE marks a standalone occurrence."""

    NONE = "NONE"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    YEARLY = "YEARLY"


class RecurrenceStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    ENDED = "ENDED"


class OccurrenceStatus(str, Enum):
    PENDING = "PENDING"  # Unsettled; the only status the engine mutates
    SETTLED = "SETTLED"  # Paid/collected; immutable to the engine
    CANCELLED = "CANCELLED"


class Certainty(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


# =============================================================================
# Entity snapshots
# =============================================================================


@dataclass(frozen=True)
class RecurrenceTemplate:
    """Immutable snapshot of a recurrence template.

    ``last_generated_date`` / ``next_occurrence_date`` are the generation
    bookmarks.  They only move when a materialization batch succeeds.
    """

    id: UUID
    user_id: UUID
    company_id: UUID
    type: OccurrenceType
    name: str
    base_amount: Decimal
    frequency: Frequency
    start_date: date
    status: RecurrenceStatus = RecurrenceStatus.ACTIVE
    category: str = ""
    counterparty_id: UUID | None = None
    counterparty_name: str = ""
    account_id: UUID | None = None
    certainty: Certainty = Certainty.HIGH
    notes: str = ""
    day_of_month: int | None = None
    day_of_week: int | None = None  # 0 = Sunday ... 6 = Saturday
    end_date: date | None = None
    horizon_months: int = 6
    last_generated_date: date | None = None
    next_occurrence_date: date | None = None
    current_version_id: UUID | None = None


@dataclass(frozen=True)
class RecurrenceVersion:
    """One slice of a recurrence's amount history.

    ``effective_to is None`` marks the active version.
    """

    id: UUID
    recurrence_id: UUID
    amount: Decimal
    effective_from: date
    version_number: int
    is_active: bool
    effective_to: date | None = None
    change_reason: str | None = None
    created_by_id: UUID | None = None


@dataclass(frozen=True)
class Occurrence:
    """A materialized, individually payable ledger entry."""

    id: UUID
    user_id: UUID
    company_id: UUID
    type: OccurrenceType
    amount: Decimal
    status: OccurrenceStatus
    due_date: date
    description: str
    category: str = ""
    counterparty_id: UUID | None = None
    counterparty_name: str = ""
    account_id: UUID | None = None
    certainty: Certainty = Certainty.HIGH
    notes: str = ""
    recurrence_label: Frequency = Frequency.NONE
    recurrence_id: UUID | None = None
    is_recurrence_instance: bool = False
    instance_key: str | None = None
    overridden_from_recurrence: bool = False
    recurrence_version_id: UUID | None = None
    settled_date: date | None = None
    cascade_reason: str | None = None
    cascade_date: date | None = None


# =============================================================================
# Inputs
# =============================================================================


@dataclass(frozen=True)
class RecurrenceDraft:
    """Everything needed to create a recurrence template."""

    user_id: UUID
    company_id: UUID
    type: OccurrenceType
    name: str
    base_amount: Decimal
    frequency: Frequency
    start_date: date
    category: str = ""
    counterparty_id: UUID | None = None
    counterparty_name: str = ""
    account_id: UUID | None = None
    certainty: Certainty = Certainty.HIGH
    notes: str = ""
    day_of_month: int | None = None
    day_of_week: int | None = None
    end_date: date | None = None
    horizon_months: int | None = None  # None -> configured default
    status: RecurrenceStatus = RecurrenceStatus.ACTIVE


class _Unset:
    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass(frozen=True)
class RecurrenceChanges:
    """Partial update of a recurrence.

    Fields left as ``UNSET`` are not touched.  Passing ``None`` explicitly
    clears a nullable field (e.g. ``end_date=None`` makes it open-ended).
    """

    name: Any = UNSET
    base_amount: Any = UNSET
    category: Any = UNSET
    counterparty_id: Any = UNSET
    counterparty_name: Any = UNSET
    account_id: Any = UNSET
    certainty: Any = UNSET
    notes: Any = UNSET
    frequency: Any = UNSET
    day_of_month: Any = UNSET
    day_of_week: Any = UNSET
    start_date: Any = UNSET
    end_date: Any = UNSET
    horizon_months: Any = UNSET
    status: Any = UNSET

    def provided(self) -> dict[str, Any]:
        """Return only the fields the caller actually set."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not UNSET
        }


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class GenerationResult:
    """Outcome of one materialization run.

    Counts are always populated, including for no-op runs, so a caller can
    tell "nothing to do" apart from a failure.
    """

    recurrence_id: UUID
    generated_count: int
    skipped_count: int
    occurrence_ids: tuple[UUID, ...] = ()
    created_dates: tuple[date, ...] = ()
    last_generated_date: date | None = None
    next_occurrence_date: date | None = None
    warnings: tuple[DataIntegrityWarning, ...] = ()


@dataclass(frozen=True)
class GenerationFailure:
    recurrence_id: UUID
    error_code: str
    error_message: str


@dataclass(frozen=True)
class GenerationSummary:
    """Outcome of generating every active recurrence of a user."""

    results: tuple[GenerationResult, ...] = ()
    failures: tuple[GenerationFailure, ...] = ()

    @property
    def total_generated(self) -> int:
        return sum(r.generated_count for r in self.results)

    @property
    def total_skipped(self) -> int:
        return sum(r.skipped_count for r in self.results)

    @property
    def recurrences_processed(self) -> int:
        """Templates that materialized; failures are counted separately."""
        return len(self.results)


@dataclass(frozen=True)
class VersionResult:
    version: RecurrenceVersion
    updated_occurrence_count: int
    closed_version: RecurrenceVersion | None = None


@dataclass(frozen=True)
class RegenerationResult:
    recurrence: RecurrenceTemplate
    deleted_count: int
    generated_count: int
    regenerated: bool
    changed_fields: tuple[str, ...] = ()
    generation: GenerationResult | None = None
    version: RecurrenceVersion | None = None


@dataclass(frozen=True)
class CascadeResult:
    source_occurrence_id: UUID
    updated_count: int
    updated_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True)
class CreationResult:
    recurrence: RecurrenceTemplate
    version: RecurrenceVersion
    generation: GenerationResult | None = None


@dataclass(frozen=True)
class DeletionResult:
    recurrence_id: UUID
    deleted_occurrences: int
    unlinked_occurrences: int
    deleted_versions: int


@dataclass(frozen=True)
class RepairDetail:
    recurrence_id: UUID
    name: str
    deleted: int
    generated: int


@dataclass(frozen=True)
class RepairSummary:
    recurrences_processed: int = 0
    occurrences_deleted: int = 0
    occurrences_generated: int = 0
    details: tuple[RepairDetail, ...] = ()


@dataclass(frozen=True)
class CleanupSummary:
    occurrences_analyzed: int = 0
    occurrences_deleted: int = 0
    recurrences_analyzed: int = 0
    recurrences_deleted: int = 0
    occurrences_relinked: int = 0


@dataclass(frozen=True)
class MigrationSummary:
    occurrences_examined: int = 0
    recurrences_created: tuple[UUID, ...] = ()
    occurrences_generated: int = 0
    errors: tuple[GenerationFailure, ...] = field(default_factory=tuple)

    @property
    def migrated_count(self) -> int:
        return len(self.recurrences_created)
