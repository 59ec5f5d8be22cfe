"""
Pure domain layer.

Calendar math, deduplication fingerprints, DTOs and the clock abstraction,
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from recurrence_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from recurrence_kernel.domain.fingerprint import (
    FingerprintSet,
    FingerprintStrategy,
    LinkedFingerprint,
    SimilarityFingerprint,
    build_fingerprint,
)
from recurrence_kernel.domain.schedule import (
    add_months,
    first_occurrence_date,
    next_occurrence_date,
    occurrence_window,
)
from recurrence_kernel.domain.types import (
    UNSET,
    Certainty,
    Frequency,
    Occurrence,
    OccurrenceStatus,
    OccurrenceType,
    RecurrenceChanges,
    RecurrenceDraft,
    RecurrenceStatus,
    RecurrenceTemplate,
    RecurrenceVersion,
)

__all__ = [
    # Clock
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # Calendar
    "add_months",
    "first_occurrence_date",
    "next_occurrence_date",
    "occurrence_window",
    # Deduplication
    "FingerprintSet",
    "FingerprintStrategy",
    "LinkedFingerprint",
    "SimilarityFingerprint",
    "build_fingerprint",
    # DTOs
    "UNSET",
    "Certainty",
    "Frequency",
    "Occurrence",
    "OccurrenceStatus",
    "OccurrenceType",
    "RecurrenceChanges",
    "RecurrenceDraft",
    "RecurrenceStatus",
    "RecurrenceTemplate",
    "RecurrenceVersion",
]
