"""
Typed Exception Hierarchy for the Recurrence Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the engine (API handlers, the regenerate CLI, batch jobs) must
decide whether to retry, report, or give up.  They do that by exception
TYPE and by the machine-readable ``code`` class attribute, never by parsing
messages:

    try:
        service.generate(recurrence_id, user_id)
    except ConfigurationError as e:      # fail fast, never retried
        return api_error(e.code, field=getattr(e, "field", None))
    except StorageError as e:            # safe to retry (idempotent dedup)
        schedule_retry(recurrence_id)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    RecurrenceKernelError (base)
    |
    +-- ConfigurationError
    |   +-- InvalidFrequencyError
    |   +-- InvalidAnchorError
    |   +-- InvalidHorizonError
    |   +-- InvalidAmountError
    |
    +-- NotFoundError
    |   +-- RecurrenceNotFoundError
    |   +-- OccurrenceNotFoundError
    |   +-- VersionNotFoundError
    |
    +-- VersionError
    |   +-- VersionOrderingError
    |   +-- VersionNotActiveError
    |
    +-- StorageError
    |   +-- BatchCommitError
    |
    +-- ConcurrencyError
        +-- OptimisticLockError

    DataIntegrityWarning (UserWarning) -- never raised, returned and logged.

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Configuration   | INVALID_FREQUENCY           | NONE or unknown frequency on a recurrence
                | INVALID_ANCHOR              | day_of_month not 1-31 / day_of_week not 0-6
                | INVALID_HORIZON             | horizon_months outside configured range
                | INVALID_AMOUNT              | amount not a positive finite Decimal
----------------|-----------------------------|-----------------------------------------
Not found       | RECURRENCE_NOT_FOUND        | Unknown id, or owned by another user
                | OCCURRENCE_NOT_FOUND        | Unknown id, or owned by another user
                | VERSION_NOT_FOUND           | Unknown id, or owned by another user
----------------|-----------------------------|-----------------------------------------
Version         | VERSION_ORDERING            | effective_from not after previous version
                | VERSION_NOT_ACTIVE          | Deleting a version that is not the latest
----------------|-----------------------------|-----------------------------------------
Storage         | BATCH_COMMIT_FAILED         | Atomic batch flush failed (rolled back)
----------------|-----------------------------|-----------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Template changed by a concurrent writer

===============================================================================
PROPAGATION POLICY
===============================================================================

- ConfigurationError and NotFoundError are raised before any write and are
  never retried automatically.
- StorageError and ConcurrencyError leave no partial occurrence set behind
  (the batch runs inside a SAVEPOINT) and do not advance the template
  bookmarks, so re-invoking the same operation is safe.
- Records owned by another user are reported as not found.
"""

from __future__ import annotations

from datetime import date


class RecurrenceKernelError(Exception):
    """
    Base exception for all recurrence kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "RECURRENCE_KERNEL_ERROR"


# Configuration exceptions


class ConfigurationError(RecurrenceKernelError):
    """Base exception for invalid recurrence configuration."""

    code: str = "CONFIGURATION_ERROR"


class InvalidFrequencyError(ConfigurationError):
    """Frequency is NONE or not a recognised recurring frequency."""

    code: str = "INVALID_FREQUENCY"

    def __init__(self, frequency: str):
        self.frequency = frequency
        super().__init__(
            f"Frequency '{frequency}' is not valid for a recurring operation"
        )


class InvalidAnchorError(ConfigurationError):
    """Anchor (day of month / day of week) is out of range."""

    code: str = "INVALID_ANCHOR"

    def __init__(self, field: str, value: object, allowed: str):
        self.field = field
        self.value = value
        self.allowed = allowed
        super().__init__(f"Invalid {field}={value!r}: expected {allowed}")


class InvalidHorizonError(ConfigurationError):
    """Generation horizon is outside the allowed range."""

    code: str = "INVALID_HORIZON"

    def __init__(self, horizon_months: object, maximum: int):
        self.horizon_months = horizon_months
        self.maximum = maximum
        super().__init__(
            f"Invalid horizon_months={horizon_months!r}: expected 1-{maximum}"
        )


class InvalidAmountError(ConfigurationError):
    """Amount is not a positive, finite decimal."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: object):
        self.amount = amount
        super().__init__(f"Invalid amount {amount!r}: must be a positive number")


# Not-found exceptions


class NotFoundError(RecurrenceKernelError):
    """Base exception for missing (or not owned) records."""

    code: str = "NOT_FOUND"


class RecurrenceNotFoundError(NotFoundError):
    """Recurrence with given ID was not found for this user."""

    code: str = "RECURRENCE_NOT_FOUND"

    def __init__(self, recurrence_id: str):
        self.recurrence_id = recurrence_id
        super().__init__(f"Recurrence not found: {recurrence_id}")


class OccurrenceNotFoundError(NotFoundError):
    """Occurrence with given ID was not found for this user."""

    code: str = "OCCURRENCE_NOT_FOUND"

    def __init__(self, occurrence_id: str):
        self.occurrence_id = occurrence_id
        super().__init__(f"Occurrence not found: {occurrence_id}")


class VersionNotFoundError(NotFoundError):
    """Recurrence version with given ID was not found for this user."""

    code: str = "VERSION_NOT_FOUND"

    def __init__(self, version_id: str):
        self.version_id = version_id
        super().__init__(f"Recurrence version not found: {version_id}")


# Version exceptions


class VersionError(RecurrenceKernelError):
    """Base exception for amount-version history errors."""

    code: str = "VERSION_ERROR"


class VersionOrderingError(VersionError):
    """New version does not start after the version it supersedes."""

    code: str = "VERSION_ORDERING"

    def __init__(
        self,
        recurrence_id: str,
        effective_from: date,
        previous_effective_from: date,
    ):
        self.recurrence_id = recurrence_id
        self.effective_from = effective_from
        self.previous_effective_from = previous_effective_from
        super().__init__(
            f"Version for recurrence {recurrence_id} must start after "
            f"{previous_effective_from.isoformat()}, got {effective_from.isoformat()}"
        )


class VersionNotActiveError(VersionError):
    """Only the active (latest) version may be deleted."""

    code: str = "VERSION_NOT_ACTIVE"

    def __init__(self, version_id: str):
        self.version_id = version_id
        super().__init__(
            f"Version {version_id} is not the active version and cannot be deleted"
        )


# Storage exceptions


class StorageError(RecurrenceKernelError):
    """Base exception for storage collaborator failures."""

    code: str = "STORAGE_ERROR"


class BatchCommitError(StorageError):
    """
    Atomic batch write failed and was rolled back.

    No occurrence from the batch is visible and the template bookmarks were
    not advanced, so the operation can be retried as-is.
    """

    code: str = "BATCH_COMMIT_FAILED"

    def __init__(self, recurrence_id: str, operation: str, reason: str):
        self.recurrence_id = recurrence_id
        self.operation = operation
        self.reason = reason
        super().__init__(
            f"Batch {operation} for recurrence {recurrence_id} failed: {reason}"
        )


# Concurrency exceptions


class ConcurrencyError(RecurrenceKernelError):
    """Another transaction got to the same template first."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """The template's ``row_version`` moved between load and flush.

    Nothing from the batch is kept; rerunning ``operation`` is safe.
    """

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, recurrence_id: str, operation: str):
        self.recurrence_id = recurrence_id
        self.operation = operation
        super().__init__(
            f"Recurrence {recurrence_id} changed underneath {operation}; retry it"
        )


# Non-fatal diagnostics


class DataIntegrityWarning(UserWarning):
    """
    Non-fatal ambiguity detected during deduplication.

    The engine proceeds (creating occurrences rather than blocking) and
    reports the warning in its result and in the structured log so an
    operator can review it.
    """

    code: str = "DATA_INTEGRITY_WARNING"

    def __init__(self, recurrence_id: str, reason: str):
        self.recurrence_id = recurrence_id
        self.reason = reason
        super().__init__(f"Recurrence {recurrence_id}: {reason}")
