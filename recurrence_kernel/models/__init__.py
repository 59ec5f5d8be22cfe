"""ORM models for the recurrence kernel."""

from recurrence_kernel.models.occurrence import OccurrenceModel
from recurrence_kernel.models.recurrence import RecurrenceModel, RecurrenceVersionModel

__all__ = [
    "RecurrenceModel",
    "RecurrenceVersionModel",
    "OccurrenceModel",
]
