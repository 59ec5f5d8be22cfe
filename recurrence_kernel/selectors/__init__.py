"""Read-only selectors."""

from recurrence_kernel.selectors.occurrence_selector import OccurrenceSelector
from recurrence_kernel.selectors.recurrence_selector import RecurrenceSelector

__all__ = ["RecurrenceSelector", "OccurrenceSelector"]
