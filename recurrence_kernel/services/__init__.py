"""Services for the recurrence kernel (write side)."""

from recurrence_kernel.services.maintenance_service import MaintenanceService
from recurrence_kernel.services.materialization_service import MaterializationService
from recurrence_kernel.services.recurrence_service import RecurrenceService
from recurrence_kernel.services.regeneration_service import RegenerationService
from recurrence_kernel.services.version_service import VersionService, validate_amount

__all__ = [
    "MaintenanceService",
    "MaterializationService",
    "RecurrenceService",
    "RegenerationService",
    "VersionService",
    "validate_amount",
]
