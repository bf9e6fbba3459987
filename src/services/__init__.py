"""
Services package for the scheduling and ledger engine.

Each service class groups the operations on one part of the engine. Every
operation takes the database session and the caller explicitly.
"""

from .appointment_service import AppointmentService, build_reminder_text
from .status_lifecycle import apply_status_change, transition_status
from .recurrence_service import RecurrenceService, RecurringSeriesResult, expand_occurrences
from .ledger_service import LedgerService, BalanceSummary, IncomeRow
from .service_catalog_service import ServiceCatalogService
from .working_hours_service import WorkingHoursService, SuggestedSlot

__all__ = [
    "AppointmentService",
    "build_reminder_text",
    "apply_status_change",
    "transition_status",
    "RecurrenceService",
    "RecurringSeriesResult",
    "expand_occurrences",
    "LedgerService",
    "BalanceSummary",
    "IncomeRow",
    "ServiceCatalogService",
    "WorkingHoursService",
    "SuggestedSlot",
]
