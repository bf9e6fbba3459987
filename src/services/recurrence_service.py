"""
Recurring appointment series.

A series is expanded from a seed appointment and a set of weekdays (0=Sunday
... 6=Saturday) up to an inclusive end date. Every occurrence is booked in
its own transaction through ``AppointmentService.create_appointment``: a
conflict on one occurrence is recorded and the rest are still attempted, so
the result may be a partial series.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from auth.context import CallerContext
from core.config import RECURRENCE_MAX_OCCURRENCES, RECURRENCE_TIME_BUDGET_SECONDS
from core.constants import STATUS_PENDING
from core.errors import ConflictError, ValidationError
from models import Appointment
from services.appointment_service import AppointmentService
from utils.datetime_utils import format_appointment_time, weekday_index

logger = logging.getLogger(__name__)


def expand_occurrences(seed_start: datetime, weekdays: Iterable[int], until_date: date) -> List[datetime]:
    """
    Expand a weekly rule into occurrence start times.

    Every date from the seed's date through ``until_date`` whose weekday is
    selected is projected onto the seed's time of day. Occurrences earlier
    than the seed are dropped and the seed itself is always included, first
    if its weekday was not selected.

    Example: seed Monday 2025-01-06 10:00, weekdays {2, 4}, until 2025-01-16
    gives 01-06 (seed), 01-07, 01-09, 01-14 and 01-16, all at 10:00.

    Raises:
        ValidationError: If no weekday is given, a weekday is outside 0-6,
            or ``until_date`` is before the seed date
    """
    selected = set(weekdays)
    if not selected:
        raise ValidationError("Select at least one weekday")
    invalid = sorted(d for d in selected if not isinstance(d, int) or not 0 <= d <= 6)
    if invalid:
        raise ValidationError(f"Weekdays must be between 0 (Sunday) and 6 (Saturday): {invalid}")
    if until_date < seed_start.date():
        raise ValidationError("The series end date must not be before the first appointment")

    occurrences: List[datetime] = []
    day = seed_start.date()
    while day <= until_date:
        if weekday_index(day) in selected:
            candidate = datetime.combine(day, seed_start.timetz())
            if candidate >= seed_start:
                occurrences.append(candidate)
        day += timedelta(days=1)

    if seed_start not in occurrences:
        occurrences.insert(0, seed_start)
    return occurrences


@dataclass
class RecurringSeriesResult:
    """Outcome of booking a recurring series."""

    recurrence_group_id: uuid.UUID
    created: List[Appointment] = field(default_factory=list)
    failed: List[datetime] = field(default_factory=list)
    not_attempted: List[datetime] = field(default_factory=list)

    @property
    def first_failure(self) -> Optional[datetime]:
        return self.failed[0] if self.failed else None

    @property
    def stopped_early(self) -> bool:
        return bool(self.not_attempted)

    @property
    def is_partial(self) -> bool:
        return bool(self.failed or self.not_attempted)

    @property
    def message(self) -> str:
        """Operator-facing summary of the outcome."""
        parts = [f"Created {len(self.created)} appointment(s)."]
        if self.failed:
            parts.append(
                f"{len(self.failed)} occurrence(s) conflicted with existing bookings, "
                f"first at {format_appointment_time(self.first_failure)}."
            )
        if self.not_attempted:
            parts.append(
                f"{len(self.not_attempted)} occurrence(s) were not attempted, "
                f"starting {format_appointment_time(self.not_attempted[0])}."
            )
        return " ".join(parts)


class RecurrenceService:
    """Service class for booking recurring series."""

    @staticmethod
    def create_recurring_series(
        db: Session,
        caller: CallerContext,
        child_id: int,
        specialist_id: int,
        service_id: int,
        start_time: datetime,
        weekdays: Iterable[int],
        until_date: date,
        end_time: Optional[datetime] = None,
        status: str = STATUS_PENDING,
        notes: Optional[str] = None,
        max_occurrences: Optional[int] = None,
        time_budget_seconds: Optional[float] = None
    ) -> RecurringSeriesResult:
        """
        Book every occurrence of a weekly series independently.

        The seed is validated up front, so authorization and input errors fail
        the whole request before anything is written. After that each
        occurrence is its own transaction: a ConflictError is recorded in
        ``failed`` and the loop continues, any other error propagates.
        Attempts stop once ``max_occurrences`` have been tried or the time
        budget is spent; the remaining start times are returned in
        ``not_attempted``.

        Args:
            db: Database session
            caller: Caller making the booking
            child_id, specialist_id, service_id: Booking references
            start_time: Seed start time
            weekdays: Selected weekdays, 0=Sunday ... 6=Saturday
            until_date: Last day of the series (inclusive)
            end_time: Seed end time, or None for the service duration
            status: Initial status of every occurrence
            notes: Notes copied to every occurrence
            max_occurrences: Attempt limit (defaults to RECURRENCE_MAX_OCCURRENCES)
            time_budget_seconds: Wall-clock limit (defaults to RECURRENCE_TIME_BUDGET_SECONDS)

        Returns:
            RecurringSeriesResult with created appointments and failed start times
        """
        if max_occurrences is None:
            max_occurrences = RECURRENCE_MAX_OCCURRENCES
        if time_budget_seconds is None:
            time_budget_seconds = RECURRENCE_TIME_BUDGET_SECONDS
        if max_occurrences < 1:
            raise ValidationError("max_occurrences must be at least 1")

        start_time, end_time = AppointmentService.validate_booking(
            db, caller, child_id, specialist_id, service_id, start_time, end_time, status, notes
        )
        duration = end_time - start_time
        occurrences = expand_occurrences(start_time, weekdays, until_date)

        result = RecurringSeriesResult(recurrence_group_id=uuid.uuid4())
        deadline = time.monotonic() + time_budget_seconds

        for index, occurrence in enumerate(occurrences):
            if index >= max_occurrences or (index > 0 and time.monotonic() >= deadline):
                result.not_attempted = occurrences[index:]
                logger.warning(
                    f"Recurring series {result.recurrence_group_id} stopped after {index} attempt(s), "
                    f"{len(result.not_attempted)} not attempted"
                )
                break
            try:
                appointment = AppointmentService.create_appointment(
                    db,
                    caller,
                    child_id=child_id,
                    specialist_id=specialist_id,
                    service_id=service_id,
                    start_time=occurrence,
                    end_time=occurrence + duration,
                    status=status,
                    notes=notes,
                    is_recurring=True,
                    recurrence_group_id=result.recurrence_group_id
                )
            except ConflictError as e:
                logger.info(f"Recurring occurrence at {occurrence} skipped: {e.message}")
                result.failed.append(occurrence)
                continue
            result.created.append(appointment)

        logger.info(
            f"Recurring series {result.recurrence_group_id} for child {child_id}: "
            f"{len(result.created)} created, {len(result.failed)} failed"
        )
        return result
