"""
Appointment service: the appointment store.

Bookings are written straight to the database, which owns the no-overlap
rules for children and specialists (exclusion constraints on PostgreSQL,
triggers on SQLite). There is no overlap pre-check here; a rejected write is
rolled back and reported as a ConflictError naming the violated rule.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import List, Optional, Tuple, Union

from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from auth.context import CallerContext
from auth.permissions import (
    SqlChildAccessDirectory, can_view_appointment, readable_child_ids,
    require_appointment_write, require_elevated, require_write
)
from core.constants import (
    CHILD_OVERLAP_CONSTRAINT, SPECIALIST_OVERLAP_CONSTRAINT, INITIAL_APPOINTMENT_STATUSES,
    STATUS_CANCELED, STATUS_PENDING, MAX_NOTES_LENGTH, ROLE_PARENT
)
from core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from core.sentinels import UNSET, UnsetType
from models import Appointment, Child, Profile, Service
from services.status_lifecycle import apply_status_change
from utils.datetime_utils import ensure_utc, format_long_date

logger = logging.getLogger(__name__)


def build_reminder_text(child_name: str, service_name: str, start_time: datetime) -> str:
    """
    Build the reminder text an operator copies into a message to the family.

    Example: 'Reminder: Anna is booked for "Speech therapy" on 07 January 2025 at 10:00.'
    """
    return (
        f'Reminder: {child_name} is booked for "{service_name}" '
        f'on {format_long_date(start_time)} at {start_time.strftime("%H:%M")}.'
    )


class AppointmentService:
    """
    Service class for appointment operations.

    Every write takes the caller explicitly and checks capabilities before
    touching the database.
    """

    @staticmethod
    def validate_booking(
        db: Session,
        caller: CallerContext,
        child_id: int,
        specialist_id: int,
        service_id: int,
        start_time: datetime,
        end_time: Optional[datetime] = None,
        status: str = STATUS_PENDING,
        notes: Optional[str] = None
    ) -> Tuple[datetime, datetime]:
        """
        Validate a booking request without writing anything.

        Args:
            db: Database session
            caller: Caller making the booking
            child_id: Child to book
            specialist_id: Specialist running the session
            service_id: Service being provided
            start_time: Start of the appointment
            end_time: End of the appointment, or None to use the service duration
            status: Initial status ('pending' or 'confirmed')
            notes: Optional notes

        Returns:
            The resolved (start_time, end_time), in UTC

        Raises:
            ValidationError: If the time range, status or notes are invalid
            NotFoundError: If the child, specialist or service does not exist
            ForbiddenError: If the caller cannot write the child's schedule
        """
        start_time = ensure_utc(start_time)
        end_time = ensure_utc(end_time)
        if status not in INITIAL_APPOINTMENT_STATUSES:
            raise ValidationError(
                f"New appointments must be 'pending' or 'confirmed', not '{status}'",
                status=status
            )
        if notes is not None and len(notes) > MAX_NOTES_LENGTH:
            raise ValidationError(f"Notes must be at most {MAX_NOTES_LENGTH} characters")
        if end_time is not None and end_time <= start_time:
            raise ValidationError("Appointment end time must be after its start time")

        service = db.get(Service, service_id)
        if service is None:
            raise NotFoundError("Service not found", service_id=service_id)
        if end_time is None:
            end_time = start_time + timedelta(minutes=service.duration_min)

        if db.get(Child, child_id) is None:
            raise NotFoundError("Child not found", child_id=child_id)

        specialist = db.get(Profile, specialist_id)
        if specialist is None:
            raise NotFoundError("Specialist not found", specialist_id=specialist_id)
        if specialist.role == ROLE_PARENT:
            raise ValidationError(
                f"Profile {specialist_id} is not a specialist",
                specialist_id=specialist_id
            )

        require_write(db, caller, child_id)
        return start_time, end_time

    @staticmethod
    def create_appointment(
        db: Session,
        caller: CallerContext,
        child_id: int,
        specialist_id: int,
        service_id: int,
        start_time: datetime,
        end_time: Optional[datetime] = None,
        status: str = STATUS_PENDING,
        notes: Optional[str] = None,
        is_recurring: bool = False,
        recurrence_group_id: Optional[uuid.UUID] = None
    ) -> Appointment:
        """
        Book a single appointment.

        The overlap rules are checked by the database as part of the insert.

        Returns:
            The committed appointment

        Raises:
            ValidationError, NotFoundError, ForbiddenError: Before any write
            ConflictError: If the child or the specialist is already booked
        """
        start_time, end_time = AppointmentService.validate_booking(
            db, caller, child_id, specialist_id, service_id, start_time, end_time, status, notes
        )

        appointment = Appointment(
            child_id=child_id,
            specialist_id=specialist_id,
            service_id=service_id,
            start_time=start_time,
            end_time=end_time,
            status=status,
            notes=notes,
            is_recurring=is_recurring,
            recurrence_group_id=recurrence_group_id,
            created_by=caller.user_id
        )
        db.add(appointment)
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise AppointmentService._conflict_from_integrity_error(
                db, e, child_id, specialist_id, start_time, end_time
            )
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception(f"Failed to create appointment for child {child_id}: {e}")
            raise

        logger.info(
            f"Created appointment {appointment.id}: child {child_id}, specialist {specialist_id}, "
            f"{start_time} - {end_time} ({status})"
        )
        return appointment

    @staticmethod
    def update_appointment(
        db: Session,
        caller: CallerContext,
        appointment_id: int,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        child_id: Optional[int] = None,
        specialist_id: Optional[int] = None,
        service_id: Optional[int] = None,
        status: Optional[str] = None,
        notes: Union[Optional[str], UnsetType] = UNSET
    ) -> Appointment:
        """
        Apply a patch to an appointment in a single transaction.

        Moving only the start keeps the current duration. A status in the patch
        goes through the status lifecycle, so completing here also charges.
        On any failure nothing from the patch is applied.

        Args:
            db: Database session
            caller: Caller making the change
            appointment_id: Appointment to change
            start_time, end_time, child_id, specialist_id, service_id: New values, None = keep
            status: New status, None = keep
            notes: New notes; UNSET = keep, None = clear

        Raises:
            NotFoundError: If the appointment (or a new reference) does not exist
            ForbiddenError: If the caller may not make this change
            ValidationError: If the new values are invalid
            ConflictError: If the new time range overlaps another booking
        """
        appointment = AppointmentService._lock_appointment(db, appointment_id)
        if appointment is None:
            raise NotFoundError("Appointment not found", appointment_id=appointment_id)

        require_appointment_write(db, caller, appointment)

        start_time = ensure_utc(start_time)
        end_time = ensure_utc(end_time)
        current_start = ensure_utc(appointment.start_time)
        current_end = ensure_utc(appointment.end_time)

        # Unchanged values resent with the patch are not a reschedule
        reschedule = (
            (start_time is not None and start_time != current_start)
            or (end_time is not None and end_time != current_end)
            or (child_id is not None and child_id != appointment.child_id)
            or (specialist_id is not None and specialist_id != appointment.specialist_id)
            or (service_id is not None and service_id != appointment.service_id)
        )
        if reschedule and not caller.is_elevated():
            logger.warning(f"Reschedule of appointment {appointment_id} denied for {caller}")
            raise ForbiddenError(
                "Only admins and managers can reschedule or reassign appointments",
                appointment_id=appointment_id
            )

        if notes is not UNSET and notes is not None and len(notes) > MAX_NOTES_LENGTH:
            raise ValidationError(f"Notes must be at most {MAX_NOTES_LENGTH} characters")

        new_start = start_time if start_time is not None else current_start
        if end_time is not None:
            new_end = end_time
        elif start_time is not None:
            new_end = new_start + (current_end - current_start)
        else:
            new_end = current_end
        if new_end <= new_start:
            raise ValidationError("Appointment end time must be after its start time")

        new_child_id = child_id if child_id is not None else appointment.child_id
        new_specialist_id = specialist_id if specialist_id is not None else appointment.specialist_id
        if child_id is not None and child_id != appointment.child_id and db.get(Child, child_id) is None:
            raise NotFoundError("Child not found", child_id=child_id)
        if specialist_id is not None and specialist_id != appointment.specialist_id:
            specialist = db.get(Profile, specialist_id)
            if specialist is None:
                raise NotFoundError("Specialist not found", specialist_id=specialist_id)
            if specialist.role == ROLE_PARENT:
                raise ValidationError(
                    f"Profile {specialist_id} is not a specialist",
                    specialist_id=specialist_id
                )
        if service_id is not None and service_id != appointment.service_id and db.get(Service, service_id) is None:
            raise NotFoundError("Service not found", service_id=service_id)

        try:
            appointment.start_time = new_start
            appointment.end_time = new_end
            appointment.child_id = new_child_id
            appointment.specialist_id = new_specialist_id
            if service_id is not None:
                appointment.service_id = service_id
            if notes is not UNSET:
                appointment.notes = notes
            if status is not None:
                apply_status_change(db, caller, appointment, status)

            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise AppointmentService._conflict_from_integrity_error(
                db, e, new_child_id, new_specialist_id, new_start, new_end, exclude_id=appointment_id
            )
        except ValidationError:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception(f"Failed to update appointment {appointment_id}: {e}")
            raise

        logger.info(f"Updated appointment {appointment_id} by {caller}: {new_start} - {new_end}")
        return appointment

    @staticmethod
    def delete_appointment(db: Session, caller: CallerContext, appointment_id: int) -> None:
        """
        Hard-delete an appointment. Admins and managers only.

        A charge produced by the appointment stays in the ledger with its
        appointment reference cleared.
        """
        require_elevated(caller, "delete appointments")

        appointment = db.get(Appointment, appointment_id)
        if appointment is None:
            raise NotFoundError("Appointment not found", appointment_id=appointment_id)

        try:
            db.delete(appointment)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception(f"Failed to delete appointment {appointment_id}: {e}")
            raise

        logger.info(f"Deleted appointment {appointment_id} by {caller}")

    @staticmethod
    def get_appointment(db: Session, caller: CallerContext, appointment_id: int) -> Appointment:
        """Get one appointment the caller can see; hidden rows look missing."""
        appointment = db.get(Appointment, appointment_id)
        if appointment is None or not can_view_appointment(caller, appointment, SqlChildAccessDirectory(db)):
            raise NotFoundError("Appointment not found", appointment_id=appointment_id)
        return appointment

    @staticmethod
    def list_appointments(
        db: Session,
        caller: CallerContext,
        start: datetime,
        end: datetime,
        child_id: Optional[int] = None,
        specialist_id: Optional[int] = None,
        include_canceled: bool = False
    ) -> List[Appointment]:
        """
        List appointments intersecting ``[start, end)`` that the caller can see.

        Rows are filtered to readable children plus the caller's own sessions
        as specialist, and ordered by start time.
        """
        start, end = ensure_utc(start), ensure_utc(end)
        if end <= start:
            raise ValidationError("Range end must be after range start")

        stmt = (
            select(Appointment)
            .options(
                joinedload(Appointment.child),
                joinedload(Appointment.service),
                joinedload(Appointment.specialist)
            )
            .where(Appointment.start_time < end, Appointment.end_time > start)
        )
        if child_id is not None:
            stmt = stmt.where(Appointment.child_id == child_id)
        if specialist_id is not None:
            stmt = stmt.where(Appointment.specialist_id == specialist_id)
        if not include_canceled:
            stmt = stmt.where(Appointment.status != STATUS_CANCELED)

        readable = readable_child_ids(caller)
        if readable is not None:
            stmt = stmt.where(or_(
                Appointment.child_id.in_(readable),
                Appointment.specialist_id == caller.user_id
            ))

        return list(db.execute(stmt.order_by(Appointment.start_time, Appointment.id)).scalars().all())

    @staticmethod
    def _lock_appointment(db: Session, appointment_id: int) -> Optional[Appointment]:
        """Load an appointment row for update, failing fast if another writer holds it."""
        try:
            return db.execute(
                select(Appointment).where(Appointment.id == appointment_id).with_for_update(nowait=True)
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
        except OperationalError:
            db.rollback()
            raise ConflictError("This appointment is being modified, please retry", conflict_type="locked")

    @staticmethod
    def _conflict_from_integrity_error(
        db: Session,
        error: IntegrityError,
        child_id: int,
        specialist_id: int,
        start_time: datetime,
        end_time: datetime,
        exclude_id: Optional[int] = None
    ) -> ConflictError:
        """
        Translate a rejected appointment write into a ConflictError.

        Must be called after the session was rolled back. The conflicting
        appointment is looked up for the error detail only.
        """
        message = str(error.orig)
        if CHILD_OVERLAP_CONSTRAINT in message:
            conflict_type = "child_overlap"
            column, value = Appointment.child_id, child_id
            text = "The child already has an appointment at this time"
        elif SPECIALIST_OVERLAP_CONSTRAINT in message:
            conflict_type = "specialist_overlap"
            column, value = Appointment.specialist_id, specialist_id
            text = "The specialist already has an appointment at this time"
        else:
            logger.warning(f"Appointment write rejected by a database constraint: {message}")
            return ConflictError(
                "The appointment violates a scheduling constraint",
                start_time=start_time,
                end_time=end_time
            )

        stmt = select(Appointment.id).where(
            column == value,
            Appointment.status != STATUS_CANCELED,
            Appointment.start_time < end_time,
            Appointment.end_time > start_time
        )
        if exclude_id is not None:
            stmt = stmt.where(Appointment.id != exclude_id)
        conflicting_id = db.execute(stmt.order_by(Appointment.start_time).limit(1)).scalar_one_or_none()
        # Release the write lock taken by the lookup
        db.rollback()

        logger.warning(
            f"Booking conflict ({conflict_type}) for {start_time} - {end_time}, "
            f"conflicting appointment {conflicting_id}"
        )
        return ConflictError(
            text,
            conflict_type=conflict_type,
            start_time=start_time,
            end_time=end_time,
            conflicting_appointment_id=conflicting_id
        )
