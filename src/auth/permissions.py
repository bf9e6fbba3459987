# pyright: reportMissingTypeStubs=false
"""
Capability predicates gating access to a child's scheduling and ledger data.

The predicates are plain functions of (caller, child id) evaluated against a
read-only ``ChildAccessDirectory``. They never call back into each other
through the directory, and any lookup failure denies access.

- ``can_read_child``: elevated role, the child's guardian, or a therapist with
  an active assignment.
- ``can_write_child``: elevated role or a therapist with an active assignment.
  Guardians never write.
- ``can_view_appointment``: ``can_read_child`` or being that appointment's
  specialist (covering therapists without a general assignment).
- ``can_modify_appointment``: ``can_write_child`` or being that appointment's
  specialist. Which fields may change is decided by the appointment service.
"""

import logging
from typing import Optional

from sqlalchemy import select, union, Select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from auth.context import CallerContext
from core.errors import ForbiddenError
from models import Appointment, Child, TherapistChildAssignment

logger = logging.getLogger(__name__)


class ChildAccessDirectory:
    """Read-only view of the child directory needed for access decisions."""

    def guardian_id(self, child_id: int) -> Optional[int]:
        raise NotImplementedError

    def has_active_assignment(self, therapist_id: int, child_id: int) -> bool:
        raise NotImplementedError


class SqlChildAccessDirectory(ChildAccessDirectory):
    """Directory backed by the children and therapist_children tables."""

    def __init__(self, db: Session):
        self.db = db

    def guardian_id(self, child_id: int) -> Optional[int]:
        return self.db.execute(
            select(Child.guardian_id).where(Child.id == child_id)
        ).scalar_one_or_none()

    def has_active_assignment(self, therapist_id: int, child_id: int) -> bool:
        return self.db.execute(
            select(TherapistChildAssignment.id).where(
                TherapistChildAssignment.child_id == child_id,
                TherapistChildAssignment.therapist_id == therapist_id,
                TherapistChildAssignment.is_active.is_(True)
            ).limit(1)
        ).first() is not None


def can_read_child(caller: CallerContext, child_id: int, directory: ChildAccessDirectory) -> bool:
    """Check whether the caller may read the child's data."""
    if caller.is_elevated():
        return True
    try:
        if caller.is_guardian():
            return directory.guardian_id(child_id) == caller.user_id
        if caller.is_therapist():
            return directory.has_active_assignment(caller.user_id, child_id)
    except SQLAlchemyError as e:
        logger.exception(f"Access lookup failed for {caller} on child {child_id}, denying: {e}")
    return False


def can_write_child(caller: CallerContext, child_id: int, directory: ChildAccessDirectory) -> bool:
    """Check whether the caller may write the child's scheduling/financial data."""
    if caller.is_elevated():
        return True
    if not caller.is_therapist():
        return False
    try:
        return directory.has_active_assignment(caller.user_id, child_id)
    except SQLAlchemyError as e:
        logger.exception(f"Access lookup failed for {caller} on child {child_id}, denying: {e}")
        return False


def can_view_appointment(caller: CallerContext, appointment: Appointment, directory: ChildAccessDirectory) -> bool:
    """Check whether the caller may see a specific appointment."""
    if appointment.specialist_id == caller.user_id:
        return True
    return can_read_child(caller, appointment.child_id, directory)


def readable_child_ids(caller: CallerContext) -> Optional[Select]:
    """
    Build a selectable of child ids the caller may read.

    Used by list queries to filter rows instead of gating the whole request.

    Returns:
        None for elevated callers (no restriction), otherwise a SELECT of child ids
    """
    if caller.is_elevated():
        return None
    guarded = select(Child.id).where(Child.guardian_id == caller.user_id)
    if not caller.is_therapist():
        return guarded
    assigned = select(TherapistChildAssignment.child_id).where(
        TherapistChildAssignment.therapist_id == caller.user_id,
        TherapistChildAssignment.is_active.is_(True)
    )
    return select(union(guarded, assigned).subquery().c[0])


def require_read(db: Session, caller: CallerContext, child_id: int) -> None:
    """Raise ForbiddenError unless the caller can read the child."""
    if not can_read_child(caller, child_id, SqlChildAccessDirectory(db)):
        logger.warning(f"Read denied: {caller} on child {child_id}")
        raise ForbiddenError("You do not have access to this child's records", child_id=child_id)


def require_write(db: Session, caller: CallerContext, child_id: int) -> None:
    """Raise ForbiddenError unless the caller can write the child's data."""
    if not can_write_child(caller, child_id, SqlChildAccessDirectory(db)):
        logger.warning(f"Write denied: {caller} on child {child_id}")
        raise ForbiddenError("You cannot modify this child's schedule or ledger", child_id=child_id)


def require_elevated(caller: CallerContext, action: str) -> None:
    """Raise ForbiddenError unless the caller is an admin or manager."""
    if not caller.is_elevated():
        logger.warning(f"Elevated action '{action}' denied for {caller}")
        raise ForbiddenError(f"Admin or manager privileges required to {action}")


def can_modify_appointment(caller: CallerContext, appointment: Appointment, directory: ChildAccessDirectory) -> bool:
    """Check whether the caller may change an existing appointment's status or notes."""
    if caller.is_therapist() and appointment.specialist_id == caller.user_id:
        return True
    return can_write_child(caller, appointment.child_id, directory)


def require_appointment_write(db: Session, caller: CallerContext, appointment: Appointment) -> None:
    """Raise ForbiddenError unless the caller may modify the appointment."""
    if not can_modify_appointment(caller, appointment, SqlChildAccessDirectory(db)):
        logger.warning(f"Appointment write denied: {caller} on appointment {appointment.id}")
        raise ForbiddenError(
            "You cannot modify this appointment",
            appointment_id=appointment.id
        )
