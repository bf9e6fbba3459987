"""
Appointment status lifecycle and the completion billing trigger.

Allowed transitions:

    pending   -> confirmed | canceled
    confirmed -> completed | canceled | no_show
    completed, canceled, no_show are terminal

Writing the current status again is a no-op. Moving into ``completed`` from
any other status inserts the appointment's charge in the same transaction as
the status write, so "completed" and "charged" never diverge. The charge
insert relies on the unique (appointment_id, type) constraint and is skipped
when a charge already exists.
"""

import logging
from typing import Dict, FrozenSet, Optional

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from auth.context import CallerContext
from auth.permissions import require_appointment_write
from core.constants import (
    APPOINTMENT_STATUSES, STATUS_PENDING, STATUS_CONFIRMED, STATUS_COMPLETED,
    STATUS_NO_SHOW, STATUS_CANCELED, TRANSACTION_CHARGE
)
from core.errors import ConflictError, NotFoundError, ValidationError
from models import Appointment, Child, Service, Transaction
from utils.datetime_utils import format_appointment_time, utc_now

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    STATUS_PENDING: frozenset({STATUS_CONFIRMED, STATUS_CANCELED}),
    STATUS_CONFIRMED: frozenset({STATUS_COMPLETED, STATUS_CANCELED, STATUS_NO_SHOW}),
    STATUS_COMPLETED: frozenset(),
    STATUS_CANCELED: frozenset(),
    STATUS_NO_SHOW: frozenset(),
}


def is_transition_allowed(current_status: str, new_status: str) -> bool:
    """Check whether ``current_status -> new_status`` is a permitted edge."""
    return new_status in ALLOWED_TRANSITIONS.get(current_status, frozenset())


def build_charge_description(service_name: str, child_name: str, appointment: Appointment) -> str:
    """Build the ledger description of a completion charge."""
    return f"Charge: {service_name} - {child_name} ({format_appointment_time(appointment.start_time)})"


def _insert_charge(db: Session, caller: CallerContext, appointment: Appointment) -> Optional[int]:
    """
    Insert the completion charge for an appointment unless one exists.

    Price and child name are read now, so an appointment completed after a
    price change bills at the current price.

    Returns:
        The new transaction id, or None if a charge already existed
    """
    service_name, price = db.execute(
        select(Service.name, Service.price).where(Service.id == appointment.service_id)
    ).one()
    child_name = db.execute(select(Child.name).where(Child.id == appointment.child_id)).scalar_one()

    values = {
        "child_id": appointment.child_id,
        "appointment_id": appointment.id,
        "amount": price,
        "type": TRANSACTION_CHARGE,
        "date": appointment.end_time,
        "description": build_charge_description(service_name, child_name, appointment),
        "created_by": caller.user_id,
        "created_at": utc_now(),
    }

    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(Transaction)
    elif dialect == "sqlite":
        stmt = sqlite.insert(Transaction)
    else:
        raise RuntimeError(f"Unsupported database dialect for charge insert: {dialect}")

    stmt = stmt.values(**values).on_conflict_do_nothing(
        index_elements=["appointment_id", "type"]
    ).returning(Transaction.id)
    transaction_id = db.execute(stmt).scalar_one_or_none()

    if transaction_id is None:
        logger.info(f"Charge for appointment {appointment.id} already exists, skipping")
    else:
        logger.info(
            f"Charged {price} for appointment {appointment.id} "
            f"(child {appointment.child_id}, transaction {transaction_id})"
        )
    return transaction_id


def apply_status_change(
    db: Session,
    caller: CallerContext,
    appointment: Appointment,
    new_status: str
) -> bool:
    """
    Apply a status change to a loaded appointment without committing.

    The caller owns the transaction: the status write and the optional charge
    insert are committed (or rolled back) together.

    Args:
        db: Database session
        caller: Caller performing the change (recorded on the charge)
        appointment: Appointment row to change
        new_status: Target status

    Returns:
        True if the status changed, False if it was already ``new_status``

    Raises:
        ValidationError: If the status is unknown or the edge is not allowed
    """
    if new_status not in APPOINTMENT_STATUSES:
        raise ValidationError(f"Unknown appointment status: {new_status}", status=new_status)

    previous_status = appointment.status
    if previous_status == new_status:
        return False

    if not is_transition_allowed(previous_status, new_status):
        raise ValidationError(
            f"Cannot change appointment status from '{previous_status}' to '{new_status}'",
            from_status=previous_status,
            to_status=new_status
        )

    appointment.status = new_status
    db.flush()

    if new_status == STATUS_COMPLETED:
        _insert_charge(db, caller, appointment)

    logger.info(f"Appointment {appointment.id} status {previous_status} -> {new_status} by {caller}")
    return True


def transition_status(
    db: Session,
    caller: CallerContext,
    appointment_id: int,
    new_status: str
) -> Appointment:
    """
    Move an appointment to a new status and commit.

    Raises:
        NotFoundError: If the appointment does not exist
        ForbiddenError: If the caller may not modify the appointment
        ValidationError: If the transition is not allowed
        ConflictError: If the row is locked by a concurrent change
    """
    try:
        appointment = db.execute(
            select(Appointment).where(Appointment.id == appointment_id).with_for_update(nowait=True)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
    except OperationalError:
        db.rollback()
        raise ConflictError("This appointment is being modified, please retry", conflict_type="locked")

    if appointment is None:
        raise NotFoundError("Appointment not found", appointment_id=appointment_id)

    require_appointment_write(db, caller, appointment)

    try:
        apply_status_change(db, caller, appointment, new_status)
        db.commit()
    except (ValidationError, ConflictError):
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"Failed to change status of appointment {appointment_id}: {e}")
        raise

    return appointment
