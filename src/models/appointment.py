"""
Appointment model representing a booked therapy session.

Each appointment links a child, a specialist and a service for a time range.
The no-overlap rules are enforced by the database itself, keyed independently
on child and on specialist, and ignoring canceled rows:

- PostgreSQL: ``EXCLUDE USING gist`` constraints over ``tstzrange(start, end, '[)')``.
- SQLite: ``BEFORE INSERT`` / ``BEFORE UPDATE`` triggers raising ``ABORT``.

Both are created together with the table (see the DDL listeners at the bottom
of this module), so ``create_all`` and the Alembic baseline produce them.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    DDL, String, Text, ForeignKey, Index, TIMESTAMP, Boolean, CheckConstraint, Uuid, event
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import CHILD_OVERLAP_CONSTRAINT, SPECIALIST_OVERLAP_CONSTRAINT
from core.database import Base, UTCDateTime


class Appointment(Base):
    """
    Appointment entity representing a scheduled session between a child and a specialist.

    Lifecycle: created as 'pending' or 'confirmed', then moves to 'confirmed',
    'completed', 'no_show' or 'canceled' through the status lifecycle service.
    Completing an appointment produces exactly one charge transaction.
    """

    __tablename__ = "appointments"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the appointment."""

    child_id: Mapped[int] = mapped_column(ForeignKey("children.id", ondelete="CASCADE"))
    """Reference to the child attending the appointment."""

    specialist_id: Mapped[int] = mapped_column(ForeignKey("profiles.id", ondelete="RESTRICT"))
    """Reference to the specialist (therapist) running the appointment."""

    service_id: Mapped[int] = mapped_column(ForeignKey("services.id", ondelete="RESTRICT"))
    """Reference to the service being provided."""

    start_time: Mapped[datetime] = mapped_column(UTCDateTime())
    """Start of the session, stored in UTC."""
    end_time: Mapped[datetime] = mapped_column(UTCDateTime())

    status: Mapped[str] = mapped_column(String(20), default="pending")
    """Valid values: 'pending', 'confirmed', 'completed', 'no_show', 'canceled'."""

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    """True for occurrences generated from a recurring request."""

    recurrence_group_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    """Shared by all occurrences generated from one recurring request; NULL for standalone bookings."""

    created_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True
    )
    """Profile that created the booking."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    child = relationship("Child", back_populates="appointments")
    specialist = relationship("Profile", foreign_keys=[specialist_id])
    service = relationship("Service", back_populates="appointments")
    creator = relationship("Profile", foreign_keys=[created_by])

    transactions = relationship("Transaction", back_populates="appointment", passive_deletes=True)
    """Ledger rows produced by this appointment. They survive its deletion with appointment_id NULL."""

    __table_args__ = (
        CheckConstraint('end_time > start_time', name='check_appointment_time_range'),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'completed', 'no_show', 'canceled')",
            name='check_appointment_status'
        ),
        Index('idx_appointments_start_time', 'start_time'),
        Index('idx_appointments_child_time', 'child_id', 'start_time'),
        Index('idx_appointments_specialist_time', 'specialist_id', 'start_time'),
        Index('idx_appointments_recurrence_group', 'recurrence_group_id'),
    )

    @property
    def duration_minutes(self) -> int:
        """Length of the appointment in whole minutes."""
        return int((self.end_time - self.start_time).total_seconds() // 60)

    def __repr__(self) -> str:
        return (
            f"<Appointment(id={self.id}, child_id={self.child_id}, specialist_id={self.specialist_id}, "
            f"{self.start_time}-{self.end_time}, status={self.status})>"
        )


# ===== Store-level overlap invariants =====

_PG_EXCLUSION = """
ALTER TABLE appointments
  ADD CONSTRAINT {name}
  EXCLUDE USING gist (
    {column} WITH =,
    tstzrange(start_time, end_time, '[)') WITH &&
  )
  WHERE (status <> 'canceled')
"""

# RAISE(ABORT) inside a trigger surfaces as an IntegrityError carrying the message,
# which is the constraint name, same as the PostgreSQL error text.
_SQLITE_INSERT_TRIGGER = """
CREATE TRIGGER {name}_insert
BEFORE INSERT ON appointments
WHEN NEW.status <> 'canceled'
BEGIN
  SELECT RAISE(ABORT, '{name}')
  WHERE EXISTS (
    SELECT 1 FROM appointments a
    WHERE a.{column} = NEW.{column}
      AND a.status <> 'canceled'
      AND a.start_time < NEW.end_time
      AND NEW.start_time < a.end_time
  );
END
"""

_SQLITE_UPDATE_TRIGGER = """
CREATE TRIGGER {name}_update
BEFORE UPDATE OF {column}, start_time, end_time, status ON appointments
WHEN NEW.status <> 'canceled'
BEGIN
  SELECT RAISE(ABORT, '{name}')
  WHERE EXISTS (
    SELECT 1 FROM appointments a
    WHERE a.{column} = NEW.{column}
      AND a.id <> NEW.id
      AND a.status <> 'canceled'
      AND a.start_time < NEW.end_time
      AND NEW.start_time < a.end_time
  );
END
"""

event.listen(
    Appointment.__table__,
    "before_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)

for _name, _column in (
    (CHILD_OVERLAP_CONSTRAINT, "child_id"),
    (SPECIALIST_OVERLAP_CONSTRAINT, "specialist_id"),
):
    event.listen(
        Appointment.__table__,
        "after_create",
        DDL(_PG_EXCLUSION.format(name=_name, column=_column)).execute_if(dialect="postgresql"),
    )
    for _template in (_SQLITE_INSERT_TRIGGER, _SQLITE_UPDATE_TRIGGER):
        event.listen(
            Appointment.__table__,
            "after_create",
            DDL(_template.format(name=_name, column=_column)).execute_if(dialect="sqlite"),
        )
