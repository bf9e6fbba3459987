"""
Specialist working hours model for the default weekly schedule.

One row per (specialist, weekday). Working hours are advisory: they drive slot
suggestions in the calendar but are never enforced when booking.
"""

from datetime import time, datetime
from sqlalchemy import Time, TIMESTAMP, ForeignKey, SmallInteger, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class SpecialistWorkingHours(Base):
    """Working period of a specialist on one day of the week."""

    __tablename__ = "specialist_working_hours"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    specialist_id: Mapped[int] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"))
    """Reference to the specialist profile."""

    weekday: Mapped[int] = mapped_column(SmallInteger)
    """Day of the week (0=Sunday, 1=Monday, ..., 6=Saturday)."""

    start_time: Mapped[time] = mapped_column(Time)
    end_time: Mapped[time] = mapped_column(Time)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    specialist = relationship("Profile", back_populates="working_hours")

    __table_args__ = (
        UniqueConstraint('specialist_id', 'weekday', name='uq_specialist_working_hours_weekday'),
        CheckConstraint('weekday BETWEEN 0 AND 6', name='check_working_hours_weekday'),
        CheckConstraint('end_time > start_time', name='check_working_hours_range'),
    )

    def __repr__(self) -> str:
        return f"<SpecialistWorkingHours(specialist_id={self.specialist_id}, weekday={self.weekday}, {self.start_time}-{self.end_time})>"
