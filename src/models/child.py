"""
Child model representing a child receiving therapy at the center.

Child records are maintained by the admin forms (outside this engine). The
engine reads the display name for charge descriptions and the guardian link
for read-access decisions.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, ForeignKey, TIMESTAMP, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class Child(Base):
    """A child whose schedule and ledger are managed by the center."""

    __tablename__ = "children"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the child."""

    name: Mapped[str] = mapped_column(String(255))
    """Display name of the child."""

    guardian_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True
    )
    """Registered guardian (parent profile). Guardians may read but never write."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    guardian = relationship("Profile", back_populates="children")

    therapist_assignments = relationship(
        "TherapistChildAssignment",
        back_populates="child",
        cascade="all, delete-orphan"
    )

    appointments = relationship("Appointment", back_populates="child", passive_deletes=True)

    __table_args__ = (
        Index('idx_children_guardian', 'guardian_id'),
    )

    def __repr__(self) -> str:
        return f"<Child(id={self.id}, name='{self.name}')>"
