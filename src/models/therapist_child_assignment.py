"""
Therapist-Child Assignment model.

This model represents the care assignment of therapists to children.
A child can have multiple assigned therapists, and a therapist
can be assigned to multiple children.
"""

from sqlalchemy import ForeignKey, TIMESTAMP, Index, Boolean
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime

from core.database import Base


class TherapistChildAssignment(Base):
    """
    Assignment of a therapist to a child.

    An active assignment grants the therapist read and write access to the
    child's scheduling and financial data. Deactivating the assignment revokes
    that access without losing the history of who was assigned.
    """

    __tablename__ = "therapist_children"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the assignment."""

    child_id: Mapped[int] = mapped_column(ForeignKey("children.id", ondelete="CASCADE"))
    """Reference to the child."""

    therapist_id: Mapped[int] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"))
    """Reference to the therapist profile."""

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    """Only active assignments grant access."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    """Timestamp when the assignment was created."""

    # Relationships
    child = relationship("Child", back_populates="therapist_assignments")
    therapist = relationship("Profile", back_populates="child_assignments")

    __table_args__ = (
        # One assignment per child-therapist pair
        Index('uq_therapist_children_child_therapist', 'child_id', 'therapist_id', unique=True),
        Index('idx_therapist_children_therapist', 'therapist_id'),
        Index('idx_therapist_children_child', 'child_id'),
    )
