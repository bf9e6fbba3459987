"""
Profile model for center personnel and guardians.

Profiles are owned by the external user-management layer. The scheduling
engine only reads them: the role decides elevated access, and therapists
appear as the specialist of appointments.
"""

from datetime import datetime
from sqlalchemy import String, TIMESTAMP, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class Profile(Base):
    """A person known to the center: admin, manager, therapist or parent."""

    __tablename__ = "profiles"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    email: Mapped[str] = mapped_column(String(255), unique=True)
    full_name: Mapped[str] = mapped_column(String(255), default="")
    role: Mapped[str] = mapped_column(String(20), default="parent")  # 'admin', 'manager', 'therapist', 'parent'

    # Metadata
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    children = relationship("Child", back_populates="guardian")
    """Children for whom this profile is the registered guardian."""

    child_assignments = relationship(
        "TherapistChildAssignment",
        back_populates="therapist",
        cascade="all, delete-orphan"
    )
    """Care assignments for this therapist."""

    working_hours = relationship(
        "SpecialistWorkingHours",
        back_populates="specialist",
        cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint(
            "role IN ('admin', 'manager', 'therapist', 'parent')",
            name='check_profile_role'
        ),
    )

    @property
    def display_name(self) -> str:
        """Full name, falling back to the e-mail address."""
        return self.full_name or self.email

    def __repr__(self) -> str:
        return f"<Profile(id={self.id}, email='{self.email}', role='{self.role}')>"
