"""
Service model representing a billable therapy service.

Appointments reference a service for their default duration and price. The
price is read when an appointment is completed, so editing a price affects
every appointment that has not been completed yet.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, Integer, Numeric, TIMESTAMP, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class Service(Base):
    """A therapy service offered by the center (e.g. speech therapy session)."""

    __tablename__ = "services"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the service."""

    name: Mapped[str] = mapped_column(String(255), unique=True)
    """Service name, unique across the catalog."""

    duration_min: Mapped[int] = mapped_column(Integer, default=30)
    """Default duration in minutes (> 0)."""

    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    """Price charged when an appointment for this service is completed (>= 0)."""

    color: Mapped[str] = mapped_column(String(20), default="#2f6f5e")
    """Display color for calendar rendering."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    appointments = relationship("Appointment", back_populates="service", passive_deletes="all")
    """Appointments booked for this service. Deleting a referenced service is restricted."""

    __table_args__ = (
        CheckConstraint('duration_min > 0', name='check_service_duration_positive'),
        CheckConstraint('price >= 0', name='check_service_price_non_negative'),
    )

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, name='{self.name}', price={self.price})>"
