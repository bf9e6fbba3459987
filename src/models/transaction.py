"""
Transaction model representing ledger entries for a child.

The ledger is append-mostly: charges are produced by completing an appointment
and are never deleted directly; payments are recorded manually and may be
deleted. A child's balance is always derived from these rows, never stored.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Text, ForeignKey, TIMESTAMP, Numeric, Index, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import CHARGE_UNIQUE_CONSTRAINT
from core.database import Base, UTCDateTime


class Transaction(Base):
    """
    Ledger entry: a charge for a completed appointment, or a payment.

    The unique constraint on (appointment_id, type) guarantees at most one
    charge per appointment, which makes the completion charge idempotent.
    Manual payments carry a NULL appointment_id and are not limited by it.
    """

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    child_id: Mapped[int] = mapped_column(ForeignKey("children.id", ondelete="CASCADE"))
    """Child this entry belongs to."""

    appointment_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("appointments.id", ondelete="SET NULL"), nullable=True
    )
    """Originating appointment for charges. Set to NULL if the appointment is deleted."""

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    """Non-negative amount."""

    type: Mapped[str] = mapped_column(String(20))
    """'charge' or 'payment'."""

    date: Mapped[datetime] = mapped_column(UTCDateTime())
    """Ledger date. Charges are dated at the appointment's end time."""

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    child = relationship("Child")
    appointment = relationship("Appointment", back_populates="transactions")

    __table_args__ = (
        UniqueConstraint('appointment_id', 'type', name=CHARGE_UNIQUE_CONSTRAINT),
        CheckConstraint('amount >= 0', name='check_transaction_amount_non_negative'),
        CheckConstraint("type IN ('charge', 'payment')", name='check_transaction_type'),
        Index('idx_transactions_child_date', 'child_id', 'date'),
        Index('idx_transactions_type_date', 'type', 'date'),
    )

    def __repr__(self) -> str:
        return f"<Transaction(id={self.id}, child_id={self.child_id}, type={self.type}, amount={self.amount})>"
