"""
Ledger service for charges, payments, balances and income reporting.

Charges are only ever created by completing an appointment (see
``services.status_lifecycle``); this module records and deletes manual
payments and aggregates the ledger. Balances are derived on every read and
never stored: payments minus charges, positive meaning credit.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Optional

from sqlalchemy import case, desc, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from auth.context import CallerContext
from auth.permissions import readable_child_ids, require_elevated, require_read, require_write
from core.constants import (
    MAX_NOTES_LENGTH, PAYMENT_METHOD_LABELS, TRANSACTION_CHARGE, TRANSACTION_PAYMENT
)
from core.errors import NotFoundError, ValidationError
from models import Appointment, Child, Profile, Service, Transaction
from utils.datetime_utils import day_bounds, ensure_utc

logger = logging.getLogger(__name__)

INCOME_GROUP_BY_SPECIALIST = "specialist"
INCOME_GROUP_BY_SERVICE = "service"
INCOME_GROUPINGS = (INCOME_GROUP_BY_SPECIALIST, INCOME_GROUP_BY_SERVICE)

NO_SPECIALIST_LABEL = "No specialist"
NO_SERVICE_LABEL = "No service"


def _to_decimal(value: Any) -> Decimal:
    """Normalize an aggregate result (Decimal, float, int or None) to Decimal."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def build_payment_description(method: str, description: Optional[str]) -> str:
    """Build a payment's ledger description, e.g. 'Cash · March sessions'."""
    label = PAYMENT_METHOD_LABELS[method]
    description = (description or "").strip()
    return f"{label} · {description}" if description else label


@dataclass
class BalanceSummary:
    """Derived balance of one child."""

    charges: Decimal
    payments: Decimal

    @property
    def balance(self) -> Decimal:
        """Payments minus charges. Positive is credit, negative is debt."""
        return self.payments - self.charges


@dataclass
class IncomeRow:
    """One row of the income report."""

    key: Optional[int]
    """Specialist or service id; None for charges whose appointment was deleted."""
    label: str
    total: Decimal
    count: int


class LedgerService:
    """Service class for ledger operations."""

    @staticmethod
    def record_payment(
        db: Session,
        caller: CallerContext,
        child_id: int,
        amount: Decimal,
        date: datetime,
        method: str,
        description: Optional[str] = None
    ) -> Transaction:
        """
        Record a manual payment for a child.

        Args:
            db: Database session
            caller: Caller recording the payment
            child_id: Child the payment is for
            amount: Positive amount
            date: Payment date, stored in UTC
            method: 'cash', 'card' or 'transfer'
            description: Optional free text appended to the method label

        Raises:
            ValidationError: If amount or method is invalid
            NotFoundError: If the child does not exist
            ForbiddenError: If the caller cannot write the child's ledger
        """
        amount = _to_decimal(amount)
        if amount <= 0:
            raise ValidationError("Payment amount must be greater than zero", amount=str(amount))
        if method not in PAYMENT_METHOD_LABELS:
            raise ValidationError(
                f"Unknown payment method: {method}",
                allowed_methods=sorted(PAYMENT_METHOD_LABELS)
            )
        if description is not None and len(description) > MAX_NOTES_LENGTH:
            raise ValidationError(f"Description must be at most {MAX_NOTES_LENGTH} characters")

        if db.get(Child, child_id) is None:
            raise NotFoundError("Child not found", child_id=child_id)
        require_write(db, caller, child_id)

        payment = Transaction(
            child_id=child_id,
            appointment_id=None,
            amount=amount,
            type=TRANSACTION_PAYMENT,
            date=ensure_utc(date),
            description=build_payment_description(method, description),
            created_by=caller.user_id
        )
        db.add(payment)
        try:
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception(f"Failed to record payment for child {child_id}: {e}")
            raise

        logger.info(f"Recorded payment {payment.id} of {amount} ({method}) for child {child_id} by {caller}")
        return payment

    @staticmethod
    def delete_payment(db: Session, caller: CallerContext, transaction_id: int) -> None:
        """
        Delete a manual payment.

        Raises:
            NotFoundError: If the transaction does not exist
            ForbiddenError: If the caller cannot write the child's ledger
            ValidationError: If the transaction is a charge
        """
        transaction = db.get(Transaction, transaction_id)
        if transaction is None:
            raise NotFoundError("Transaction not found", transaction_id=transaction_id)

        require_write(db, caller, transaction.child_id)

        if transaction.type != TRANSACTION_PAYMENT:
            raise ValidationError(
                "Only payments can be deleted; charges are removed with their appointment",
                transaction_id=transaction_id
            )

        try:
            db.delete(transaction)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception(f"Failed to delete payment {transaction_id}: {e}")
            raise

        logger.info(f"Deleted payment {transaction_id} of child {transaction.child_id} by {caller}")

    @staticmethod
    def compute_balance(db: Session, caller: CallerContext, child_id: int) -> BalanceSummary:
        """Compute a child's charges, payments and balance in one aggregate query."""
        require_read(db, caller, child_id)

        charges, payments = db.execute(
            select(
                func.coalesce(
                    func.sum(case((Transaction.type == TRANSACTION_CHARGE, Transaction.amount), else_=0)), 0
                ),
                func.coalesce(
                    func.sum(case((Transaction.type == TRANSACTION_PAYMENT, Transaction.amount), else_=0)), 0
                ),
            ).where(Transaction.child_id == child_id)
        ).one()

        return BalanceSummary(charges=_to_decimal(charges), payments=_to_decimal(payments))

    @staticmethod
    def list_transactions(
        db: Session,
        caller: CallerContext,
        child_id: Optional[int] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None
    ) -> List[Transaction]:
        """List ledger entries the caller can read, newest first."""
        stmt = select(Transaction)
        if child_id is not None:
            require_read(db, caller, child_id)
            stmt = stmt.where(Transaction.child_id == child_id)
        else:
            readable = readable_child_ids(caller)
            if readable is not None:
                stmt = stmt.where(Transaction.child_id.in_(readable))

        if from_date is not None and to_date is not None and to_date < from_date:
            raise ValidationError("to_date must not be before from_date")
        if from_date is not None:
            stmt = stmt.where(Transaction.date >= day_bounds(from_date, from_date)[0])
        if to_date is not None:
            stmt = stmt.where(Transaction.date < day_bounds(to_date, to_date)[1])

        return list(db.execute(stmt.order_by(Transaction.date.desc(), Transaction.id.desc())).scalars().all())

    @staticmethod
    def income_report(
        db: Session,
        caller: CallerContext,
        from_date: date,
        to_date: date,
        group_by: str = INCOME_GROUP_BY_SPECIALIST
    ) -> List[IncomeRow]:
        """
        Aggregate charges in an inclusive date range by specialist or service.

        Charges whose appointment has been deleted are reported in a single
        "No specialist" / "No service" row. Rows are sorted by total, largest first.

        Raises:
            ForbiddenError: If the caller is not an admin or manager
            ValidationError: If the range or grouping is invalid
        """
        require_elevated(caller, "view income reports")
        if group_by not in INCOME_GROUPINGS:
            raise ValidationError(f"group_by must be one of {', '.join(INCOME_GROUPINGS)}", group_by=group_by)
        if to_date < from_date:
            raise ValidationError("to_date must not be before from_date")

        if group_by == INCOME_GROUP_BY_SPECIALIST:
            key_column = Appointment.specialist_id
            label_column = Profile.full_name
            label_table = Profile
            missing_label = NO_SPECIALIST_LABEL
        else:
            key_column = Appointment.service_id
            label_column = Service.name
            label_table = Service
            missing_label = NO_SERVICE_LABEL

        start, end = day_bounds(from_date, to_date)
        total = func.sum(Transaction.amount).label("total")
        rows = db.execute(
            select(key_column, label_column, total, func.count(Transaction.id))
            .select_from(Transaction)
            .outerjoin(Appointment, Transaction.appointment_id == Appointment.id)
            .outerjoin(label_table, label_table.id == key_column)
            .where(
                Transaction.type == TRANSACTION_CHARGE,
                Transaction.date >= start,
                Transaction.date < end
            )
            .group_by(key_column, label_column)
            .order_by(desc(total))
        ).all()

        report = [
            IncomeRow(
                key=key,
                label=label if key is not None else missing_label,
                total=_to_decimal(amount),
                count=count
            )
            for key, label, amount, count in rows
        ]
        report.sort(key=lambda row: (-row.total, row.label))
        return report
