# pyright: reportMissingTypeStubs=false
"""
Finance API endpoints: ledger entries, payments, balances and income reports.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi import status as http_status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.responses import SuccessResponse, TransactionResponse
from auth.context import CallerContext
from auth.dependencies import get_caller
from core.database import get_db
from services import LedgerService

logger = logging.getLogger(__name__)

router = APIRouter()


class PaymentCreateRequest(BaseModel):
    """Request model for recording a payment."""
    child_id: int
    amount: Decimal = Field(..., gt=0)
    date: datetime
    method: Literal["cash", "card", "transfer"]
    description: Optional[str] = None


class BalanceResponse(BaseModel):
    """Charges, payments and their difference. Positive balance is credit."""
    child_id: int
    charges: Decimal
    payments: Decimal
    balance: Decimal


class IncomeRowResponse(BaseModel):
    key: Optional[int] = None  # None for charges whose appointment was deleted
    label: str
    total: Decimal
    count: int


@router.get("/transactions", summary="List ledger entries")
async def list_transactions(
    child_id: Optional[int] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db)
) -> List[TransactionResponse]:
    """Ledger entries of children the caller can read, newest first."""
    try:
        transactions = LedgerService.list_transactions(db, caller, child_id, from_date, to_date)
        return [TransactionResponse.from_model(t) for t in transactions]
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to list transactions: {e}")
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list transactions"
        )


@router.post("/payments", summary="Record a payment", status_code=http_status.HTTP_201_CREATED)
async def record_payment(
    request: PaymentCreateRequest,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db)
) -> TransactionResponse:
    try:
        payment = LedgerService.record_payment(
            db, caller,
            child_id=request.child_id,
            amount=request.amount,
            date=request.date,
            method=request.method,
            description=request.description
        )
        return TransactionResponse.from_model(payment)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to record payment: {e}")
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to record payment"
        )


@router.delete("/payments/{transaction_id}", summary="Delete a payment")
async def delete_payment(
    transaction_id: int,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db)
) -> SuccessResponse:
    """Delete a payment. Charges cannot be deleted."""
    try:
        LedgerService.delete_payment(db, caller, transaction_id)
        return SuccessResponse(message="Payment deleted")
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to delete payment {transaction_id}: {e}")
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete payment"
        )


@router.get("/children/{child_id}/balance", summary="Get a child's balance")
async def get_balance(
    child_id: int,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db)
) -> BalanceResponse:
    try:
        summary = LedgerService.compute_balance(db, caller, child_id)
        return BalanceResponse(
            child_id=child_id,
            charges=summary.charges,
            payments=summary.payments,
            balance=summary.balance
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to compute balance for child {child_id}: {e}")
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute balance"
        )


@router.get("/income", summary="Income report")
async def income_report(
    from_date: date = Query(...),
    to_date: date = Query(...),
    group_by: Literal["specialist", "service"] = Query("specialist"),
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db)
) -> List[IncomeRowResponse]:
    """Charges in the inclusive date range, grouped and sorted by total descending."""
    try:
        rows = LedgerService.income_report(db, caller, from_date, to_date, group_by)
        return [
            IncomeRowResponse(key=row.key, label=row.label, total=row.total, count=row.count)
            for row in rows
        ]
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to build income report: {e}")
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to build income report"
        )
