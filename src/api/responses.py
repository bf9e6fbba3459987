"""
Shared response models for API endpoints.

This module contains Pydantic response models that are shared across
multiple API endpoints to ensure consistency and reduce duplication.
"""

from datetime import datetime, time
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from models import Appointment, Service, SpecialistWorkingHours, Transaction


class AppointmentResponse(BaseModel):
    """Response model for an appointment."""
    id: int
    child_id: int
    specialist_id: int
    service_id: int
    start_time: datetime
    end_time: datetime
    status: str
    notes: Optional[str] = None
    is_recurring: bool
    recurrence_group_id: Optional[UUID] = None  # Shared by all occurrences of one series
    created_by: Optional[int] = None

    @classmethod
    def from_model(cls, appointment: Appointment) -> "AppointmentResponse":
        return cls(
            id=appointment.id,
            child_id=appointment.child_id,
            specialist_id=appointment.specialist_id,
            service_id=appointment.service_id,
            start_time=appointment.start_time,
            end_time=appointment.end_time,
            status=appointment.status,
            notes=appointment.notes,
            is_recurring=appointment.is_recurring,
            recurrence_group_id=appointment.recurrence_group_id,
            created_by=appointment.created_by
        )


class TransactionResponse(BaseModel):
    """Response model for a ledger entry."""
    id: int
    child_id: int
    appointment_id: Optional[int] = None  # None for payments and for charges of deleted appointments
    amount: Decimal
    type: str
    date: datetime
    description: Optional[str] = None
    created_by: Optional[int] = None

    @classmethod
    def from_model(cls, transaction: Transaction) -> "TransactionResponse":
        return cls(
            id=transaction.id,
            child_id=transaction.child_id,
            appointment_id=transaction.appointment_id,
            amount=transaction.amount,
            type=transaction.type,
            date=transaction.date,
            description=transaction.description,
            created_by=transaction.created_by
        )


class ServiceResponse(BaseModel):
    """Response model for a catalog service."""
    id: int
    name: str
    duration_min: int
    price: Decimal
    color: str

    @classmethod
    def from_model(cls, service: Service) -> "ServiceResponse":
        return cls(
            id=service.id,
            name=service.name,
            duration_min=service.duration_min,
            price=service.price,
            color=service.color
        )


class WorkingHoursResponse(BaseModel):
    """Response model for one weekday of a specialist's schedule."""
    specialist_id: int
    weekday: int  # 0=Sunday ... 6=Saturday
    start_time: time
    end_time: time

    @classmethod
    def from_model(cls, row: SpecialistWorkingHours) -> "WorkingHoursResponse":
        return cls(
            specialist_id=row.specialist_id,
            weekday=row.weekday,
            start_time=row.start_time,
            end_time=row.end_time
        )


class SuccessResponse(BaseModel):
    """Generic success response."""
    success: bool = True
    message: Optional[str] = None
