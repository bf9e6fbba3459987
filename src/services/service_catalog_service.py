"""
Service catalog management.

Services carry the default duration and the price billed on completion.
Reads are open to every caller; writes need an admin or manager.
"""

import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from auth.context import CallerContext
from auth.permissions import require_elevated
from core.constants import DEFAULT_SERVICE_COLOR, DEFAULT_SERVICE_DURATION_MINUTES, MAX_STRING_LENGTH
from core.errors import ConflictError, NotFoundError, ValidationError
from models import Appointment, Service

logger = logging.getLogger(__name__)


def _validate_service_fields(
    name: Optional[str] = None,
    duration_min: Optional[int] = None,
    price: Optional[Decimal] = None
) -> None:
    if name is not None and (not name.strip() or len(name) > MAX_STRING_LENGTH):
        raise ValidationError("Service name must be between 1 and 255 characters")
    if duration_min is not None and duration_min <= 0:
        raise ValidationError("Service duration must be greater than zero", duration_min=duration_min)
    if price is not None and Decimal(str(price)) < 0:
        raise ValidationError("Service price must not be negative", price=str(price))


class ServiceCatalogService:
    """Service class for the service catalog."""

    @staticmethod
    def list_services(db: Session) -> List[Service]:
        return list(db.execute(select(Service).order_by(Service.name)).scalars().all())

    @staticmethod
    def get_service(db: Session, service_id: int) -> Service:
        service = db.get(Service, service_id)
        if service is None:
            raise NotFoundError("Service not found", service_id=service_id)
        return service

    @staticmethod
    def create_service(
        db: Session,
        caller: CallerContext,
        name: str,
        price: Decimal,
        duration_min: int = DEFAULT_SERVICE_DURATION_MINUTES,
        color: str = DEFAULT_SERVICE_COLOR
    ) -> Service:
        """
        Add a service to the catalog.

        Raises:
            ForbiddenError: If the caller is not an admin or manager
            ValidationError: If name, duration or price is invalid
            ConflictError: If a service with the same name exists
        """
        require_elevated(caller, "manage services")
        _validate_service_fields(name, duration_min, price)

        service = Service(name=name.strip(), price=price, duration_min=duration_min, color=color)
        db.add(service)
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"Service create rejected: {e.orig}")
            raise ConflictError(f"A service named '{name}' already exists", conflict_type="duplicate_name")
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception(f"Failed to create service '{name}': {e}")
            raise

        logger.info(f"Created service {service.id} '{service.name}' by {caller}")
        return service

    @staticmethod
    def update_service(
        db: Session,
        caller: CallerContext,
        service_id: int,
        name: Optional[str] = None,
        price: Optional[Decimal] = None,
        duration_min: Optional[int] = None,
        color: Optional[str] = None
    ) -> Service:
        """
        Update a service. A new price applies to every appointment completed afterwards.
        """
        require_elevated(caller, "manage services")
        _validate_service_fields(name, duration_min, price)
        service = ServiceCatalogService.get_service(db, service_id)

        if name is not None:
            service.name = name.strip()
        if price is not None:
            service.price = price
        if duration_min is not None:
            service.duration_min = duration_min
        if color is not None:
            service.color = color

        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"Service update rejected: {e.orig}")
            raise ConflictError(f"A service named '{name}' already exists", conflict_type="duplicate_name")
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception(f"Failed to update service {service_id}: {e}")
            raise

        logger.info(f"Updated service {service_id} by {caller}")
        return service

    @staticmethod
    def delete_service(db: Session, caller: CallerContext, service_id: int) -> None:
        """
        Delete a service that no appointment references.

        Raises:
            ConflictError: If any appointment (of any status) uses the service
        """
        require_elevated(caller, "manage services")
        service = ServiceCatalogService.get_service(db, service_id)

        in_use = db.execute(
            select(Appointment.id).where(Appointment.service_id == service_id).limit(1)
        ).first() is not None
        if in_use:
            raise ConflictError(
                "This service is used by existing appointments and cannot be deleted",
                conflict_type="service_in_use",
                service_id=service_id
            )

        try:
            db.delete(service)
            db.commit()
        except IntegrityError as e:
            # Restrict FK on appointments.service_id, raced with a new booking
            db.rollback()
            logger.warning(f"Service delete rejected: {e.orig}")
            raise ConflictError(
                "This service is used by existing appointments and cannot be deleted",
                conflict_type="service_in_use",
                service_id=service_id
            )
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception(f"Failed to delete service {service_id}: {e}")
            raise

        logger.info(f"Deleted service {service_id} by {caller}")
