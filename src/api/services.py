# pyright: reportMissingTypeStubs=false
"""
Service catalog API endpoints.
"""

import logging
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi import status as http_status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.responses import ServiceResponse, SuccessResponse
from auth.context import CallerContext
from auth.dependencies import get_caller
from core.constants import DEFAULT_SERVICE_COLOR, DEFAULT_SERVICE_DURATION_MINUTES
from core.database import get_db
from services import ServiceCatalogService

logger = logging.getLogger(__name__)

router = APIRouter()


class ServiceCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    price: Decimal = Field(..., ge=0)
    duration_min: int = Field(DEFAULT_SERVICE_DURATION_MINUTES, gt=0)
    color: str = DEFAULT_SERVICE_COLOR


class ServiceUpdateRequest(BaseModel):
    """Omitted fields are kept."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    price: Optional[Decimal] = Field(None, ge=0)
    duration_min: Optional[int] = Field(None, gt=0)
    color: Optional[str] = None


@router.get("", summary="List services")
async def list_services(
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db)
) -> List[ServiceResponse]:
    try:
        return [ServiceResponse.from_model(s) for s in ServiceCatalogService.list_services(db)]
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to list services: {e}")
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list services"
        )


@router.post("", summary="Create a service", status_code=http_status.HTTP_201_CREATED)
async def create_service(
    request: ServiceCreateRequest,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db)
) -> ServiceResponse:
    try:
        service = ServiceCatalogService.create_service(
            db, caller,
            name=request.name,
            price=request.price,
            duration_min=request.duration_min,
            color=request.color
        )
        return ServiceResponse.from_model(service)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to create service: {e}")
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create service"
        )


@router.put("/{service_id}", summary="Update a service")
async def update_service(
    service_id: int,
    request: ServiceUpdateRequest,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db)
) -> ServiceResponse:
    """Update a service. A new price applies to appointments completed from now on."""
    try:
        service = ServiceCatalogService.update_service(
            db, caller, service_id,
            name=request.name,
            price=request.price,
            duration_min=request.duration_min,
            color=request.color
        )
        return ServiceResponse.from_model(service)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to update service {service_id}: {e}")
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update service"
        )


@router.delete("/{service_id}", summary="Delete a service")
async def delete_service(
    service_id: int,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db)
) -> SuccessResponse:
    try:
        ServiceCatalogService.delete_service(db, caller, service_id)
        return SuccessResponse(message="Service deleted")
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to delete service {service_id}: {e}")
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete service"
        )
