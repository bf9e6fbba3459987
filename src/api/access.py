# pyright: reportMissingTypeStubs=false
"""
Access check endpoint.

Lets the UI hide actions the caller cannot perform. Every write endpoint
still checks the same predicates on its own.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi import status as http_status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from auth.context import CallerContext
from auth.dependencies import get_caller
from auth.permissions import SqlChildAccessDirectory, can_read_child, can_write_child
from core.database import get_db

logger = logging.getLogger(__name__)

router = APIRouter()


class ChildAccessResponse(BaseModel):
    child_id: int
    can_read: bool
    can_write: bool


@router.get("/children/{child_id}", summary="Check the caller's access to a child")
async def get_child_access(
    child_id: int,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db)
) -> ChildAccessResponse:
    try:
        directory = SqlChildAccessDirectory(db)
        return ChildAccessResponse(
            child_id=child_id,
            can_read=can_read_child(caller, child_id, directory),
            can_write=can_write_child(caller, child_id, directory)
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to check access to child {child_id}: {e}")
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to check access"
        )
