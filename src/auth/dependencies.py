# pyright: reportMissingTypeStubs=false
"""
Authentication dependencies for FastAPI.

Resolves the caller from a bearer JWT issued by the authentication layer.
The token's subject is a profile id; the role used for authorization is the
one stored on the profile.
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from auth.context import CallerContext
from core.database import get_db
from models import Profile
from services.jwt_service import jwt_service, TokenPayload

logger = logging.getLogger(__name__)


# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


def get_token_payload(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Optional[TokenPayload]:
    """Extract and validate JWT token payload."""
    if not credentials:
        return None
    return jwt_service.verify_token(credentials.credentials)


def get_caller(
    payload: Optional[TokenPayload] = Depends(get_token_payload),
    db: Session = Depends(get_db)
) -> CallerContext:
    """Get the caller context for the request."""
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication credentials not provided"
        )

    try:
        profile_id = payload.user_id
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token subject"
        )

    profile = db.get(Profile, profile_id)
    if not profile:
        logger.warning(f"Token for unknown profile {profile_id}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found"
        )

    if profile.role != payload.role:
        logger.info(f"Role in token for profile {profile_id} is stale ({payload.role} -> {profile.role})")

    return CallerContext(user_id=profile.id, role=profile.role)
