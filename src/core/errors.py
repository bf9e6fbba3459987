"""
Typed errors raised by the scheduling and ledger services.

All errors derive from FastAPI's HTTPException so services can raise them
directly and routers propagate them unchanged. Each carries a structured
``detail`` dict with a machine-readable ``error`` code and a ``message``.
"""

from datetime import datetime
from typing import Any, Optional

from fastapi import HTTPException, status


class EngineError(HTTPException):
    """Base class for recoverable scheduling/ledger errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    error_code: str = "error"

    def __init__(self, message: str, **extra: Any):
        detail = {"error": self.error_code, "message": message}
        detail.update(extra)
        super().__init__(status_code=self.status_code, detail=detail)
        self.message = message
        self.extra = extra

    def __str__(self) -> str:
        return self.message


class ValidationError(EngineError):
    """Malformed input. Raised before any write."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "validation_error"


class ForbiddenError(EngineError):
    """A capability predicate denied the caller. Raised before any write."""

    status_code = status.HTTP_403_FORBIDDEN
    error_code = "forbidden"


class NotFoundError(EngineError):
    """A referenced record does not exist (or is not visible to the caller)."""

    status_code = status.HTTP_404_NOT_FOUND
    error_code = "not_found"


class ConflictError(EngineError):
    """The store rejected a write because an invariant would be violated."""

    status_code = status.HTTP_409_CONFLICT
    error_code = "conflict"

    def __init__(
        self,
        message: str,
        conflict_type: str = "constraint",
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        conflicting_appointment_id: Optional[int] = None,
        **extra: Any
    ):
        self.conflict_type = conflict_type
        self.start_time = start_time
        self.end_time = end_time
        self.conflicting_appointment_id = conflicting_appointment_id
        super().__init__(
            message,
            conflict_type=conflict_type,
            start_time=start_time.isoformat() if start_time else None,
            end_time=end_time.isoformat() if end_time else None,
            conflicting_appointment_id=conflicting_appointment_id,
            **extra
        )
