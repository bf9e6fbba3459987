# pyright: reportMissingTypeStubs=false
"""
Therapy Center Scheduling & Ledger API

A FastAPI application exposing the scheduling and billing engine of a
therapy center to its web UI.

Features:
- Appointment booking with database-enforced double-booking protection
- Weekly recurring series with partial-failure reporting
- Status lifecycle that charges completed appointments exactly once
- Child ledger: payments, balances and income reports
- PostgreSQL database with SQLAlchemy ORM
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import access, appointments, finance, schedule, services
from core.constants import CORS_ORIGINS

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("Starting Therapy Center Scheduling API")
    yield
    logger.info("Shutting down Therapy Center Scheduling API")


# Create FastAPI application
app = FastAPI(
    title="Therapy Center Scheduling",
    description="Scheduling and ledger engine for a children's therapy center",
    version="1.0.0",
    docs_url="/docs",  # Swagger UI
    redoc_url="/redoc",  # ReDoc
    lifespan=lifespan,
)

# CORS middleware for frontend integration
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

_ERROR_RESPONSES = {
    400: {"description": "Validation error"},
    401: {"description": "Unauthorized"},
    403: {"description": "Forbidden"},
    404: {"description": "Resource not found"},
    500: {"description": "Internal server error"},
}

# Include API routers
app.include_router(
    appointments.router,
    prefix="/api/appointments",
    tags=["appointments"],
    responses={**_ERROR_RESPONSES, 409: {"description": "Scheduling conflict"}},
)
app.include_router(
    services.router,
    prefix="/api/services",
    tags=["services"],
    responses={**_ERROR_RESPONSES, 409: {"description": "Conflict"}},
)
app.include_router(
    schedule.router,
    prefix="/api/specialists",
    tags=["schedule"],
    responses=_ERROR_RESPONSES,
)
app.include_router(
    finance.router,
    prefix="/api/finance",
    tags=["finance"],
    responses=_ERROR_RESPONSES,
)
app.include_router(
    access.router,
    prefix="/api/access",
    tags=["access"],
    responses=_ERROR_RESPONSES,
)


@app.get(
    "/",
    summary="Root endpoint",
    description="Returns basic API information",
)
async def root() -> dict[str, str]:
    """Get API information."""
    return {
        "message": "Therapy Center Scheduling API",
        "version": "1.0.0",
        "status": "running"
    }


@app.get(
    "/health",
    summary="Health check",
    description="Returns the health status of the API",
)
async def health_check() -> dict[str, str]:
    """Check if the API is healthy and responding."""
    return {"status": "healthy"}


# Global exception handlers
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions globally."""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": "internal_error"},
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Handle ValueError exceptions."""
    logger.warning(f"ValueError: {exc}")
    return JSONResponse(
        status_code=400,
        content={"detail": str(exc), "type": "validation_error"},
    )
