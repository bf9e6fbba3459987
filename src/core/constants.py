"""Application constants and configuration values."""

from core.config import FRONTEND_URL

# Database field lengths
MAX_STRING_LENGTH = 255
MAX_NOTES_LENGTH = 2000

# Database connection settings
DB_POOL_RECYCLE_SECONDS = 300  # 5 minutes

# CORS origins for development and production
_CORS_ORIGINS_RAW = [
    "http://localhost:3000",      # Next.js dev server
    FRONTEND_URL,
]

# Filter out None values and empty strings to avoid CORS errors
CORS_ORIGINS = [origin for origin in _CORS_ORIGINS_RAW if origin and origin.strip()]

# Profile roles
ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"
ROLE_THERAPIST = "therapist"
ROLE_PARENT = "parent"
ALL_ROLES = (ROLE_ADMIN, ROLE_MANAGER, ROLE_THERAPIST, ROLE_PARENT)
ELEVATED_ROLES = (ROLE_ADMIN, ROLE_MANAGER)

# Appointment statuses
STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_COMPLETED = "completed"
STATUS_NO_SHOW = "no_show"
STATUS_CANCELED = "canceled"
APPOINTMENT_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED, STATUS_COMPLETED, STATUS_NO_SHOW, STATUS_CANCELED)
INITIAL_APPOINTMENT_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED)

# Ledger
TRANSACTION_CHARGE = "charge"
TRANSACTION_PAYMENT = "payment"

PAYMENT_METHOD_LABELS = {
    "cash": "Cash",
    "card": "Card",
    "transfer": "Transfer",
}

# Service defaults
DEFAULT_SERVICE_DURATION_MINUTES = 30
DEFAULT_SERVICE_COLOR = "#2f6f5e"

# Constraint names shared between the models and the error mapping
CHILD_OVERLAP_CONSTRAINT = "appointments_no_overlap_child"
SPECIALIST_OVERLAP_CONSTRAINT = "appointments_no_overlap_specialist"
CHARGE_UNIQUE_CONSTRAINT = "uq_transactions_appointment_type"
