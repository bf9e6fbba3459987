"""
Application configuration using python-dotenv.

Settings come from environment variables. Outside of test runs a ``.env``
file at the repository root (or the current directory) is loaded first.
"""

import os
import pathlib

from dotenv import load_dotenv


def _running_under_pytest() -> bool:
    # No .env under pytest
    return "PYTEST_VERSION" in os.environ or "PYTEST_CURRENT_TEST" in os.environ


if not _running_under_pytest():
    for env_path in (
        pathlib.Path(__file__).resolve().parents[2] / ".env",
        pathlib.Path.cwd() / ".env",
    ):
        if env_path.exists():
            load_dotenv(env_path)
            break


# Database
DATABASE_URL = os.getenv("DATABASE_URL", "postgresql+psycopg2://localhost/therapy_center_dev")

# Web UI origin allowed by CORS
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# Bearer tokens are issued by the authentication layer; this service only verifies them
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
JWT_ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("JWT_ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

# Recurring series: stop after this many attempts or this much wall-clock time
RECURRENCE_MAX_OCCURRENCES = int(os.getenv("RECURRENCE_MAX_OCCURRENCES", "200"))
RECURRENCE_TIME_BUDGET_SECONDS = float(os.getenv("RECURRENCE_TIME_BUDGET_SECONDS", "30"))
