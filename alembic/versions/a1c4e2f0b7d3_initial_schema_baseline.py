"""initial_schema_baseline

Revision ID: a1c4e2f0b7d3
Revises: 
Create Date: 2025-12-17 14:10:00.000000

Creates the scheduling and ledger schema from the current model definitions.
The appointment overlap rules (PostgreSQL exclusion constraints with
btree_gist, or SQLite triggers) are attached to the appointments table
metadata, so create_all emits them together with the table.
"""
from typing import Sequence, Union
import sys
import os

# Add src directory to path to import models
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..', 'src'))

from alembic import op

# Import all models to ensure they're registered with Base.metadata
from core.database import Base
import models  # noqa: F401


# revision identifiers, used by Alembic.
revision: str = 'a1c4e2f0b7d3'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """
    Create all tables, indexes and constraints defined by the models:
    profiles, children, therapist_children, services,
    specialist_working_hours, appointments and transactions.
    """
    Base.metadata.create_all(bind=op.get_bind())


def downgrade() -> None:
    """Drop all tables created by the baseline migration."""
    Base.metadata.drop_all(bind=op.get_bind())
