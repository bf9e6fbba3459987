"""
Test configuration and shared fixtures for the scheduling engine test suite.

Uses in-memory SQLite by default (set TEST_DATABASE_URL to run against
PostgreSQL). The schema is created from the models before each test and
dropped afterwards, so every test starts from an empty database and
application code is free to commit.
"""

import os
from datetime import datetime
from decimal import Decimal
from typing import Generator, Optional

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from auth.context import CallerContext
from core.constants import ROLE_ADMIN, ROLE_MANAGER, ROLE_THERAPIST, ROLE_PARENT
from core.database import build_engine, create_tables, drop_tables
from models import Appointment, Child, Profile, Service, TherapistChildAssignment


# Test database URL
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite://")


def is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def make_test_engine(url: str) -> Engine:
    """
    Create an engine for tests.

    In-memory SQLite shares one connection (StaticPool) so every session sees
    the same database; file-based SQLite waits on the write lock instead of
    failing with "database is locked".
    """
    if url == "sqlite://":
        return build_engine(url, poolclass=StaticPool, connect_args={"check_same_thread": False})
    if is_sqlite(url):
        return build_engine(url, connect_args={"check_same_thread": False, "timeout": 30})
    return build_engine(url)


@pytest.fixture(scope="session")
def db_engine() -> Generator[Engine, None, None]:
    """Create a database engine for the test session."""
    engine = make_test_engine(TEST_DATABASE_URL)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine) -> Generator[sessionmaker, None, None]:
    """Create the schema for one test and drop it afterwards."""
    drop_tables(db_engine)
    create_tables(db_engine)
    yield sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)
    drop_tables(db_engine)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    """Provide a database session on a freshly created schema."""
    session = session_factory()
    yield session
    session.close()


# ===== Helper functions for creating test data =====

_email_counter = {"value": 0}


def create_profile(
    db_session: Session,
    role: str,
    full_name: Optional[str] = None,
    email: Optional[str] = None
) -> Profile:
    """Create a profile with a unique email."""
    _email_counter["value"] += 1
    profile = Profile(
        email=email or f"{role}{_email_counter['value']}@example.com",
        full_name=full_name or f"Test {role.title()} {_email_counter['value']}",
        role=role
    )
    db_session.add(profile)
    db_session.commit()
    return profile


def create_child(db_session: Session, name: str = "Anna", guardian: Optional[Profile] = None) -> Child:
    child = Child(name=name, guardian_id=guardian.id if guardian else None)
    db_session.add(child)
    db_session.commit()
    return child


def assign_therapist(
    db_session: Session,
    therapist: Profile,
    child: Child,
    is_active: bool = True
) -> TherapistChildAssignment:
    assignment = TherapistChildAssignment(
        therapist_id=therapist.id,
        child_id=child.id,
        is_active=is_active
    )
    db_session.add(assignment)
    db_session.commit()
    return assignment


def create_service(
    db_session: Session,
    name: str = "Speech therapy",
    price: Decimal = Decimal("300.00"),
    duration_min: int = 30
) -> Service:
    service = Service(name=name, price=price, duration_min=duration_min)
    db_session.add(service)
    db_session.commit()
    return service


def caller_for(profile: Profile) -> CallerContext:
    """Build the caller context for a profile."""
    return CallerContext(user_id=profile.id, role=profile.role)


def insert_appointment(
    db_session: Session,
    child: Child,
    specialist: Profile,
    service: Service,
    start_time: datetime,
    end_time: datetime,
    status: str = "pending"
) -> Appointment:
    """Insert an appointment directly, bypassing the service layer."""
    appointment = Appointment(
        child_id=child.id,
        specialist_id=specialist.id,
        service_id=service.id,
        start_time=start_time,
        end_time=end_time,
        status=status
    )
    db_session.add(appointment)
    db_session.commit()
    return appointment


class Center:
    """A small center: one admin, a manager, two therapists, a parent and their child."""

    def __init__(self, db_session: Session):
        self.admin = create_profile(db_session, ROLE_ADMIN, "Olga Admin")
        self.manager = create_profile(db_session, ROLE_MANAGER, "Mila Manager")
        self.therapist = create_profile(db_session, ROLE_THERAPIST, "Irina Therapist")
        self.other_therapist = create_profile(db_session, ROLE_THERAPIST, "Pavel Therapist")
        self.parent = create_profile(db_session, ROLE_PARENT, "Elena Parent")
        self.child = create_child(db_session, "Anna", guardian=self.parent)
        self.other_child = create_child(db_session, "Boris")
        self.service = create_service(db_session)
        assign_therapist(db_session, self.therapist, self.child)

    @property
    def admin_caller(self) -> CallerContext:
        return caller_for(self.admin)

    @property
    def manager_caller(self) -> CallerContext:
        return caller_for(self.manager)

    @property
    def therapist_caller(self) -> CallerContext:
        return caller_for(self.therapist)

    @property
    def other_therapist_caller(self) -> CallerContext:
        return caller_for(self.other_therapist)

    @property
    def parent_caller(self) -> CallerContext:
        return caller_for(self.parent)


@pytest.fixture
def center(db_session) -> "Center":
    """Seed a small center and return handles to its records."""
    return Center(db_session)
