"""
Property-based tests for the store-level overlap rules.

Random sequences of bookings (some later canceled) are run against a fresh
database and compared with a simple interval model: a booking must succeed
exactly when it does not overlap an active booking of the same child or the
same specialist. Uses Hypothesis for property-based testing.
"""

from datetime import datetime, timedelta, timezone

from hypothesis import HealthCheck, given, settings, strategies as st
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from core.constants import ROLE_ADMIN, ROLE_THERAPIST
from core.database import create_tables
from core.errors import ConflictError
from models import Appointment
from services import AppointmentService, transition_status

from tests.conftest import caller_for, create_child, create_profile, create_service, make_test_engine

UTC = timezone.utc
DAY_START = datetime(2025, 3, 3, 9, 0, tzinfo=UTC)
SLOT = timedelta(minutes=15)

booking = st.tuples(
    st.integers(min_value=0, max_value=1),   # child
    st.integers(min_value=0, max_value=1),   # specialist
    st.integers(min_value=0, max_value=16),  # start slot
    st.integers(min_value=1, max_value=4),   # length in slots
    st.booleans(),                           # cancel after booking
)


def overlaps(a_start, a_end, b_start, b_end):
    return a_start < b_end and b_start < a_end


@settings(max_examples=25, deadline=None, suppress_health_check=[HealthCheck.too_slow])
@given(st.lists(booking, min_size=1, max_size=12))
def test_store_matches_interval_model(bookings):
    engine = make_test_engine("sqlite://")
    create_tables(engine)
    db = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    try:
        admin = caller_for(create_profile(db, ROLE_ADMIN))
        children = [create_child(db, "Anna"), create_child(db, "Boris")]
        specialists = [create_profile(db, ROLE_THERAPIST), create_profile(db, ROLE_THERAPIST)]
        service = create_service(db)

        active = []  # (child index, specialist index, start, end)
        for child_idx, specialist_idx, start_slot, length, cancel in bookings:
            start = DAY_START + start_slot * SLOT
            end = start + length * SLOT
            expected_ok = not any(
                (c == child_idx or s == specialist_idx) and overlaps(start, end, a_start, a_end)
                for c, s, a_start, a_end in active
            )

            try:
                appointment = AppointmentService.create_appointment(
                    db, admin,
                    child_id=children[child_idx].id,
                    specialist_id=specialists[specialist_idx].id,
                    service_id=service.id,
                    start_time=start,
                    end_time=end
                )
            except ConflictError as e:
                assert not expected_ok, f"rejected a free slot {start} - {end}"
                assert e.conflict_type in ("child_overlap", "specialist_overlap")
                continue

            assert expected_ok, f"accepted an overlapping slot {start} - {end}"
            if cancel:
                transition_status(db, admin, appointment.id, "canceled")
            else:
                active.append((child_idx, specialist_idx, start, end))

        stored = db.execute(
            select(Appointment).where(Appointment.status != "canceled")
        ).scalars().all()
        assert len(stored) == len(active)
        for i, a in enumerate(stored):
            for b in stored[i + 1:]:
                if a.child_id == b.child_id or a.specialist_id == b.specialist_id:
                    assert not overlaps(a.start_time, a.end_time, b.start_time, b.end_time)
    finally:
        db.close()
        engine.dispose()
