"""
Integration tests for the appointment store.

Covers booking validation, capability checks, the store-enforced overlap
rules for children and specialists, patches and deletes.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from models import Appointment, Transaction
from services import AppointmentService, transition_status

from tests.conftest import caller_for, create_profile, create_service, insert_appointment

UTC = timezone.utc
START = datetime(2025, 1, 7, 10, 0, tzinfo=UTC)  # Tuesday
PLUS_THREE = timezone(timedelta(hours=3))


def book(db_session, center, caller=None, child=None, specialist=None, start=START, end=None, **kwargs):
    return AppointmentService.create_appointment(
        db_session,
        caller or center.admin_caller,
        child_id=(child or center.child).id,
        specialist_id=(specialist or center.therapist).id,
        service_id=center.service.id,
        start_time=start,
        end_time=end,
        **kwargs
    )


class TestCreateAppointment:
    def test_books_with_service_duration(self, db_session, center):
        appointment = book(db_session, center)

        assert appointment.id is not None
        assert appointment.start_time == START
        assert appointment.end_time == START + timedelta(minutes=30)
        assert appointment.status == "pending"
        assert appointment.created_by == center.admin.id
        assert not appointment.is_recurring
        assert appointment.recurrence_group_id is None

    def test_explicit_end_and_confirmed_status(self, db_session, center):
        appointment = book(
            db_session, center, end=START + timedelta(minutes=45), status="confirmed", notes="First visit"
        )

        assert appointment.duration_minutes == 45
        assert appointment.status == "confirmed"
        assert appointment.notes == "First visit"

    def test_assigned_therapist_can_book(self, db_session, center):
        appointment = book(db_session, center, caller=center.therapist_caller)
        assert appointment.created_by == center.therapist.id

    @pytest.mark.parametrize("caller_name", ["parent_caller", "other_therapist_caller"])
    def test_callers_without_write_access_are_rejected(self, db_session, center, caller_name):
        with pytest.raises(ForbiddenError):
            book(db_session, center, caller=getattr(center, caller_name))

        assert db_session.execute(select(Appointment)).scalars().all() == []

    def test_end_before_start_rejected(self, db_session, center):
        with pytest.raises(ValidationError):
            book(db_session, center, end=START)

    @pytest.mark.parametrize("status", ["completed", "no_show", "canceled", "archived"])
    def test_initial_status_must_be_pending_or_confirmed(self, db_session, center, status):
        with pytest.raises(ValidationError):
            book(db_session, center, status=status)

    def test_notes_too_long(self, db_session, center):
        with pytest.raises(ValidationError):
            book(db_session, center, notes="x" * 2001)

    def test_unknown_references(self, db_session, center):
        with pytest.raises(NotFoundError):
            AppointmentService.create_appointment(
                db_session, center.admin_caller, center.child.id, center.therapist.id, 9999, START
            )
        with pytest.raises(NotFoundError):
            AppointmentService.create_appointment(
                db_session, center.admin_caller, 9999, center.therapist.id, center.service.id, START
            )
        with pytest.raises(NotFoundError):
            AppointmentService.create_appointment(
                db_session, center.admin_caller, center.child.id, 9999, center.service.id, START
            )

    def test_parent_cannot_be_specialist(self, db_session, center):
        with pytest.raises(ValidationError):
            book(db_session, center, specialist=center.parent)


class TestOverlapRules:
    def test_child_overlap_rejected(self, db_session, center):
        first = book(db_session, center)

        with pytest.raises(ConflictError) as exc_info:
            book(db_session, center, specialist=center.other_therapist, start=START + timedelta(minutes=15))

        error = exc_info.value
        assert error.status_code == 409
        assert error.conflict_type == "child_overlap"
        assert error.conflicting_appointment_id == first.id
        assert error.start_time == START + timedelta(minutes=15)
        assert len(db_session.execute(select(Appointment)).scalars().all()) == 1

    def test_specialist_overlap_rejected(self, db_session, center):
        first = book(db_session, center)

        with pytest.raises(ConflictError) as exc_info:
            book(db_session, center, child=center.other_child, start=START + timedelta(minutes=10))

        assert exc_info.value.conflict_type == "specialist_overlap"
        assert exc_info.value.conflicting_appointment_id == first.id

    def test_adjacent_intervals_allowed(self, db_session, center):
        book(db_session, center)
        second = book(db_session, center, start=START + timedelta(minutes=30))
        earlier = book(db_session, center, start=START - timedelta(minutes=30))

        assert second.start_time == START + timedelta(minutes=30)
        assert earlier.end_time == START

    def test_containing_interval_rejected(self, db_session, center):
        book(db_session, center, start=START + timedelta(minutes=10), end=START + timedelta(minutes=20))

        with pytest.raises(ConflictError):
            book(db_session, center, start=START, end=START + timedelta(hours=1))

    def test_different_child_and_specialist_may_overlap(self, db_session, center):
        book(db_session, center)
        parallel = book(db_session, center, child=center.other_child, specialist=center.other_therapist)
        assert parallel.start_time == START

    def test_canceled_appointment_frees_the_slot(self, db_session, center):
        first = book(db_session, center)
        transition_status(db_session, center.admin_caller, first.id, "canceled")

        rebooked = book(db_session, center)

        assert rebooked.id != first.id
        assert db_session.get(Appointment, first.id).status == "canceled"

    def test_conflicting_row_can_be_canceled_then_reused(self, db_session, center):
        first = book(db_session, center)
        with pytest.raises(ConflictError):
            book(db_session, center)

        transition_status(db_session, center.manager_caller, first.id, "canceled")
        book(db_session, center)

    def test_overlap_check_covers_rows_inserted_directly(self, db_session, center):
        insert_appointment(
            db_session, center.other_child, center.therapist, center.service,
            START, START + timedelta(minutes=30), status="confirmed"
        )
        with pytest.raises(ConflictError) as exc_info:
            book(db_session, center)
        assert exc_info.value.conflict_type == "specialist_overlap"

    def test_same_instant_in_another_offset_conflicts(self, db_session, center):
        first = book(db_session, center)

        with pytest.raises(ConflictError) as exc_info:
            book(
                db_session, center, child=center.other_child,
                start=datetime(2025, 1, 7, 13, 0, tzinfo=PLUS_THREE)
            )

        assert exc_info.value.conflict_type == "specialist_overlap"
        assert exc_info.value.conflicting_appointment_id == first.id
        assert exc_info.value.start_time == START
        assert len(db_session.execute(select(Appointment)).scalars().all()) == 1

    def test_naive_times_are_taken_as_utc(self, db_session, center):
        book(db_session, center, start=datetime(2025, 1, 7, 10, 0))

        with pytest.raises(ConflictError):
            book(
                db_session, center, child=center.other_child,
                start=datetime(2025, 1, 7, 13, 15, tzinfo=PLUS_THREE)
            )

    def test_offset_times_are_stored_in_utc(self, db_session, center):
        appointment = book(db_session, center, start=datetime(2025, 1, 7, 13, 0, tzinfo=PLUS_THREE))
        db_session.expire_all()

        reloaded = db_session.get(Appointment, appointment.id)
        assert reloaded.start_time == START
        assert reloaded.start_time.utcoffset() == timedelta(0)
        assert reloaded.end_time == START + timedelta(minutes=30)


class TestUpdateAppointment:
    def test_move_only_start_keeps_duration(self, db_session, center):
        appointment = book(db_session, center, end=START + timedelta(minutes=45))

        moved = AppointmentService.update_appointment(
            db_session, center.manager_caller, appointment.id,
            start_time=datetime(2025, 1, 8, 12, 0, tzinfo=UTC)
        )

        assert moved.start_time == datetime(2025, 1, 8, 12, 0, tzinfo=UTC)
        assert moved.end_time == datetime(2025, 1, 8, 12, 45, tzinfo=UTC)

    def test_resize(self, db_session, center):
        appointment = book(db_session, center)

        resized = AppointmentService.update_appointment(
            db_session, center.admin_caller, appointment.id, end_time=START + timedelta(hours=1)
        )

        assert resized.start_time == START
        assert resized.end_time == START + timedelta(hours=1)

    def test_move_into_conflict_rolls_back(self, db_session, center):
        first = book(db_session, center)
        second = book(db_session, center, start=START + timedelta(hours=1))

        with pytest.raises(ConflictError) as exc_info:
            AppointmentService.update_appointment(
                db_session, center.admin_caller, second.id,
                start_time=START + timedelta(minutes=15),
                notes="moved"
            )

        assert exc_info.value.conflicting_appointment_id == first.id
        reloaded = db_session.get(Appointment, second.id)
        assert reloaded.start_time == START + timedelta(hours=1)
        assert reloaded.notes is None

    def test_moving_within_own_slot_is_not_a_self_conflict(self, db_session, center):
        appointment = book(db_session, center, end=START + timedelta(hours=1))

        moved = AppointmentService.update_appointment(
            db_session, center.admin_caller, appointment.id, start_time=START + timedelta(minutes=15)
        )

        assert moved.end_time == START + timedelta(minutes=75)

    def test_reassign_specialist_checks_new_specialist(self, db_session, center):
        book(db_session, center, child=center.other_child, specialist=center.other_therapist)
        appointment = book(db_session, center)

        with pytest.raises(ConflictError) as exc_info:
            AppointmentService.update_appointment(
                db_session, center.admin_caller, appointment.id, specialist_id=center.other_therapist.id
            )
        assert exc_info.value.conflict_type == "specialist_overlap"

    def test_therapist_can_change_notes_and_status(self, db_session, center):
        appointment = book(db_session, center)

        updated = AppointmentService.update_appointment(
            db_session, center.therapist_caller, appointment.id, status="confirmed", notes="Bring picture cards"
        )

        assert updated.status == "confirmed"
        assert updated.notes == "Bring picture cards"

    def test_notes_can_be_cleared(self, db_session, center):
        appointment = book(db_session, center, notes="Old note")

        updated = AppointmentService.update_appointment(db_session, center.admin_caller, appointment.id, notes=None)

        assert updated.notes is None

    def test_omitted_notes_are_kept(self, db_session, center):
        appointment = book(db_session, center, notes="Keep me")

        updated = AppointmentService.update_appointment(
            db_session, center.admin_caller, appointment.id, status="confirmed"
        )

        assert updated.notes == "Keep me"

    def test_therapist_cannot_reschedule(self, db_session, center):
        appointment = book(db_session, center)

        with pytest.raises(ForbiddenError):
            AppointmentService.update_appointment(
                db_session, center.therapist_caller, appointment.id, start_time=START + timedelta(days=1)
            )

        assert db_session.get(Appointment, appointment.id).start_time == START

    def test_covering_specialist_can_change_status(self, db_session, center):
        # therapist is not assigned to other_child but runs this session
        appointment = book(db_session, center, child=center.other_child)

        updated = AppointmentService.update_appointment(
            db_session, center.therapist_caller, appointment.id, status="confirmed"
        )

        assert updated.status == "confirmed"

    @pytest.mark.parametrize("caller_name", ["parent_caller", "other_therapist_caller"])
    def test_callers_without_access_cannot_patch(self, db_session, center, caller_name):
        appointment = book(db_session, center)

        with pytest.raises(ForbiddenError):
            AppointmentService.update_appointment(
                db_session, getattr(center, caller_name), appointment.id, notes="hello"
            )

    def test_invalid_status_edge_rolls_back_the_whole_patch(self, db_session, center):
        appointment = book(db_session, center)

        with pytest.raises(ValidationError):
            AppointmentService.update_appointment(
                db_session, center.admin_caller, appointment.id,
                start_time=START + timedelta(hours=2), status="completed"
            )

        reloaded = db_session.get(Appointment, appointment.id)
        assert reloaded.start_time == START
        assert reloaded.status == "pending"

    def test_end_before_start_rejected(self, db_session, center):
        appointment = book(db_session, center)
        with pytest.raises(ValidationError):
            AppointmentService.update_appointment(
                db_session, center.admin_caller, appointment.id, end_time=START - timedelta(minutes=5)
            )

    def test_unknown_appointment(self, db_session, center):
        with pytest.raises(NotFoundError):
            AppointmentService.update_appointment(db_session, center.admin_caller, 9999, notes="x")

    def test_unknown_new_service(self, db_session, center):
        appointment = book(db_session, center)
        with pytest.raises(NotFoundError):
            AppointmentService.update_appointment(db_session, center.admin_caller, appointment.id, service_id=9999)

    def test_change_service(self, db_session, center):
        appointment = book(db_session, center)
        music = create_service(db_session, name="Music therapy", duration_min=60)

        updated = AppointmentService.update_appointment(
            db_session, center.admin_caller, appointment.id, service_id=music.id
        )

        assert updated.service_id == music.id
        assert updated.end_time == START + timedelta(minutes=30)

    def test_move_with_offset_into_conflict(self, db_session, center):
        first = book(db_session, center)
        second = book(db_session, center, start=START + timedelta(hours=2))

        with pytest.raises(ConflictError) as exc_info:
            AppointmentService.update_appointment(
                db_session, center.admin_caller, second.id,
                start_time=datetime(2025, 1, 7, 13, 15, tzinfo=PLUS_THREE)
            )

        assert exc_info.value.conflicting_appointment_id == first.id

    def test_move_and_cancel_in_one_patch(self, db_session, center):
        first = book(db_session, center)
        second = book(db_session, center, start=START + timedelta(hours=1))

        updated = AppointmentService.update_appointment(
            db_session, center.admin_caller, second.id, start_time=START, status="canceled"
        )

        assert updated.status == "canceled"
        assert updated.start_time == START
        assert db_session.get(Appointment, first.id).status == "pending"

    def test_therapist_full_object_patch_completes(self, db_session, center):
        appointment = book(db_session, center, status="confirmed", notes="Bring picture cards")

        updated = AppointmentService.update_appointment(
            db_session, center.therapist_caller, appointment.id,
            start_time=appointment.start_time,
            end_time=appointment.end_time,
            child_id=appointment.child_id,
            specialist_id=appointment.specialist_id,
            service_id=appointment.service_id,
            status="completed",
            notes="Bring picture cards"
        )

        assert updated.status == "completed"
        charge = db_session.execute(select(Transaction)).scalar_one()
        assert charge.appointment_id == appointment.id

    def test_unchanged_time_in_another_offset_is_not_a_reschedule(self, db_session, center):
        appointment = book(db_session, center)

        updated = AppointmentService.update_appointment(
            db_session, center.therapist_caller, appointment.id,
            start_time=datetime(2025, 1, 7, 13, 0, tzinfo=PLUS_THREE),
            status="confirmed"
        )

        assert updated.status == "confirmed"
        assert updated.start_time == START

    def test_therapist_full_object_patch_with_new_time_is_rejected(self, db_session, center):
        appointment = book(db_session, center)

        with pytest.raises(ForbiddenError):
            AppointmentService.update_appointment(
                db_session, center.therapist_caller, appointment.id,
                start_time=appointment.start_time + timedelta(hours=1),
                child_id=appointment.child_id,
                specialist_id=appointment.specialist_id,
                status="confirmed"
            )


class TestDeleteAppointment:
    def test_elevated_delete(self, db_session, center):
        appointment = book(db_session, center)

        AppointmentService.delete_appointment(db_session, center.manager_caller, appointment.id)

        assert db_session.get(Appointment, appointment.id) is None

    def test_therapist_cannot_delete(self, db_session, center):
        appointment = book(db_session, center, caller=center.therapist_caller)

        with pytest.raises(ForbiddenError):
            AppointmentService.delete_appointment(db_session, center.therapist_caller, appointment.id)

    def test_unknown_appointment(self, db_session, center):
        with pytest.raises(NotFoundError):
            AppointmentService.delete_appointment(db_session, center.admin_caller, 9999)

    def test_charge_survives_deletion(self, db_session, center):
        appointment = book(db_session, center, status="confirmed")
        transition_status(db_session, center.admin_caller, appointment.id, "completed")

        AppointmentService.delete_appointment(db_session, center.admin_caller, appointment.id)

        charge = db_session.execute(select(Transaction)).scalar_one()
        assert charge.type == "charge"
        assert charge.appointment_id is None
        assert charge.child_id == center.child.id

    def test_deleted_slot_can_be_rebooked(self, db_session, center):
        appointment = book(db_session, center)
        AppointmentService.delete_appointment(db_session, center.admin_caller, appointment.id)
        book(db_session, center)


class TestVisibility:
    @pytest.fixture
    def schedule(self, db_session, center):
        own = book(db_session, center)
        other = book(db_session, center, child=center.other_child, specialist=center.other_therapist)
        canceled = book(db_session, center, start=START + timedelta(hours=2))
        transition_status(db_session, center.admin_caller, canceled.id, "canceled")
        return own, other, canceled

    def list_day(self, db_session, caller, **kwargs):
        return AppointmentService.list_appointments(
            db_session, caller, datetime(2025, 1, 7, tzinfo=UTC), datetime(2025, 1, 8, tzinfo=UTC), **kwargs
        )

    def test_admin_sees_all_active(self, db_session, center, schedule):
        own, other, _ = schedule
        assert [a.id for a in self.list_day(db_session, center.admin_caller)] == sorted([own.id, other.id])

    def test_include_canceled(self, db_session, center, schedule):
        assert len(self.list_day(db_session, center.admin_caller, include_canceled=True)) == 3

    def test_parent_sees_own_child_only(self, db_session, center, schedule):
        own, _, _ = schedule
        assert [a.id for a in self.list_day(db_session, center.parent_caller)] == [own.id]

    def test_therapist_sees_assigned_child_and_own_sessions(self, db_session, center, schedule):
        own, other, _ = schedule
        assert [a.id for a in self.list_day(db_session, center.therapist_caller)] == [own.id]
        assert [a.id for a in self.list_day(db_session, center.other_therapist_caller)] == [other.id]

    def test_filters(self, db_session, center, schedule):
        _, other, _ = schedule
        by_child = self.list_day(db_session, center.admin_caller, child_id=center.other_child.id)
        by_specialist = self.list_day(db_session, center.admin_caller, specialist_id=center.other_therapist.id)
        assert [a.id for a in by_child] == [other.id]
        assert [a.id for a in by_specialist] == [other.id]

    def test_range_is_half_open(self, db_session, center, schedule):
        result = AppointmentService.list_appointments(
            db_session, center.admin_caller, START + timedelta(minutes=30), START + timedelta(hours=1)
        )
        assert result == []

    def test_invalid_range(self, db_session, center):
        with pytest.raises(ValidationError):
            AppointmentService.list_appointments(db_session, center.admin_caller, START, START)

    def test_get_hides_unreadable(self, db_session, center, schedule):
        own, other, _ = schedule
        assert AppointmentService.get_appointment(db_session, center.parent_caller, own.id).id == own.id
        with pytest.raises(NotFoundError):
            AppointmentService.get_appointment(db_session, center.parent_caller, other.id)

    def test_stranger_therapist_sees_nothing(self, db_session, center, schedule):
        stranger = create_profile(db_session, "therapist")
        assert self.list_day(db_session, caller_for(stranger)) == []
