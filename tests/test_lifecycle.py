"""Tests for booking lifecycle transitions."""

from datetime import date, datetime, time, timezone
from types import SimpleNamespace

import pytest

from clinic_api.scheduling import lifecycle
from clinic_api.scheduling.errors import (
    IllegalTransition,
    InvalidInterval,
    PractitionerUnavailable,
    SchedulingConflict,
)
from clinic_api.scheduling.values import (
    AbsenceInterval,
    Actor,
    BookingInterval,
    PractitionerSchedule,
    SchedulingPolicy,
    WeeklyHoursRule,
)

MONDAY = date(2030, 1, 7)
NOW = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)

PATIENT = Actor(user_id=10, role="patient", patient_id=3)
STAFF = Actor(user_id=1, role="staff")


@pytest.fixture
def schedule():
    return PractitionerSchedule(
        practitioner_ref=1,
        weekly_rules=[WeeklyHoursRule(day_of_week=1, start_time="09:00", end_time="17:00")],
        policy=SchedulingPolicy(slot_duration_minutes=30, buffer_minutes=15),
    )


def make_appt(start="10:00", end="10:30", status="scheduled", id=1, **extra):
    fields = dict(
        id=id,
        patient_id=3,
        dentist_id=1,
        appointment_date=MONDAY,
        start_time=time.fromisoformat(start),
        end_time=time.fromisoformat(end),
        duration=0,
        status=status,
        notes={},
        treatments=[],
        follow_up=None,
        cost_actual=None,
        cancellation=None,
        rescheduling=None,
        reminders=[],
        reason="Checkup",
    )
    fields.update(extra)
    return SimpleNamespace(**fields)


class TestBook:
    def test_sets_duration_and_status(self, schedule):
        appt = make_appt(status="confirmed", id=None)
        lifecycle.book(appt, schedule, [])
        assert appt.status == "scheduled"
        assert appt.duration == 30

    def test_end_before_start(self, schedule):
        with pytest.raises(InvalidInterval):
            lifecycle.book(make_appt("10:30", "10:00", id=None), schedule, [])

    def test_too_short(self, schedule):
        with pytest.raises(InvalidInterval):
            lifecycle.book(make_appt("10:00", "10:10", id=None), schedule, [])

    def test_outside_hours(self, schedule):
        with pytest.raises(PractitionerUnavailable):
            lifecycle.book(make_appt("16:45", "17:15", id=None), schedule, [])

    def test_on_leave(self, schedule):
        schedule.absences.append(AbsenceInterval(start_date=MONDAY, end_date=MONDAY, is_approved=True))
        with pytest.raises(PractitionerUnavailable):
            lifecycle.book(make_appt(id=None), schedule, [])

    def test_overlapping_booking(self, schedule):
        existing = make_appt("10:00", "10:30", id=1)
        with pytest.raises(SchedulingConflict) as err:
            lifecycle.book(make_appt("10:15", "10:45", id=None), schedule, [existing])
        assert err.value.conflicting_id == 1

    def test_shape_checked_before_availability(self, schedule):
        # closed on Sunday and backwards: shape wins
        appt = make_appt("10:30", "10:00", id=None, appointment_date=date(2030, 1, 6))
        with pytest.raises(InvalidInterval):
            lifecycle.book(appt, schedule, [])


class TestCancel:
    def test_records_who_and_when(self):
        appt = make_appt()
        lifecycle.cancel(appt, PATIENT, reason="Sick", now=NOW)
        assert appt.status == "cancelled"
        assert appt.cancellation["cancelled_by"] == "patient"
        assert appt.cancellation["reason"] == "Sick"
        assert appt.cancellation["refund_amount"] == 0

    def test_second_cancel_is_rejected_and_changes_nothing(self):
        appt = make_appt()
        lifecycle.cancel(appt, PATIENT, reason="Sick", now=NOW)
        before = dict(appt.cancellation)

        with pytest.raises(IllegalTransition):
            lifecycle.cancel(appt, STAFF, reason="Again")
        assert appt.status == "cancelled"
        assert appt.cancellation == before

    def test_completed_cannot_be_cancelled(self):
        appt = make_appt(status="completed")
        with pytest.raises(IllegalTransition):
            lifecycle.cancel(appt, STAFF)
        assert appt.status == "completed"
        assert appt.cancellation is None

    def test_staff_is_recorded_as_staff(self):
        appt = make_appt(status="confirmed")
        lifecycle.cancel(appt, STAFF, now=NOW)
        assert appt.cancellation["cancelled_by"] == "staff"


class TestReschedule:
    def test_moves_and_keeps_the_trail(self, schedule):
        appt = make_appt(status="confirmed")
        new = BookingInterval(date=MONDAY, start_time="14:00", end_time="14:45")

        lifecycle.reschedule(appt, schedule, [appt], new, PATIENT, reason="Work", now=NOW)

        assert appt.start_time == time(14)
        assert appt.end_time == time(14, 45)
        assert appt.duration == 45
        assert appt.status == "scheduled"
        assert appt.rescheduling["original_time"] == "10:00"
        assert appt.rescheduling["original_date"] == "2030-01-07"
        assert appt.rescheduling["rescheduled_by"] == "patient"

    def test_may_overlap_its_own_old_slot(self, schedule):
        appt = make_appt("10:00", "10:30")
        new = BookingInterval(date=MONDAY, start_time="10:15", end_time="10:45")
        lifecycle.reschedule(appt, schedule, [appt], new, STAFF)
        assert appt.start_time == time(10, 15)

    def test_conflict_leaves_appointment_untouched(self, schedule):
        appt = make_appt("10:00", "10:30", id=1)
        other = make_appt("14:00", "14:30", id=2)
        new = BookingInterval(date=MONDAY, start_time="14:15", end_time="14:45")

        with pytest.raises(SchedulingConflict):
            lifecycle.reschedule(appt, schedule, [appt, other], new, STAFF)
        assert appt.start_time == time(10)
        assert appt.rescheduling is None

    @pytest.mark.parametrize("status", ["completed", "cancelled"])
    def test_terminal_cannot_move(self, schedule, status):
        appt = make_appt(status=status)
        new = BookingInterval(date=MONDAY, start_time="14:00", end_time="14:30")
        with pytest.raises(IllegalTransition):
            lifecycle.reschedule(appt, schedule, [], new, STAFF)


class TestConfirmCompleteNoShow:
    def test_confirm_from_scheduled(self):
        appt = make_appt()
        lifecycle.confirm(appt)
        assert appt.status == "confirmed"

    @pytest.mark.parametrize("status", ["confirmed", "completed", "cancelled", "no-show"])
    def test_confirm_only_from_scheduled(self, status):
        with pytest.raises(IllegalTransition):
            lifecycle.confirm(make_appt(status=status))

    def test_complete_assigns_treatment_ids_and_merges_notes(self):
        appt = make_appt(status="confirmed", notes={"before_appointment": "Nervous"})
        lifecycle.complete(
            appt,
            treatments=[{"name": "Cleaning", "duration": 30, "cost": 80}],
            notes={"dentist_notes": "All good"},
            actual_cost=80,
        )
        assert appt.status == "completed"
        assert appt.treatments[0]["id"]
        assert appt.notes["before_appointment"] == "Nervous"
        assert appt.notes["dentist_notes"] == "All good"
        assert appt.cost_actual == 80
        assert appt.follow_up == {"required": False}

    def test_cancelled_cannot_complete(self):
        with pytest.raises(IllegalTransition):
            lifecycle.complete(make_appt(status="cancelled"))

    def test_no_show_from_open_status(self):
        appt = make_appt(status="confirmed")
        lifecycle.mark_no_show(appt)
        assert appt.status == "no-show"

    def test_no_show_rejected_when_completed(self):
        with pytest.raises(IllegalTransition):
            lifecycle.mark_no_show(make_appt(status="completed"))


class TestApplyUpdate:
    def test_plain_fields(self):
        appt = make_appt()
        lifecycle.apply_update(appt, {"reason": "Toothache"})
        assert appt.reason == "Toothache"

    def test_timing_change_is_validated(self, schedule):
        appt = make_appt()
        with pytest.raises(PractitionerUnavailable):
            lifecycle.apply_update(appt, {"start_time": time(8), "end_time": time(8, 30)}, schedule, [appt])
        assert appt.start_time == time(10)

    def test_timing_change_applies(self, schedule):
        appt = make_appt()
        lifecycle.apply_update(appt, {"end_time": time(11)}, schedule, [appt])
        assert appt.end_time == time(11)
        assert appt.duration == 60

    def test_timing_change_needs_schedule(self):
        with pytest.raises(ValueError):
            lifecycle.apply_update(make_appt(), {"start_time": time(9)})

    def test_terminal_timing_change_rejected(self, schedule):
        with pytest.raises(IllegalTransition):
            lifecycle.apply_update(make_appt(status="completed"), {"start_time": time(9)}, schedule, [])


class TestReminder:
    def test_appends_record(self):
        appt = make_appt()
        reminder = lifecycle.record_reminder(appt, "sms", now=NOW)
        assert reminder.type == "sms"
        assert appt.reminders[0]["id"] == reminder.id
        assert appt.reminders[0]["status"] == "sent"

    def test_rejected_when_cancelled(self):
        with pytest.raises(IllegalTransition):
            lifecycle.record_reminder(make_appt(status="cancelled"), "email")


class TestActor:
    def test_patient_owns_own_booking(self):
        assert PATIENT.owns(make_appt())

    def test_patient_does_not_own_others(self):
        assert not PATIENT.owns(make_appt(patient_id=99))

    def test_system_actor_is_staff(self):
        assert Actor.system().is_staff
