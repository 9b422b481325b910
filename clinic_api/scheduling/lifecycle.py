# clinic_api/scheduling/lifecycle.py
"""
Booking lifecycle.

    scheduled -> confirmed -> completed
    scheduled | confirmed -> cancelled
    scheduled | confirmed -> (rescheduled) -> scheduled, same record
    scheduled | confirmed -> no-show

Every transition validates first and only then assigns attributes, so a
failure leaves the appointment exactly as it was. Nothing is persisted here;
the caller commits the mutated record.
"""

from datetime import datetime, timezone
from typing import Iterable, List, Optional
from uuid import uuid4

from .availability import check_availability
from .conflicts import find_conflict
from .errors import IllegalTransition, SchedulingConflict
from .values import (
    Actor,
    AppointmentStatus,
    BookingInterval,
    CancellationRecord,
    PractitionerSchedule,
    ReminderRecord,
    ReschedulingRecord,
)

TERMINAL_STATUSES = (AppointmentStatus.completed, AppointmentStatus.cancelled)
OPEN_STATUSES = (AppointmentStatus.scheduled, AppointmentStatus.confirmed)

# Fields whose change moves the booking in time or to another dentist
TIMING_FIELDS = ("appointment_date", "start_time", "end_time", "dentist_id")


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def _status(appointment) -> AppointmentStatus:
    return AppointmentStatus(appointment.status)


def _interval_of(appointment) -> BookingInterval:
    return BookingInterval(
        date=appointment.appointment_date,
        start_time=appointment.start_time,
        end_time=appointment.end_time,
    )


def _set_interval(appointment, interval: BookingInterval) -> None:
    appointment.appointment_date = interval.date
    appointment.start_time = interval.start_time
    appointment.end_time = interval.end_time
    appointment.duration = interval.duration_minutes


def validate_booking(
    schedule: PractitionerSchedule,
    day_appointments: Iterable,
    interval: BookingInterval,
    exclude_id=None,
) -> None:
    """Raise unless ``interval`` can be booked with this dentist.

    Shape first (InvalidInterval), then working hours and time off
    (PractitionerUnavailable), then existing bookings (SchedulingConflict).
    """
    interval.ensure_valid()
    check_availability(schedule, interval.date, interval.start_time, interval.end_time)

    clash = find_conflict(
        day_appointments,
        schedule.practitioner_ref,
        interval.date,
        interval.start_time,
        interval.end_time,
        exclude_id=exclude_id,
    )
    if clash is not None:
        raise SchedulingConflict(
            "Appointment time conflicts with existing appointment",
            conflicting_id=clash.id,
        )


def book(appointment, schedule: PractitionerSchedule, day_appointments: Iterable):
    """Validate a new, not yet persisted appointment and mark it scheduled."""
    validate_booking(schedule, day_appointments, _interval_of(appointment), exclude_id=appointment.id)
    appointment.duration = _interval_of(appointment).duration_minutes
    appointment.status = AppointmentStatus.scheduled.value
    return appointment


def confirm(appointment):
    status = _status(appointment)
    if status != AppointmentStatus.scheduled:
        raise IllegalTransition(f"Cannot confirm a {status.value} appointment", status=status)
    appointment.status = AppointmentStatus.confirmed.value
    return appointment


def complete(
    appointment,
    treatments: Optional[List[dict]] = None,
    notes: Optional[dict] = None,
    follow_up: Optional[dict] = None,
    actual_cost: Optional[float] = None,
):
    status = _status(appointment)
    if status == AppointmentStatus.cancelled:
        raise IllegalTransition("Cannot complete cancelled appointment", status=status)

    merged_notes = dict(appointment.notes or {})
    for key in ("during_appointment", "after_appointment", "dentist_notes"):
        merged_notes[key] = (notes or {}).get(key) or ""

    appointment.treatments = [dict(t, id=t.get("id") or uuid4().hex) for t in (treatments or [])]
    appointment.notes = merged_notes
    appointment.follow_up = follow_up or {"required": False}
    appointment.cost_actual = actual_cost or 0
    appointment.status = AppointmentStatus.completed.value
    return appointment


def cancel(
    appointment,
    actor: Actor,
    reason: Optional[str] = None,
    refund_amount: float = 0,
    now: Optional[datetime] = None,
):
    status = _status(appointment)
    if status == AppointmentStatus.cancelled:
        raise IllegalTransition("Appointment is already cancelled", status=status)
    if status == AppointmentStatus.completed:
        raise IllegalTransition("Cannot cancel completed appointment", status=status)

    record = CancellationRecord(
        reason=reason,
        cancelled_by=actor.party,
        cancelled_at=_now(now),
        refund_amount=refund_amount,
    )
    appointment.cancellation = record.model_dump(mode="json")
    appointment.status = AppointmentStatus.cancelled.value
    return appointment


def reschedule(
    appointment,
    schedule: PractitionerSchedule,
    day_appointments: Iterable,
    new_interval: BookingInterval,
    actor: Actor,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
):
    status = _status(appointment)
    if status in TERMINAL_STATUSES:
        raise IllegalTransition(
            f"Cannot reschedule {status.value} appointment", status=status
        )

    validate_booking(schedule, day_appointments, new_interval, exclude_id=appointment.id)

    record = ReschedulingRecord(
        original_date=appointment.appointment_date,
        original_time=appointment.start_time,
        reason=reason,
        rescheduled_by=actor.party,
        rescheduled_at=_now(now),
    )
    appointment.rescheduling = record.model_dump(mode="json")
    _set_interval(appointment, new_interval)
    appointment.status = AppointmentStatus.scheduled.value
    return appointment


def apply_update(
    appointment,
    changes: dict,
    schedule: Optional[PractitionerSchedule] = None,
    day_appointments: Iterable = (),
):
    """General field edit.

    ``schedule`` must describe the dentist the appointment ends up with and
    is only consulted when one of TIMING_FIELDS changes.
    """
    timing = {k: v for k, v in changes.items() if k in TIMING_FIELDS}
    if timing:
        status = _status(appointment)
        if status in TERMINAL_STATUSES:
            raise IllegalTransition(
                f"Cannot move {status.value} appointment", status=status
            )
        if schedule is None:
            raise ValueError("schedule is required when changing date, time or dentist")

        interval = BookingInterval(
            date=timing.get("appointment_date", appointment.appointment_date),
            start_time=timing.get("start_time", appointment.start_time),
            end_time=timing.get("end_time", appointment.end_time),
        )
        validate_booking(schedule, day_appointments, interval, exclude_id=appointment.id)

    for key, value in changes.items():
        if key in ("appointment_date", "start_time", "end_time"):
            continue
        setattr(appointment, key, value)
    if timing:
        _set_interval(appointment, interval)
    return appointment


def mark_no_show(appointment):
    status = _status(appointment)
    if status not in OPEN_STATUSES:
        raise IllegalTransition(
            f"Cannot mark {status.value} appointment as no-show", status=status
        )
    appointment.status = AppointmentStatus.no_show.value
    return appointment


def record_reminder(appointment, channel: str, now: Optional[datetime] = None) -> ReminderRecord:
    status = _status(appointment)
    if status in TERMINAL_STATUSES:
        raise IllegalTransition(
            "Cannot send reminder for cancelled or completed appointment", status=status
        )

    reminder = ReminderRecord(id=uuid4().hex, type=channel, sent_at=_now(now))
    appointment.reminders = list(appointment.reminders or []) + [reminder.model_dump(mode="json")]
    return reminder
