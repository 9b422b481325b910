# clinic_api/scheduling/conflicts.py

from datetime import date as Date, time
from typing import Iterable, Optional

from .values import AppointmentStatus

# Statuses that no longer hold their time slot
RELEASED_STATUSES = (AppointmentStatus.cancelled, AppointmentStatus.no_show)


def overlaps(a_start, a_end, b_start, b_end) -> bool:
    # half-open intervals: touching endpoints do not overlap
    return a_start < b_end and b_start < a_end


def find_conflict(
    existing_appointments: Iterable,
    practitioner_ref,
    on_date: Date,
    start_time: time,
    end_time: time,
    exclude_id=None,
):
    """Return the first active appointment of ``practitioner_ref`` on
    ``on_date`` that overlaps [start_time, end_time), or None."""
    for appt in existing_appointments:
        if appt.dentist_id != practitioner_ref:
            continue
        if appt.appointment_date != on_date:
            continue
        if appt.status in RELEASED_STATUSES:
            continue
        if exclude_id is not None and appt.id == exclude_id:
            continue
        if overlaps(start_time, end_time, appt.start_time, appt.end_time):
            return appt
    return None


def has_conflict(
    existing_appointments: Iterable,
    practitioner_ref,
    on_date: Date,
    start_time: time,
    end_time: time,
    exclude_id=None,
) -> bool:
    return find_conflict(existing_appointments, practitioner_ref, on_date, start_time, end_time, exclude_id) is not None
