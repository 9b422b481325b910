# clinic_api/scheduling/availability.py
"""
Open-slot calculation and the availability predicate.

Both work on plain values handed in by the caller: weekly hours, time off and
the slot policy of one dentist. Nothing here looks at existing bookings
except ``free_slots``, which layers the conflict check on top.
"""

from datetime import date as Date, time
from typing import Iterable, List, Optional, Sequence

from .conflicts import has_conflict
from .errors import PractitionerUnavailable
from .values import (
    AbsenceInterval,
    PractitionerSchedule,
    SchedulingPolicy,
    WeeklyHoursRule,
    format_minutes,
    to_minutes,
)


def day_of_week(day: Date) -> int:
    # date.weekday() starts the week on Monday; weekly rules start on Sunday
    return (day.weekday() + 1) % 7


def matching_rule(weekly_rules: Iterable[WeeklyHoursRule], day: Date) -> Optional[WeeklyHoursRule]:
    """First active rule for the weekday of ``day``, in list order."""
    dow = day_of_week(day)
    for rule in weekly_rules:
        if rule.day_of_week == dow and rule.is_active:
            return rule
    return None


def approved_absence_on(absences: Iterable[AbsenceInterval], day: Date) -> Optional[AbsenceInterval]:
    for absence in absences:
        if absence.is_approved and absence.covers(day):
            return absence
    return None


def compute_open_slots(
    weekly_rules: Sequence[WeeklyHoursRule],
    absences: Sequence[AbsenceInterval],
    policy: SchedulingPolicy,
    target_date: Date,
) -> List[str]:
    """Bookable start times (HH:MM) for ``target_date``.

    Slots start at the opening time and advance by duration + buffer for as
    long as a whole slot still fits before closing. Existing bookings are
    not taken into account.
    """
    rule = matching_rule(weekly_rules, target_date)
    if rule is None:
        return []

    if approved_absence_on(absences, target_date) is not None:
        return []

    duration = policy.slot_duration_minutes
    step = duration + policy.buffer_minutes
    closing = to_minutes(rule.end_time)

    slots = []
    current = to_minutes(rule.start_time)
    while current + duration <= closing:
        slots.append(format_minutes(current))
        current += step

    return slots


def unavailability_reason(
    weekly_rules: Sequence[WeeklyHoursRule],
    absences: Sequence[AbsenceInterval],
    day: Date,
    start_time: time,
    end_time: time,
) -> Optional[str]:
    rule = matching_rule(weekly_rules, day)
    if rule is None:
        return "Dentist does not work on that day"

    if start_time < rule.start_time or end_time > rule.end_time:
        return "Requested time is outside the dentist's working hours"

    if approved_absence_on(absences, day) is not None:
        return "Dentist is on leave on that date"

    return None


def is_available_at(
    weekly_rules: Sequence[WeeklyHoursRule],
    absences: Sequence[AbsenceInterval],
    day: Date,
    start_time: time,
    end_time: time,
) -> bool:
    return unavailability_reason(weekly_rules, absences, day, start_time, end_time) is None


def check_availability(schedule: PractitionerSchedule, day: Date, start_time: time, end_time: time) -> None:
    reason = unavailability_reason(schedule.weekly_rules, schedule.absences, day, start_time, end_time)
    if reason is not None:
        raise PractitionerUnavailable(reason)


def free_slots(schedule: PractitionerSchedule, appointments: Iterable, target_date: Date) -> List[str]:
    """Open slots that do not collide with any active booking."""
    appointments = list(appointments)
    duration = schedule.policy.slot_duration_minutes

    free = []
    for slot in compute_open_slots(schedule.weekly_rules, schedule.absences, schedule.policy, target_date):
        start = time.fromisoformat(slot)
        end = time(*divmod(to_minutes(start) + duration, 60))
        if not has_conflict(appointments, schedule.practitioner_ref, target_date, start, end):
            free.append(slot)
    return free
