# clinic_api/derived.py
#
# Read-only values computed from stored records on every read.

from datetime import date as Date, datetime
from typing import List, Optional

STATUS_COLORS = {
    "scheduled": "blue",
    "confirmed": "green",
    "completed": "green",
    "cancelled": "red",
    "no-show": "red",
}


def age_on(date_of_birth: Optional[Date], today: Optional[Date] = None) -> Optional[int]:
    if date_of_birth is None:
        return None
    today = today or Date.today()
    age = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return age


def full_address(street, city, state, zip_code) -> str:
    if not any((street, city, state, zip_code)):
        return ""
    return f"{street or ''}, {city or ''}, {state or ''} {zip_code or ''}".strip()


def display_name(title: str, first_name: Optional[str], last_name: Optional[str]) -> str:
    if first_name and last_name:
        return f"{title} {first_name} {last_name}"
    return title


def active_credentials(credentials: List[dict]) -> List[dict]:
    return [c for c in credentials or [] if c.get("is_active", True)]


def status_color(status: str) -> str:
    return STATUS_COLORS.get(status, "gray")


def total_cost(treatments: List[dict]) -> float:
    return sum(t.get("cost") or 0 for t in treatments or [])


def starts_at(appointment) -> datetime:
    return datetime.combine(appointment.appointment_date, appointment.start_time)


def ends_at(appointment) -> datetime:
    return datetime.combine(appointment.appointment_date, appointment.end_time)
