# clinic_api/scheduling/values.py

from datetime import date as Date, datetime, time
from enum import Enum
from typing import Annotated, List, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, PlainSerializer, model_validator

from .errors import InvalidInterval

MIN_SLOT_MINUTES = 15


def whole_minute(t: time) -> time:
    if t.second or t.microsecond:
        raise ValueError("Times must be whole minutes (HH:MM)")
    return t


# "09:00" in, "09:00" out
ClockTime = Annotated[
    time,
    AfterValidator(whole_minute),
    PlainSerializer(lambda t: t.strftime("%H:%M"), return_type=str, when_used="json"),
]


def to_minutes(t: time) -> int:
    return t.hour * 60 + t.minute


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


class AppointmentStatus(str, Enum):
    scheduled = "scheduled"
    confirmed = "confirmed"
    completed = "completed"
    cancelled = "cancelled"
    no_show = "no-show"


class Party(str, Enum):
    patient = "patient"
    dentist = "dentist"
    staff = "staff"
    system = "system"


class WeeklyHoursRule(BaseModel):
    id: Optional[str] = None
    day_of_week: int = Field(ge=0, le=6)  # 0 = Sunday
    start_time: ClockTime
    end_time: ClockTime
    is_active: bool = True

    @model_validator(mode="after")
    def check_order(self):
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self


class AbsenceInterval(BaseModel):
    id: Optional[str] = None
    start_date: Date
    end_date: Date
    reason: str = "other"
    description: Optional[str] = None
    is_approved: bool = False

    @model_validator(mode="after")
    def check_order(self):
        if self.start_date > self.end_date:
            raise ValueError("start_date cannot be after end_date")
        return self

    def covers(self, day: Date) -> bool:
        return self.start_date <= day <= self.end_date


class SchedulingPolicy(BaseModel):
    slot_duration_minutes: int = Field(default=30, ge=MIN_SLOT_MINUTES, le=120)
    buffer_minutes: int = Field(default=15, ge=0, le=60)


class PractitionerSchedule(BaseModel):
    """Everything the calculator needs to know about one dentist."""

    practitioner_ref: Optional[int | str] = None
    weekly_rules: List[WeeklyHoursRule] = Field(default_factory=list)
    absences: List[AbsenceInterval] = Field(default_factory=list)
    policy: SchedulingPolicy = Field(default_factory=SchedulingPolicy)


class BookingInterval(BaseModel):
    date: Date
    start_time: ClockTime
    end_time: ClockTime

    @property
    def duration_minutes(self) -> int:
        return to_minutes(self.end_time) - to_minutes(self.start_time)

    def ensure_valid(self) -> "BookingInterval":
        if self.start_time >= self.end_time:
            raise InvalidInterval("Start time must be before end time")
        if self.duration_minutes < MIN_SLOT_MINUTES:
            raise InvalidInterval(f"Appointments must last at least {MIN_SLOT_MINUTES} minutes")
        return self


class Actor(BaseModel):
    """Who is acting, and on whose behalf.

    Built once per request from the authenticated user and handed to every
    lifecycle call that records provenance or needs an ownership decision.
    """

    model_config = ConfigDict(frozen=True)

    user_id: Optional[int] = None
    role: str
    patient_id: Optional[int] = None
    dentist_id: Optional[int] = None

    @classmethod
    def system(cls) -> "Actor":
        return cls(role="system")

    @property
    def is_staff(self) -> bool:
        return self.role in ("dentist", "staff", "admin", "system")

    @property
    def party(self) -> Party:
        if self.role == "patient":
            return Party.patient
        if self.role == "dentist":
            return Party.dentist
        if self.role == "system":
            return Party.system
        return Party.staff

    def owns(self, appointment) -> bool:
        if self.role == "patient":
            return self.patient_id is not None and appointment.patient_id == self.patient_id
        return self.is_staff


class CancellationRecord(BaseModel):
    reason: Optional[str] = None
    cancelled_by: Party
    cancelled_at: datetime
    refund_amount: float = Field(default=0, ge=0)


class ReschedulingRecord(BaseModel):
    original_date: Date
    original_time: ClockTime
    reason: Optional[str] = None
    rescheduled_by: Party
    rescheduled_at: datetime


class ReminderRecord(BaseModel):
    id: str
    type: str
    sent_at: datetime
    status: str = "sent"
