# clinic_api/models.py

from typing import Optional, List
from datetime import datetime, date as Date, time, timezone

from sqlalchemy import Index, text
from sqlalchemy.types import JSON
from sqlmodel import SQLModel, Field, Column

from .config import DEFAULT_BUFFER_MINUTES, DEFAULT_CONSULTATION_MINUTES
from .scheduling.values import (
    AbsenceInterval,
    PractitionerSchedule,
    SchedulingPolicy,
    WeeklyHoursRule,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def json_list():
    return Field(default_factory=list, sa_column=Column(JSON))


def json_dict(nullable: bool = False):
    if nullable:
        return Field(default=None, sa_column=Column(JSON, nullable=True))
    return Field(default_factory=dict, sa_column=Column(JSON))


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    password_hash: str
    role: str = Field(index=True)  # patient, dentist, staff or admin
    first_name: str
    last_name: str
    phone: Optional[str] = None
    is_active: bool = True
    last_login: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)


class Counter(SQLModel, table=True):
    name: str = Field(primary_key=True)
    value: int = 0


class Patient(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    patient_code: str = Field(index=True, unique=True)
    user_id: int = Field(foreign_key="user.id", unique=True)

    date_of_birth: Optional[Date] = Field(default=None, index=True)
    gender: Optional[str] = None

    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = Field(default=None, index=True)
    country: str = "United States"

    insurance: Optional[dict] = json_dict(nullable=True)
    medical_history: List[dict] = json_list()
    allergies: List[dict] = json_list()
    current_medications: List[dict] = json_list()
    emergency_contact: Optional[dict] = json_dict(nullable=True)
    dental_history: dict = json_dict()
    preferences: dict = json_dict()
    notes: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Dentist(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    dentist_code: str = Field(index=True, unique=True)
    user_id: int = Field(foreign_key="user.id", unique=True)

    title: str = "Dr."
    specializations: List[str] = json_list()
    credentials: List[dict] = json_list()
    years_of_practice: int = 0

    regular_hours: List[dict] = json_list()
    time_off: List[dict] = json_list()
    consultation_duration: int = DEFAULT_CONSULTATION_MINUTES
    buffer_time: int = DEFAULT_BUFFER_MINUTES

    office_phone: Optional[str] = None
    bio: Optional[str] = None
    languages: List[str] = json_list()

    status: str = Field(default="active", index=True)  # active, inactive, on-leave, suspended
    rating_average: float = 0
    total_reviews: int = 0

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def to_schedule(self) -> PractitionerSchedule:
        return PractitionerSchedule(
            practitioner_ref=self.id,
            weekly_rules=[WeeklyHoursRule.model_validate(r) for r in self.regular_hours or []],
            absences=[AbsenceInterval.model_validate(t) for t in self.time_off or []],
            policy=SchedulingPolicy(
                slot_duration_minutes=self.consultation_duration,
                buffer_minutes=self.buffer_time,
            ),
        )


class Appointment(SQLModel, table=True):
    __table_args__ = (
        # backstop for two requests booking the same start at once
        Index(
            "uq_dentist_active_start",
            "dentist_id",
            "appointment_date",
            "start_time",
            unique=True,
            sqlite_where=text("status NOT IN ('cancelled', 'no-show')"),
            postgresql_where=text("status NOT IN ('cancelled', 'no-show')"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    appointment_code: str = Field(index=True, unique=True)

    patient_id: int = Field(foreign_key="patient.id", index=True)
    dentist_id: int = Field(foreign_key="dentist.id", index=True)

    appointment_date: Date = Field(index=True)
    start_time: time
    end_time: time
    duration: int = 0  # minutes

    type: str
    status: str = Field(default="scheduled", index=True)
    priority: str = "normal"
    reason: str
    symptoms: List[str] = json_list()

    treatments: List[dict] = json_list()
    notes: dict = json_dict()
    cost_estimated: Optional[float] = None
    cost_actual: Optional[float] = None
    insurance_covered: float = 0
    follow_up: Optional[dict] = json_dict(nullable=True)

    cancellation: Optional[dict] = json_dict(nullable=True)
    rescheduling: Optional[dict] = json_dict(nullable=True)
    reminders: List[dict] = json_list()

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
