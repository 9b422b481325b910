# clinic_api/schemas.py

from datetime import date as Date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from . import derived
from .scheduling.values import (
    AbsenceInterval,
    ClockTime,
    WeeklyHoursRule,
)


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserRole(str, Enum):
    patient = "patient"
    dentist = "dentist"
    staff = "staff"
    admin = "admin"


class Gender(str, Enum):
    male = "male"
    female = "female"
    other = "other"
    prefer_not_to_say = "prefer-not-to-say"


class DentistStatus(str, Enum):
    active = "active"
    inactive = "inactive"
    on_leave = "on-leave"
    suspended = "suspended"


class Specialization(str, Enum):
    general_dentistry = "general-dentistry"
    orthodontics = "orthodontics"
    periodontics = "periodontics"
    endodontics = "endodontics"
    oral_surgery = "oral-surgery"
    prosthodontics = "prosthodontics"
    pediatric_dentistry = "pediatric-dentistry"
    cosmetic_dentistry = "cosmetic-dentistry"
    oral_pathology = "oral-pathology"
    dental_implants = "dental-implants"


class TimeOffReason(str, Enum):
    vacation = "vacation"
    sick_leave = "sick-leave"
    conference = "conference"
    personal = "personal"
    other = "other"


class AppointmentType(str, Enum):
    consultation = "consultation"
    cleaning = "cleaning"
    checkup = "checkup"
    filling = "filling"
    extraction = "extraction"
    root_canal = "root-canal"
    crown = "crown"
    bridge = "bridge"
    implant = "implant"
    orthodontic = "orthodontic"
    cosmetic = "cosmetic"
    emergency = "emergency"
    follow_up = "follow-up"
    other = "other"


class Priority(str, Enum):
    low = "low"
    normal = "normal"
    high = "high"
    urgent = "urgent"


class ReminderChannel(str, Enum):
    email = "email"
    sms = "sms"
    phone = "phone"


# ---- users -----------------------------------------------------------------

class UserCreate(BaseModel):
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(min_length=8, max_length=72)
    first_name: str = Field(min_length=2, max_length=50)
    last_name: str = Field(min_length=2, max_length=50)
    phone: Optional[str] = Field(default=None, pattern=r"^\+?[\d\s\-()]+$")
    role: UserRole = UserRole.patient

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("role")
    @classmethod
    def self_service_role(cls, v: UserRole) -> UserRole:
        if v not in (UserRole.patient, UserRole.dentist):
            raise ValueError("Only patient and dentist accounts can self-register")
        return v


class RoleUpdate(BaseModel):
    role: UserRole


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None


class UserPublic(UserSummary):
    role: UserRole
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: datetime

    @computed_field
    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class RegisterResponse(BaseModel):
    user: UserPublic
    profile_id: Optional[int] = None
    access_token: str
    token_type: str = "bearer"


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    last_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    phone: Optional[str] = Field(default=None, pattern=r"^\+?[\d\s\-()]+$")


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(min_length=8, max_length=72)


class UserStats(BaseModel):
    total_patients: int
    total_dentists: int
    total_staff: int
    total_active_users: int
    new_users_last_month: int


# ---- patients --------------------------------------------------------------

class MedicalHistoryEntry(BaseModel):
    id: Optional[str] = None
    condition: str
    diagnosed_date: Optional[Date] = None
    status: str = Field(default="active", pattern="^(active|resolved|chronic)$")
    notes: Optional[str] = None


class Allergy(BaseModel):
    id: Optional[str] = None
    allergen: str
    severity: str = Field(pattern="^(mild|moderate|severe)$")
    reaction: Optional[str] = None


class Medication(BaseModel):
    id: Optional[str] = None
    name: str
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    start_date: Optional[Date] = None
    end_date: Optional[Date] = None
    prescribed_by: Optional[str] = None


class EmergencyContact(BaseModel):
    name: str
    relationship: str
    phone: str = Field(pattern=r"^\+?[\d\s\-()]+$")
    email: Optional[str] = None


class Insurance(BaseModel):
    provider: Optional[str] = None
    policy_number: Optional[str] = None
    group_number: Optional[str] = None
    subscriber_name: Optional[str] = None
    expiration_date: Optional[Date] = None


class DentalHistory(BaseModel):
    last_cleaning: Optional[Date] = None
    last_xray: Optional[Date] = None
    orthodontic_treatment: bool = False
    gum_disease: bool = False
    previous_dentist: Optional[str] = None


class Preferences(BaseModel):
    communication_method: ReminderChannel = ReminderChannel.email
    reminder_preference: bool = True
    marketing_opt_in: bool = False


class PatientBase(BaseModel):
    date_of_birth: Optional[Date] = None
    gender: Optional[Gender] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    insurance: Optional[Insurance] = None
    emergency_contact: Optional[EmergencyContact] = None
    notes: Optional[str] = None

    @field_validator("date_of_birth")
    @classmethod
    def plausible_birth_date(cls, v):
        if v is None:
            return v
        today = Date.today()
        if v > today or today.year - v.year > 120:
            raise ValueError("Invalid date of birth")
        return v


class PatientCreate(PatientBase):
    user_id: int
    date_of_birth: Date
    gender: Gender
    street: str
    city: str
    state: str
    zip_code: str
    medical_history: List[MedicalHistoryEntry] = Field(default_factory=list)
    allergies: List[Allergy] = Field(default_factory=list)
    current_medications: List[Medication] = Field(default_factory=list)
    dental_history: Optional[DentalHistory] = None
    preferences: Optional[Preferences] = None


class PatientUpdate(PatientBase):
    pass


class PatientMedicalUpdate(BaseModel):
    medical_history: Optional[List[MedicalHistoryEntry]] = None
    allergies: Optional[List[Allergy]] = None
    current_medications: Optional[List[Medication]] = None
    dental_history: Optional[DentalHistory] = None


class PatientPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_code: str
    user_id: int
    user: Optional[UserSummary] = None
    date_of_birth: Optional[Date] = None
    gender: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    insurance: Optional[dict] = None
    medical_history: List[dict] = Field(default_factory=list)
    allergies: List[dict] = Field(default_factory=list)
    current_medications: List[dict] = Field(default_factory=list)
    emergency_contact: Optional[dict] = None
    dental_history: dict = Field(default_factory=dict)
    preferences: dict = Field(default_factory=dict)
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def age(self) -> Optional[int]:
        return derived.age_on(self.date_of_birth)

    @computed_field
    @property
    def full_address(self) -> str:
        return derived.full_address(self.street, self.city, self.state, self.zip_code)


class PatientStats(BaseModel):
    total_patients: int
    male_patients: int
    female_patients: int
    patients_with_insurance: int
    patients_with_allergies: int
    new_patients_last_month: int
    insurance_rate: float


# ---- dentists --------------------------------------------------------------

class Credential(BaseModel):
    id: Optional[str] = None
    type: str = Field(pattern="^(degree|certification|license)$")
    name: str
    issuing_authority: str
    license_number: Optional[str] = None
    issue_date: Date
    expiration_date: Optional[Date] = None
    is_active: bool = True


class DentistCreate(BaseModel):
    user_id: int
    title: str = Field(default="Dr.", pattern=r"^(Dr\.|DDS|DMD|MS|PhD)$")
    specializations: List[Specialization] = Field(default_factory=lambda: [Specialization.general_dentistry])
    credentials: List[Credential] = Field(min_length=1)
    years_of_practice: int = Field(default=0, ge=0)
    office_phone: Optional[str] = Field(default=None, pattern=r"^\+?[\d\s\-()]+$")
    bio: Optional[str] = Field(default=None, max_length=1000)
    languages: List[str] = Field(default_factory=list)


class DentistUpdate(BaseModel):
    title: Optional[str] = Field(default=None, pattern=r"^(Dr\.|DDS|DMD|MS|PhD)$")
    specializations: Optional[List[Specialization]] = None
    years_of_practice: Optional[int] = Field(default=None, ge=0)
    office_phone: Optional[str] = Field(default=None, pattern=r"^\+?[\d\s\-()]+$")
    bio: Optional[str] = Field(default=None, max_length=1000)
    languages: Optional[List[str]] = None


class ScheduleUpdate(BaseModel):
    regular_hours: Optional[List[WeeklyHoursRule]] = None
    consultation_duration: Optional[int] = Field(default=None, ge=15, le=120)
    buffer_time: Optional[int] = Field(default=None, ge=0, le=60)


class TimeOffCreate(BaseModel):
    start_date: Date
    end_date: Date
    reason: TimeOffReason
    description: Optional[str] = None


class TimeOffDecision(BaseModel):
    is_approved: bool


class CredentialStatus(BaseModel):
    is_active: bool


class DentistStatusUpdate(BaseModel):
    status: DentistStatus


class DentistPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    dentist_code: str
    user_id: int
    user: Optional[UserSummary] = None
    title: str
    specializations: List[str] = Field(default_factory=list)
    credentials: List[dict] = Field(default_factory=list)
    years_of_practice: int
    regular_hours: List[WeeklyHoursRule] = Field(default_factory=list)
    time_off: List[AbsenceInterval] = Field(default_factory=list)
    consultation_duration: int
    buffer_time: int
    office_phone: Optional[str] = None
    bio: Optional[str] = None
    languages: List[str] = Field(default_factory=list)
    status: str
    rating_average: float
    total_reviews: int
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def display_name(self) -> str:
        if self.user is None:
            return self.title
        return derived.display_name(self.title, self.user.first_name, self.user.last_name)

    @computed_field
    @property
    def active_credentials(self) -> List[dict]:
        return derived.active_credentials(self.credentials)


class AvailabilityResponse(BaseModel):
    dentist_id: int
    date: Date
    available_slots: List[str]
    consultation_duration: int
    buffer_time: int


class DentistStats(BaseModel):
    total_dentists: int
    active_dentists: int
    inactive_dentists: int
    dentists_on_leave: int
    specializations: dict
    average_rating: float


# ---- appointments ----------------------------------------------------------

class Treatment(BaseModel):
    id: Optional[str] = None
    name: str
    description: Optional[str] = None
    duration: int = Field(ge=15)
    cost: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None


class AppointmentCreate(BaseModel):
    patient_id: int
    dentist_id: int
    appointment_date: Date
    start_time: ClockTime
    end_time: ClockTime
    type: AppointmentType
    reason: str = Field(min_length=1)
    symptoms: List[str] = Field(default_factory=list)
    priority: Priority = Priority.normal
    notes_before: Optional[str] = None
    cost_estimated: Optional[float] = Field(default=None, ge=0)


class AppointmentUpdate(BaseModel):
    dentist_id: Optional[int] = None
    appointment_date: Optional[Date] = None
    start_time: Optional[ClockTime] = None
    end_time: Optional[ClockTime] = None
    type: Optional[AppointmentType] = None
    priority: Optional[Priority] = None
    reason: Optional[str] = Field(default=None, min_length=1)
    symptoms: Optional[List[str]] = None
    notes_before: Optional[str] = None
    cost_estimated: Optional[float] = Field(default=None, ge=0)


# Fields a patient may edit on their own booking
PATIENT_EDITABLE_FIELDS = {"symptoms", "notes_before"}


class CancelRequest(BaseModel):
    reason: Optional[str] = None
    refund_amount: float = Field(default=0, ge=0)


class RescheduleRequest(BaseModel):
    new_date: Date
    new_start_time: ClockTime
    new_end_time: ClockTime
    reason: Optional[str] = None


class CompletionNotes(BaseModel):
    during_appointment: Optional[str] = None
    after_appointment: Optional[str] = None
    dentist_notes: Optional[str] = None


class FollowUp(BaseModel):
    required: bool = False
    suggested_date: Optional[Date] = None
    notes: Optional[str] = None


class CompleteRequest(BaseModel):
    treatments: List[Treatment] = Field(default_factory=list)
    notes: Optional[CompletionNotes] = None
    follow_up: Optional[FollowUp] = None
    actual_cost: Optional[float] = Field(default=None, ge=0)


class ReminderRequest(BaseModel):
    type: ReminderChannel = ReminderChannel.email


class ReminderPublic(BaseModel):
    id: str
    type: str
    sent_at: datetime
    status: str


class AppointmentPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    appointment_code: str
    patient_id: int
    dentist_id: int
    appointment_date: Date
    start_time: ClockTime
    end_time: ClockTime
    duration: int
    type: str
    status: str
    priority: str
    reason: str
    symptoms: List[str] = Field(default_factory=list)
    treatments: List[dict] = Field(default_factory=list)
    notes: dict = Field(default_factory=dict)
    cost_estimated: Optional[float] = None
    cost_actual: Optional[float] = None
    insurance_covered: float = 0
    follow_up: Optional[dict] = None
    cancellation: Optional[dict] = None
    rescheduling: Optional[dict] = None
    reminders: List[dict] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def status_color(self) -> str:
        return derived.status_color(self.status)

    @computed_field
    @property
    def total_cost(self) -> float:
        return derived.total_cost(self.treatments)

    @computed_field
    @property
    def starts_at(self) -> datetime:
        return derived.starts_at(self)

    @computed_field
    @property
    def ends_at(self) -> datetime:
        return derived.ends_at(self)


class AppointmentStats(BaseModel):
    total_appointments: int
    scheduled_appointments: int
    confirmed_appointments: int
    completed_appointments: int
    cancelled_appointments: int
    no_show_appointments: int
    appointments_by_type: dict
    average_cost: float
    completion_rate: float
    cancellation_rate: float


class MeResponse(UserPublic):
    patient: Optional[PatientPublic] = None
    dentist: Optional[DentistPublic] = None
