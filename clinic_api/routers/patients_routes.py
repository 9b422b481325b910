# clinic_api/routers/patients_routes.py

import calendar
import logging
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import or_
from sqlmodel import Session, select

from clinic_api import sequences
from clinic_api.auth import get_current_user
from clinic_api.db import get_session
from clinic_api.deps import require_role, require_staff
from clinic_api.models import Patient, User, utcnow
from clinic_api.pagination import Page, PageParams, paginate, page_params
from clinic_api.schemas import (
    Allergy,
    Gender,
    MedicalHistoryEntry,
    Medication,
    PatientCreate,
    PatientMedicalUpdate,
    PatientPublic,
    PatientStats,
    PatientUpdate,
    Preferences,
    UserSummary,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/patients",
    tags=["patients"],
)


def with_ids(records) -> List[dict]:
    """Dump sub-records for storage, giving new ones a stable id."""
    out = []
    for record in records:
        data = record.model_dump(mode="json")
        data["id"] = data.get("id") or uuid4().hex
        out.append(data)
    return out


def years_before(day: date, years: int) -> date:
    if day.month == 2 and day.day == 29 and not calendar.isleap(day.year - years):
        return day.replace(year=day.year - years, day=28)
    return day.replace(year=day.year - years)


def patient_public(patient: Patient, user: Optional[User]) -> PatientPublic:
    data = patient.model_dump()
    data["user"] = UserSummary.model_validate(user) if user is not None else None
    return PatientPublic.model_validate(data)


def get_patient_or_404(session: Session, patient_id: int) -> Patient:
    patient = session.get(Patient, patient_id)
    if patient is None:
        raise HTTPException(status_code=404, detail="Patient not found")
    return patient


def ensure_self_or_staff(current_user: User, patient: Patient):
    if current_user.role == "patient" and patient.user_id != current_user.id:
        raise HTTPException(status_code=403, detail="Access denied")


def save(session: Session, patient: Patient) -> PatientPublic:
    patient.updated_at = utcnow()
    session.add(patient)
    session.commit()
    session.refresh(patient)
    return patient_public(patient, session.get(User, patient.user_id))


@router.get("", response_model=Page[PatientPublic])
def list_patients(
    search: Optional[str] = None,
    gender: Optional[Gender] = None,
    city: Optional[str] = None,
    state: Optional[str] = None,
    zip_code: Optional[str] = None,
    age_min: Optional[int] = Query(None, ge=0, le=150),
    age_max: Optional[int] = Query(None, ge=0, le=150),
    params: PageParams = Depends(page_params),
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    require_staff(current_user)

    stmt = select(Patient).join(User, User.id == Patient.user_id)

    if search:
        like = f"%{search}%"
        stmt = stmt.where(
            or_(
                User.first_name.ilike(like),
                User.last_name.ilike(like),
                User.email.ilike(like),
                User.phone.ilike(like),
                Patient.patient_code.ilike(like),
            )
        )
    if gender is not None:
        stmt = stmt.where(Patient.gender == gender.value)
    if city:
        stmt = stmt.where(Patient.city == city)
    if state:
        stmt = stmt.where(Patient.state == state)
    if zip_code:
        stmt = stmt.where(Patient.zip_code == zip_code)

    # age bounds become birth date bounds
    today = date.today()
    if age_min is not None:
        stmt = stmt.where(Patient.date_of_birth <= years_before(today, age_min))
    if age_max is not None:
        stmt = stmt.where(Patient.date_of_birth > years_before(today, age_max + 1))

    stmt = stmt.order_by(Patient.id)
    patients, meta = paginate(session, stmt, params)

    users = {u.id: u for u in session.exec(select(User).where(User.id.in_([p.user_id for p in patients])))}
    return {
        "items": [patient_public(p, users.get(p.user_id)) for p in patients],
        "pagination": meta,
    }


@router.get("/stats", response_model=PatientStats)
def patient_stats(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    require_role(current_user, "admin")

    patients = session.exec(select(Patient)).all()
    month_ago = (datetime.now(timezone.utc) - timedelta(days=30)).replace(tzinfo=None)

    total = len(patients)
    insured = sum(1 for p in patients if (p.insurance or {}).get("provider"))
    return {
        "total_patients": total,
        "male_patients": sum(1 for p in patients if p.gender == "male"),
        "female_patients": sum(1 for p in patients if p.gender == "female"),
        "patients_with_insurance": insured,
        "patients_with_allergies": sum(1 for p in patients if p.allergies),
        "new_patients_last_month": sum(1 for p in patients if p.created_at.replace(tzinfo=None) >= month_ago),
        "insurance_rate": round(insured / total * 100, 1) if total else 0,
    }


@router.get("/code/{patient_code}", response_model=PatientPublic)
def get_patient_by_code(
    patient_code: str,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    require_staff(current_user)

    patient = session.exec(select(Patient).where(Patient.patient_code == patient_code)).first()
    if patient is None:
        raise HTTPException(status_code=404, detail="Patient not found")
    return patient_public(patient, session.get(User, patient.user_id))


@router.get("/{patient_id}", response_model=PatientPublic)
def get_patient(
    patient_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    patient = get_patient_or_404(session, patient_id)
    ensure_self_or_staff(current_user, patient)
    return patient_public(patient, session.get(User, patient.user_id))


@router.post("", response_model=PatientPublic, status_code=201)
def create_patient(
    body: PatientCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    # 1) Only the user themself or staff can open a patient file
    if current_user.id != body.user_id:
        require_staff(current_user)

    user = session.get(User, body.user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    if user.role != "patient":
        raise HTTPException(status_code=400, detail="User must have patient role")

    # 2) Registration already created a stub; fill it instead of failing
    patient = session.exec(select(Patient).where(Patient.user_id == body.user_id)).first()
    if patient is not None and patient.date_of_birth is not None:
        raise HTTPException(status_code=409, detail="Patient profile already exists")
    if patient is None:
        patient = Patient(patient_code=sequences.patient_code(session), user_id=body.user_id)

    data = body.model_dump(
        mode="json",
        exclude={"user_id", "medical_history", "allergies", "current_medications"},
        exclude_none=True,
    )
    data["date_of_birth"] = body.date_of_birth
    for key, value in data.items():
        setattr(patient, key, value)
    patient.medical_history = with_ids(body.medical_history)
    patient.allergies = with_ids(body.allergies)
    patient.current_medications = with_ids(body.current_medications)

    result = save(session, patient)
    logger.info("Patient profile %s created for user %s", patient.patient_code, user.id)
    return result


@router.put("/{patient_id}", response_model=PatientPublic)
def update_patient(
    patient_id: int,
    body: PatientUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    patient = get_patient_or_404(session, patient_id)
    ensure_self_or_staff(current_user, patient)

    data = body.model_dump(mode="json", exclude_none=True)
    if body.date_of_birth is not None:
        data["date_of_birth"] = body.date_of_birth
    for key, value in data.items():
        setattr(patient, key, value)

    return save(session, patient)


@router.put("/{patient_id}/medical", response_model=PatientPublic)
def update_patient_medical(
    patient_id: int,
    body: PatientMedicalUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    require_staff(current_user)
    patient = get_patient_or_404(session, patient_id)

    if body.medical_history is not None:
        patient.medical_history = with_ids(body.medical_history)
    if body.allergies is not None:
        patient.allergies = with_ids(body.allergies)
    if body.current_medications is not None:
        patient.current_medications = with_ids(body.current_medications)
    if body.dental_history is not None:
        patient.dental_history = body.dental_history.model_dump(mode="json")

    return save(session, patient)


@router.post("/{patient_id}/medical-history", response_model=PatientPublic)
def add_medical_history(
    patient_id: int,
    entry: MedicalHistoryEntry,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    require_staff(current_user)
    patient = get_patient_or_404(session, patient_id)
    # JSON columns only notice reassignment, not in-place appends
    patient.medical_history = list(patient.medical_history or []) + with_ids([entry])
    return save(session, patient)


@router.post("/{patient_id}/allergies", response_model=PatientPublic)
def add_allergy(
    patient_id: int,
    allergy: Allergy,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    require_staff(current_user)
    patient = get_patient_or_404(session, patient_id)
    patient.allergies = list(patient.allergies or []) + with_ids([allergy])
    return save(session, patient)


@router.post("/{patient_id}/medications", response_model=PatientPublic)
def add_medication(
    patient_id: int,
    medication: Medication,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    require_staff(current_user)
    patient = get_patient_or_404(session, patient_id)
    patient.current_medications = list(patient.current_medications or []) + with_ids([medication])
    return save(session, patient)


@router.put("/{patient_id}/preferences", response_model=PatientPublic)
def update_preferences(
    patient_id: int,
    preferences: Preferences,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    patient = get_patient_or_404(session, patient_id)
    ensure_self_or_staff(current_user, patient)
    patient.preferences = preferences.model_dump(mode="json")
    return save(session, patient)


@router.delete("/{patient_id}", status_code=204)
def delete_patient(
    patient_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    require_role(current_user, "admin")
    patient = get_patient_or_404(session, patient_id)
    session.delete(patient)
    session.commit()
    logger.info("Patient %s deleted by user %s", patient_id, current_user.id)
