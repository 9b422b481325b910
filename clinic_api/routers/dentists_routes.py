# clinic_api/routers/dentists_routes.py

import logging
from datetime import date, time
from typing import List, Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import String, cast, or_
from sqlmodel import Session, select

from clinic_api import sequences
from clinic_api.auth import get_current_user
from clinic_api.db import get_session
from clinic_api.deps import require_role, require_staff
from clinic_api.models import Appointment, Dentist, User, utcnow
from clinic_api.pagination import Page, PageParams, paginate, page_params
from clinic_api.scheduling.availability import compute_open_slots, free_slots, is_available_at
from clinic_api.scheduling.conflicts import RELEASED_STATUSES, has_conflict
from clinic_api.scheduling.values import ClockTime
from clinic_api.schemas import (
    AvailabilityResponse,
    Credential,
    CredentialStatus,
    DentistCreate,
    DentistPublic,
    DentistStats,
    DentistStatus,
    DentistStatusUpdate,
    DentistUpdate,
    ScheduleUpdate,
    Specialization,
    TimeOffCreate,
    TimeOffDecision,
    UserSummary,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/dentists",
    tags=["dentists"],
)


def dentist_public(dentist: Dentist, user: Optional[User]) -> DentistPublic:
    data = dentist.model_dump()
    data["user"] = UserSummary.model_validate(user) if user is not None else None
    return DentistPublic.model_validate(data)


def get_dentist_or_404(session: Session, dentist_id: int) -> Dentist:
    dentist = session.get(Dentist, dentist_id)
    if dentist is None:
        raise HTTPException(status_code=404, detail="Dentist not found")
    return dentist


def ensure_own_or_staff(current_user: User, dentist: Dentist):
    require_staff(current_user)
    if current_user.role == "dentist" and dentist.user_id != current_user.id:
        raise HTTPException(status_code=403, detail="Access denied")


def ensure_active(dentist: Dentist):
    if dentist.status != DentistStatus.active.value:
        raise HTTPException(status_code=400, detail="Dentist is not currently active")


def day_appointments(session: Session, dentist_id: int, on: date) -> List[Appointment]:
    """Bookings of one dentist on one day that still hold their slot."""
    return session.exec(
        select(Appointment)
        .where(Appointment.dentist_id == dentist_id)
        .where(Appointment.appointment_date == on)
        .where(Appointment.status.not_in([s.value for s in RELEASED_STATUSES]))
    ).all()


def save(session: Session, dentist: Dentist) -> DentistPublic:
    dentist.updated_at = utcnow()
    session.add(dentist)
    session.commit()
    session.refresh(dentist)
    return dentist_public(dentist, session.get(User, dentist.user_id))


def find_record(records: List[dict], record_id: str, label: str) -> int:
    for index, record in enumerate(records):
        if record.get("id") == record_id:
            return index
    raise HTTPException(status_code=404, detail=f"{label} not found")


@router.get("", response_model=Page[DentistPublic])
def list_dentists(
    search: Optional[str] = None,
    specialization: Optional[Specialization] = None,
    status: Optional[DentistStatus] = None,
    params: PageParams = Depends(page_params),
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    stmt = select(Dentist).join(User, User.id == Dentist.user_id)

    if search:
        like = f"%{search}%"
        stmt = stmt.where(
            or_(
                User.first_name.ilike(like),
                User.last_name.ilike(like),
                Dentist.dentist_code.ilike(like),
                Dentist.bio.ilike(like),
            )
        )
    if specialization is not None:
        # JSON list column; match the quoted element in its text form
        stmt = stmt.where(cast(Dentist.specializations, String).like(f'%"{specialization.value}"%'))
    if status is not None:
        stmt = stmt.where(Dentist.status == status.value)

    stmt = stmt.order_by(Dentist.id)
    dentists, meta = paginate(session, stmt, params)

    users = {u.id: u for u in session.exec(select(User).where(User.id.in_([d.user_id for d in dentists])))}
    return {
        "items": [dentist_public(d, users.get(d.user_id)) for d in dentists],
        "pagination": meta,
    }


@router.get("/stats", response_model=DentistStats)
def dentist_stats(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    require_role(current_user, "admin")

    dentists = session.exec(select(Dentist)).all()
    by_specialization = {}
    for dentist in dentists:
        for spec in dentist.specializations or []:
            by_specialization[spec] = by_specialization.get(spec, 0) + 1

    rated = [d.rating_average for d in dentists if d.total_reviews]
    return {
        "total_dentists": len(dentists),
        "active_dentists": sum(1 for d in dentists if d.status == "active"),
        "inactive_dentists": sum(1 for d in dentists if d.status == "inactive"),
        "dentists_on_leave": sum(1 for d in dentists if d.status == "on-leave"),
        "specializations": by_specialization,
        "average_rating": round(sum(rated) / len(rated), 2) if rated else 0,
    }


@router.get("/available", response_model=List[DentistPublic])
def available_dentists(
    on: date = Query(..., alias="date"),
    start_time: ClockTime = Query(...),
    end_time: ClockTime = Query(...),
    specialization: Optional[Specialization] = None,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    if start_time >= end_time:
        raise HTTPException(status_code=400, detail="Start time must be before end time")

    dentists = session.exec(
        select(Dentist).where(Dentist.status == DentistStatus.active.value).order_by(Dentist.id)
    ).all()

    result = []
    for dentist in dentists:
        if specialization is not None and specialization.value not in (dentist.specializations or []):
            continue
        schedule = dentist.to_schedule()
        if not is_available_at(schedule.weekly_rules, schedule.absences, on, start_time, end_time):
            continue
        if has_conflict(day_appointments(session, dentist.id, on), dentist.id, on, start_time, end_time):
            continue
        result.append(dentist_public(dentist, session.get(User, dentist.user_id)))
    return result


@router.get("/{dentist_id}", response_model=DentistPublic)
def get_dentist(
    dentist_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    dentist = get_dentist_or_404(session, dentist_id)
    return dentist_public(dentist, session.get(User, dentist.user_id))


@router.post("", response_model=DentistPublic, status_code=201)
def create_dentist(
    body: DentistCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    require_staff(current_user)
    if current_user.role == "dentist" and current_user.id != body.user_id:
        raise HTTPException(status_code=403, detail="Access denied")

    user = session.get(User, body.user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    if user.role != "dentist":
        raise HTTPException(status_code=400, detail="User must have dentist role")

    # Registration leaves a stub without credentials; fill it in
    dentist = session.exec(select(Dentist).where(Dentist.user_id == body.user_id)).first()
    if dentist is not None and dentist.credentials:
        raise HTTPException(status_code=409, detail="Dentist profile already exists")
    if dentist is None:
        dentist = Dentist(dentist_code=sequences.dentist_code(session), user_id=body.user_id)

    data = body.model_dump(mode="json", exclude={"user_id", "credentials"})
    for key, value in data.items():
        setattr(dentist, key, value)
    dentist.credentials = [dict(c.model_dump(mode="json"), id=c.id or uuid4().hex) for c in body.credentials]

    result = save(session, dentist)
    logger.info("Dentist profile %s created for user %s", dentist.dentist_code, user.id)
    return result


@router.put("/{dentist_id}", response_model=DentistPublic)
def update_dentist(
    dentist_id: int,
    body: DentistUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    dentist = get_dentist_or_404(session, dentist_id)
    ensure_own_or_staff(current_user, dentist)

    for key, value in body.model_dump(mode="json", exclude_none=True).items():
        setattr(dentist, key, value)
    return save(session, dentist)


@router.get("/{dentist_id}/availability", response_model=AvailabilityResponse)
def dentist_availability(
    dentist_id: int,
    on: date = Query(..., alias="date"),
    free_only: bool = False,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    dentist = get_dentist_or_404(session, dentist_id)
    ensure_active(dentist)

    schedule = dentist.to_schedule()
    if free_only:
        slots = free_slots(schedule, day_appointments(session, dentist.id, on), on)
    else:
        slots = compute_open_slots(schedule.weekly_rules, schedule.absences, schedule.policy, on)

    return {
        "dentist_id": dentist.id,
        "date": on,
        "available_slots": slots,
        "consultation_duration": dentist.consultation_duration,
        "buffer_time": dentist.buffer_time,
    }


@router.put("/{dentist_id}/schedule", response_model=DentistPublic)
def update_schedule(
    dentist_id: int,
    body: ScheduleUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    dentist = get_dentist_or_404(session, dentist_id)
    ensure_own_or_staff(current_user, dentist)

    if body.regular_hours is not None:
        dentist.regular_hours = [
            dict(rule.model_dump(mode="json"), id=rule.id or uuid4().hex) for rule in body.regular_hours
        ]
    if body.consultation_duration is not None:
        dentist.consultation_duration = body.consultation_duration
    if body.buffer_time is not None:
        dentist.buffer_time = body.buffer_time

    result = save(session, dentist)
    logger.info("Schedule updated for dentist %s", dentist.dentist_code)
    return result


@router.post("/{dentist_id}/time-off", response_model=DentistPublic, status_code=201)
def request_time_off(
    dentist_id: int,
    body: TimeOffCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    dentist = get_dentist_or_404(session, dentist_id)
    ensure_own_or_staff(current_user, dentist)

    # 1) Validate the range
    if body.end_date < body.start_date:
        raise HTTPException(status_code=400, detail="End date must be on or after start date")
    if body.start_date < date.today():
        raise HTTPException(status_code=400, detail="Time off cannot start in the past")

    # 2) Store as pending; approval is a separate step
    entry = dict(body.model_dump(mode="json"), id=uuid4().hex, is_approved=False)
    dentist.time_off = list(dentist.time_off or []) + [entry]
    return save(session, dentist)


@router.put("/{dentist_id}/time-off/{time_off_id}", response_model=DentistPublic)
def decide_time_off(
    dentist_id: int,
    time_off_id: str,
    body: TimeOffDecision,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    require_role(current_user, "staff", "admin")
    dentist = get_dentist_or_404(session, dentist_id)

    entries = [dict(t) for t in dentist.time_off or []]
    index = find_record(entries, time_off_id, "Time off request")
    entries[index]["is_approved"] = body.is_approved
    dentist.time_off = entries

    result = save(session, dentist)
    logger.info(
        "Time off %s for dentist %s %s",
        time_off_id,
        dentist.dentist_code,
        "approved" if body.is_approved else "rejected",
    )
    return result


@router.post("/{dentist_id}/credentials", response_model=DentistPublic, status_code=201)
def add_credential(
    dentist_id: int,
    credential: Credential,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    dentist = get_dentist_or_404(session, dentist_id)
    ensure_own_or_staff(current_user, dentist)

    entry = dict(credential.model_dump(mode="json"), id=uuid4().hex)
    dentist.credentials = list(dentist.credentials or []) + [entry]
    return save(session, dentist)


@router.put("/{dentist_id}/credentials/{credential_id}", response_model=DentistPublic)
def set_credential_status(
    dentist_id: int,
    credential_id: str,
    body: CredentialStatus,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    dentist = get_dentist_or_404(session, dentist_id)
    ensure_own_or_staff(current_user, dentist)

    entries = [dict(c) for c in dentist.credentials or []]
    index = find_record(entries, credential_id, "Credential")
    entries[index]["is_active"] = body.is_active
    dentist.credentials = entries
    return save(session, dentist)


@router.put("/{dentist_id}/status", response_model=DentistPublic)
def set_dentist_status(
    dentist_id: int,
    body: DentistStatusUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    require_role(current_user, "staff", "admin")
    dentist = get_dentist_or_404(session, dentist_id)

    dentist.status = body.status.value
    result = save(session, dentist)
    logger.info("Dentist %s status set to %s", dentist.dentist_code, dentist.status)
    return result


@router.delete("/{dentist_id}", status_code=204)
def delete_dentist(
    dentist_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    require_role(current_user, "admin")
    dentist = get_dentist_or_404(session, dentist_id)
    session.delete(dentist)
    session.commit()
    logger.info("Dentist %s deleted by user %s", dentist_id, current_user.id)
