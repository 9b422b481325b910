# clinic_api/routers/appointments_routes.py

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from clinic_api import sequences
from clinic_api.db import get_session
from clinic_api.deps import get_actor, get_reminder_dispatcher, require_role
from clinic_api.models import Appointment, Patient, utcnow
from clinic_api.pagination import Page, PageParams, paginate, page_params
from clinic_api.reminders import ReminderDispatcher
from clinic_api.routers.dentists_routes import day_appointments, ensure_active, get_dentist_or_404
from clinic_api.scheduling import lifecycle
from clinic_api.scheduling.values import Actor, AppointmentStatus, BookingInterval
from clinic_api.schemas import (
    PATIENT_EDITABLE_FIELDS,
    AppointmentCreate,
    AppointmentPublic,
    AppointmentStats,
    AppointmentType,
    AppointmentUpdate,
    CancelRequest,
    CompleteRequest,
    Priority,
    ReminderPublic,
    ReminderRequest,
    RescheduleRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/appointments",
    tags=["appointments"],
)


def get_appointment_or_404(session: Session, appointment_id: int) -> Appointment:
    appointment = session.get(Appointment, appointment_id)
    if appointment is None:
        raise HTTPException(status_code=404, detail="Appointment not found")
    return appointment


def ensure_access(actor: Actor, appointment: Appointment):
    if actor.role == "dentist" and appointment.dentist_id != actor.dentist_id:
        raise HTTPException(status_code=403, detail="Access denied")
    if not actor.owns(appointment):
        raise HTTPException(status_code=403, detail="Access denied")


def require_staff_actor(actor: Actor):
    if not actor.is_staff:
        raise HTTPException(status_code=403, detail="Forbidden")


def reject_past(on: date):
    if on < date.today():
        raise HTTPException(status_code=400, detail="Cannot book appointments in the past")


def commit(session: Session, appointment: Appointment) -> Appointment:
    appointment.updated_at = utcnow()
    session.add(appointment)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise HTTPException(status_code=409, detail="Appointment time conflicts with existing appointment")
    session.refresh(appointment)
    return appointment


def scoped(stmt, actor: Actor):
    """Patients and dentists only ever see their own bookings."""
    if actor.role == "patient":
        return stmt.where(Appointment.patient_id == (actor.patient_id or -1))
    if actor.role == "dentist":
        return stmt.where(Appointment.dentist_id == (actor.dentist_id or -1))
    return stmt


@router.get("", response_model=Page[AppointmentPublic])
def list_appointments(
    status: Optional[AppointmentStatus] = None,
    type: Optional[AppointmentType] = None,
    priority: Optional[Priority] = None,
    dentist_id: Optional[int] = None,
    patient_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    params: PageParams = Depends(page_params),
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_actor),
):
    stmt = scoped(select(Appointment), actor)

    if status is not None:
        stmt = stmt.where(Appointment.status == status.value)
    if type is not None:
        stmt = stmt.where(Appointment.type == type.value)
    if priority is not None:
        stmt = stmt.where(Appointment.priority == priority.value)
    if dentist_id is not None:
        stmt = stmt.where(Appointment.dentist_id == dentist_id)
    if patient_id is not None:
        stmt = stmt.where(Appointment.patient_id == patient_id)
    if date_from is not None:
        stmt = stmt.where(Appointment.appointment_date >= date_from)
    if date_to is not None:
        stmt = stmt.where(Appointment.appointment_date <= date_to)

    stmt = stmt.order_by(Appointment.appointment_date, Appointment.start_time)
    appointments, meta = paginate(session, stmt, params)
    return {"items": appointments, "pagination": meta}


@router.get("/stats", response_model=AppointmentStats)
def appointment_stats(
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_actor),
):
    require_staff_actor(actor)

    appointments = session.exec(scoped(select(Appointment), actor)).all()
    total = len(appointments)

    def count(status: str) -> int:
        return sum(1 for a in appointments if a.status == status)

    by_type = {}
    for a in appointments:
        by_type[a.type] = by_type.get(a.type, 0) + 1

    costs = [a.cost_actual for a in appointments if a.cost_actual]
    completed = count("completed")
    cancelled = count("cancelled")
    return {
        "total_appointments": total,
        "scheduled_appointments": count("scheduled"),
        "confirmed_appointments": count("confirmed"),
        "completed_appointments": completed,
        "cancelled_appointments": cancelled,
        "no_show_appointments": count("no-show"),
        "appointments_by_type": by_type,
        "average_cost": round(sum(costs) / len(costs), 2) if costs else 0,
        "completion_rate": round(completed / total * 100, 1) if total else 0,
        "cancellation_rate": round(cancelled / total * 100, 1) if total else 0,
    }


@router.get("/date-range", response_model=List[AppointmentPublic])
def appointments_in_range(
    start_date: date = Query(...),
    end_date: date = Query(...),
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_actor),
):
    if end_date < start_date:
        raise HTTPException(status_code=400, detail="end_date must be on or after start_date")

    stmt = (
        scoped(select(Appointment), actor)
        .where(Appointment.appointment_date >= start_date)
        .where(Appointment.appointment_date <= end_date)
        .order_by(Appointment.appointment_date, Appointment.start_time)
    )
    return session.exec(stmt).all()


@router.get("/{appointment_id}", response_model=AppointmentPublic)
def get_appointment(
    appointment_id: int,
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_actor),
):
    appointment = get_appointment_or_404(session, appointment_id)
    ensure_access(actor, appointment)
    return appointment


@router.post("", response_model=AppointmentPublic, status_code=201)
def create_appointment(
    body: AppointmentCreate,
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_actor),
):
    # 1) Patients book for themselves only
    if actor.role == "patient" and body.patient_id != actor.patient_id:
        raise HTTPException(status_code=403, detail="Patients can only book appointments for themselves")

    if session.get(Patient, body.patient_id) is None:
        raise HTTPException(status_code=404, detail="Patient not found")
    dentist = get_dentist_or_404(session, body.dentist_id)
    ensure_active(dentist)

    # 2) No bookings in the past
    reject_past(body.appointment_date)

    # 3) Validate against working hours, time off and the dentist's other bookings
    appointment = Appointment(
        appointment_code=sequences.appointment_code(session, date.today()),
        patient_id=body.patient_id,
        dentist_id=body.dentist_id,
        appointment_date=body.appointment_date,
        start_time=body.start_time,
        end_time=body.end_time,
        type=body.type.value,
        priority=body.priority.value,
        reason=body.reason,
        symptoms=body.symptoms,
        notes={"before_appointment": body.notes_before} if body.notes_before else {},
        cost_estimated=body.cost_estimated,
    )
    lifecycle.book(
        appointment,
        dentist.to_schedule(),
        day_appointments(session, dentist.id, body.appointment_date),
    )

    # 4) Persist; the unique index catches a concurrent booking of the same start
    commit(session, appointment)
    logger.info(
        "Appointment %s booked with dentist %s on %s",
        appointment.appointment_code,
        dentist.dentist_code,
        appointment.appointment_date,
    )
    return appointment


@router.put("/{appointment_id}", response_model=AppointmentPublic)
def update_appointment(
    appointment_id: int,
    body: AppointmentUpdate,
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_actor),
):
    appointment = get_appointment_or_404(session, appointment_id)
    ensure_access(actor, appointment)

    changes = body.model_dump(exclude_none=True)
    if actor.role == "patient":
        disallowed = set(changes) - PATIENT_EDITABLE_FIELDS
        if disallowed:
            raise HTTPException(
                status_code=403,
                detail=f"Patients cannot change: {', '.join(sorted(disallowed))}",
            )

    if "notes_before" in changes:
        notes = dict(appointment.notes or {})
        notes["before_appointment"] = changes.pop("notes_before")
        changes["notes"] = notes
    for key in ("type", "priority"):
        if key in changes:
            changes[key] = changes[key].value

    schedule = None
    day_appts = ()
    if any(key in changes for key in lifecycle.TIMING_FIELDS):
        dentist = get_dentist_or_404(session, changes.get("dentist_id", appointment.dentist_id))
        ensure_active(dentist)
        on = changes.get("appointment_date", appointment.appointment_date)
        reject_past(on)
        schedule = dentist.to_schedule()
        day_appts = day_appointments(session, dentist.id, on)

    lifecycle.apply_update(appointment, changes, schedule, day_appts)
    return commit(session, appointment)


@router.put("/{appointment_id}/cancel", response_model=AppointmentPublic)
def cancel_appointment(
    appointment_id: int,
    body: CancelRequest = CancelRequest(),
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_actor),
):
    # 1) Find the appointment and check who is asking
    appointment = get_appointment_or_404(session, appointment_id)
    ensure_access(actor, appointment)

    # 2) Transition and persist
    lifecycle.cancel(appointment, actor, reason=body.reason, refund_amount=body.refund_amount)
    commit(session, appointment)
    logger.info("Appointment %s cancelled by %s", appointment.appointment_code, actor.party.value)
    return appointment


@router.put("/{appointment_id}/reschedule", response_model=AppointmentPublic)
def reschedule_appointment(
    appointment_id: int,
    body: RescheduleRequest,
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_actor),
):
    appointment = get_appointment_or_404(session, appointment_id)
    ensure_access(actor, appointment)
    reject_past(body.new_date)

    dentist = get_dentist_or_404(session, appointment.dentist_id)
    ensure_active(dentist)

    lifecycle.reschedule(
        appointment,
        dentist.to_schedule(),
        day_appointments(session, dentist.id, body.new_date),
        BookingInterval(date=body.new_date, start_time=body.new_start_time, end_time=body.new_end_time),
        actor,
        reason=body.reason,
    )
    commit(session, appointment)
    logger.info("Appointment %s moved to %s", appointment.appointment_code, appointment.appointment_date)
    return appointment


@router.put("/{appointment_id}/confirm", response_model=AppointmentPublic)
def confirm_appointment(
    appointment_id: int,
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_actor),
):
    require_staff_actor(actor)
    appointment = get_appointment_or_404(session, appointment_id)
    ensure_access(actor, appointment)

    lifecycle.confirm(appointment)
    return commit(session, appointment)


@router.put("/{appointment_id}/complete", response_model=AppointmentPublic)
def complete_appointment(
    appointment_id: int,
    body: CompleteRequest = CompleteRequest(),
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_actor),
):
    require_staff_actor(actor)
    appointment = get_appointment_or_404(session, appointment_id)
    ensure_access(actor, appointment)

    lifecycle.complete(
        appointment,
        treatments=[t.model_dump(mode="json") for t in body.treatments],
        notes=body.notes.model_dump() if body.notes else None,
        follow_up=body.follow_up.model_dump(mode="json") if body.follow_up else None,
        actual_cost=body.actual_cost,
    )
    return commit(session, appointment)


@router.put("/{appointment_id}/no-show", response_model=AppointmentPublic)
def no_show_appointment(
    appointment_id: int,
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_actor),
):
    require_staff_actor(actor)
    appointment = get_appointment_or_404(session, appointment_id)
    ensure_access(actor, appointment)

    lifecycle.mark_no_show(appointment)
    return commit(session, appointment)


@router.post("/{appointment_id}/reminder", response_model=ReminderPublic)
def send_reminder(
    appointment_id: int,
    body: ReminderRequest = ReminderRequest(),
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_actor),
    dispatcher: ReminderDispatcher = Depends(get_reminder_dispatcher),
):
    require_staff_actor(actor)
    appointment = get_appointment_or_404(session, appointment_id)
    ensure_access(actor, appointment)

    reminder = lifecycle.record_reminder(appointment, body.type.value)
    commit(session, appointment)
    dispatcher.send(appointment, reminder)
    return reminder


@router.delete("/{appointment_id}", status_code=204)
def delete_appointment(
    appointment_id: int,
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_actor),
):
    require_role(actor, "admin")
    appointment = get_appointment_or_404(session, appointment_id)
    session.delete(appointment)
    session.commit()
    logger.info("Appointment %s deleted", appointment.appointment_code)
