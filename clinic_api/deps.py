# clinic_api/deps.py

from fastapi import Depends, HTTPException
from sqlmodel import Session, select

from .auth import get_current_user
from .db import get_session
from .models import Dentist, Patient, User
from .reminders import LoggingReminderDispatcher, ReminderDispatcher
from .scheduling.values import Actor

STAFF_ROLES = ("dentist", "staff", "admin")


def require_role(user: User, *roles: str):
    if user.role not in roles:
        raise HTTPException(status_code=403, detail="Forbidden")


def require_staff(user: User):
    require_role(user, *STAFF_ROLES)


def get_actor(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> Actor:
    patient_id = None
    dentist_id = None
    if current_user.role == "patient":
        patient_id = session.exec(
            select(Patient.id).where(Patient.user_id == current_user.id)
        ).first()
    elif current_user.role == "dentist":
        dentist_id = session.exec(
            select(Dentist.id).where(Dentist.user_id == current_user.id)
        ).first()

    return Actor(
        user_id=current_user.id,
        role=current_user.role,
        patient_id=patient_id,
        dentist_id=dentist_id,
    )


_dispatcher = LoggingReminderDispatcher()


def get_reminder_dispatcher() -> ReminderDispatcher:
    return _dispatcher
