# clinic_api/routers/users_routes.py

import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func
from sqlmodel import Session, select

from clinic_api.auth import get_current_user, hash_password, verify_password
from clinic_api.db import get_session
from clinic_api.deps import require_role
from clinic_api.models import Dentist, Patient, User
from clinic_api.routers.dentists_routes import dentist_public
from clinic_api.routers.patients_routes import patient_public
from clinic_api.schemas import MeResponse, PasswordChange, ProfileUpdate, RoleUpdate, UserPublic, UserStats

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["users"],
)


@router.get("/me", response_model=MeResponse)
def me(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    data = UserPublic.model_validate(current_user).model_dump()

    if current_user.role == "patient":
        patient = session.exec(select(Patient).where(Patient.user_id == current_user.id)).first()
        if patient is not None:
            data["patient"] = patient_public(patient, current_user)
    elif current_user.role == "dentist":
        dentist = session.exec(select(Dentist).where(Dentist.user_id == current_user.id)).first()
        if dentist is not None:
            data["dentist"] = dentist_public(dentist, current_user)

    return data


@router.put("/me", response_model=UserPublic)
def update_me(
    changes: ProfileUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    for key, value in changes.model_dump(exclude_none=True).items():
        setattr(current_user, key, value)

    session.add(current_user)
    session.commit()
    session.refresh(current_user)
    return current_user


@router.put("/me/password")
def change_password(
    body: PasswordChange,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    if not verify_password(body.current_password, current_user.password_hash):
        raise HTTPException(status_code=401, detail="Current password is incorrect")

    current_user.password_hash = hash_password(body.new_password)
    session.add(current_user)
    session.commit()
    logger.info("User %s changed password", current_user.id)
    return {"detail": "Password changed successfully"}


@router.put("/me/deactivate")
def deactivate_me(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    current_user.is_active = False
    session.add(current_user)
    session.commit()
    logger.info("User %s deactivated their account", current_user.id)
    return {"detail": "Account deactivated successfully"}


@router.put("/users/{user_id}/activate", response_model=UserPublic)
def activate_user(
    user_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    require_role(current_user, "admin")

    user = session.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")

    user.is_active = True
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@router.put("/users/{user_id}/role", response_model=UserPublic)
def set_user_role(
    user_id: int,
    body: RoleUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    require_role(current_user, "admin")

    user = session.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")

    user.role = body.role.value
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("User %s role set to %s by %s", user.id, user.role, current_user.id)
    return user


@router.get("/users/stats", response_model=UserStats)
def user_stats(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    require_role(current_user, "admin")

    def count(*where) -> int:
        return session.exec(select(func.count()).select_from(User).where(*where)).one()

    month_ago = datetime.now(timezone.utc) - timedelta(days=30)
    return {
        "total_patients": count(User.role == "patient", User.is_active),
        "total_dentists": count(User.role == "dentist", User.is_active),
        "total_staff": count(User.role == "staff", User.is_active),
        "total_active_users": count(User.is_active),
        "new_users_last_month": count(User.created_at >= month_ago),
    }
