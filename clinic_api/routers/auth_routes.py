# clinic_api/routers/auth_routes.py

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import OAuth2PasswordRequestForm
from sqlmodel import Session, select

from clinic_api import sequences
from clinic_api.auth import create_access_token, get_current_user, hash_password, verify_password
from clinic_api.db import get_session
from clinic_api.models import Dentist, Patient, User
from clinic_api.schemas import RegisterResponse, Token, UserCreate, UserPublic

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["auth"],
)


@router.post("/register", response_model=RegisterResponse, status_code=201)
def register(
    user: UserCreate,
    session: Session = Depends(get_session),
):
    # 1) Check if email already exists
    existing = session.exec(
        select(User).where(User.email == user.email)
    ).first()
    if existing is not None:
        raise HTTPException(status_code=409, detail="User with this email already exists")

    # 2) Create user in DB
    db_user = User(
        email=user.email,
        password_hash=hash_password(user.password),
        first_name=user.first_name,
        last_name=user.last_name,
        phone=user.phone,
        role=user.role.value,
        last_login=datetime.now(timezone.utc),
    )
    session.add(db_user)
    session.flush()  # fills db_user.id

    # 3) Role profile stub, completed later through /patients or /dentists
    profile_id = None
    if db_user.role == "patient":
        profile = Patient(patient_code=sequences.patient_code(session), user_id=db_user.id)
        session.add(profile)
        session.flush()
        profile_id = profile.id
    elif db_user.role == "dentist":
        profile = Dentist(
            dentist_code=sequences.dentist_code(session),
            user_id=db_user.id,
            specializations=["general-dentistry"],
        )
        session.add(profile)
        session.flush()
        profile_id = profile.id

    session.commit()
    session.refresh(db_user)
    logger.info("Registered %s user %s", db_user.role, db_user.id)

    return {
        "user": UserPublic.model_validate(db_user),
        "profile_id": profile_id,
        "access_token": create_access_token({"sub": db_user.email}),
        "token_type": "bearer",
    }


@router.post("/login", response_model=Token)
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    session: Session = Depends(get_session),
):
    # Swagger OAuth2 "password" flow uses "username" field
    email = form_data.username.strip().lower()
    password = form_data.password

    user = session.exec(
        select(User).where(User.email == email)
    ).first()

    if user is None or not verify_password(password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="Account is deactivated. Please contact support.")

    user.last_login = datetime.now(timezone.utc)
    session.add(user)
    session.commit()

    token = create_access_token({"sub": user.email})
    return {"access_token": token, "token_type": "bearer"}


@router.post("/logout")
def logout(current_user: User = Depends(get_current_user)):
    # tokens are stateless; the client drops its copy
    return {"detail": "Logout successful"}
