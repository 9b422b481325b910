"""Shared fixtures: an app wired to a private in-memory database."""

from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session

from clinic_api.auth import create_access_token, hash_password
from clinic_api.db import get_session, init_db, make_engine
from clinic_api.main import create_app
from clinic_api.models import User

PASSWORD = "s3cret-pass"


def next_weekday(weekday: int) -> date:
    """Next date strictly after today with ``date.weekday() == weekday``."""
    today = date.today()
    ahead = (weekday - today.weekday()) % 7 or 7
    return today + timedelta(days=ahead)


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def engine():
    engine = make_engine("sqlite://", poolclass=StaticPool)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def client(engine):
    app = create_app()

    def session_override():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = session_override
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def register(client):
    """Register a user; returns (token, profile_id)."""

    def _register(email: str, role: str = "patient", first_name: str = "Test", last_name: str = "User"):
        response = client.post(
            "/auth/register",
            json={
                "email": email,
                "password": PASSWORD,
                "first_name": first_name,
                "last_name": last_name,
                "role": role,
            },
        )
        assert response.status_code == 201, response.text
        data = response.json()
        return data["access_token"], data["profile_id"]

    return _register


@pytest.fixture
def seed_user(engine):
    """Insert a user straight into the database; returns a bearer token.

    Staff and admin accounts cannot self-register.
    """

    def _seed(email: str, role: str, first_name: str = "Test", last_name: str = "User") -> str:
        with Session(engine) as session:
            session.add(
                User(
                    email=email,
                    password_hash=hash_password(PASSWORD),
                    role=role,
                    first_name=first_name,
                    last_name=last_name,
                )
            )
            session.commit()
        return create_access_token({"sub": email})

    return _seed


@pytest.fixture
def admin(seed_user):
    return seed_user("admin@clinic.test", role="admin")


@pytest.fixture
def staff(seed_user):
    return seed_user("desk@clinic.test", role="staff")


@pytest.fixture
def patient(register):
    return register("pat@clinic.test", first_name="Pat", last_name="Jones")


@pytest.fixture
def dentist(client, register):
    """Active dentist working Mondays 09:00-12:00, 30 minute slots, 15 minute buffer."""
    token, dentist_id = register("doc@clinic.test", role="dentist", first_name="Ana", last_name="Silva")
    response = client.put(
        f"/dentists/{dentist_id}/schedule",
        json={
            "regular_hours": [{"day_of_week": 1, "start_time": "09:00", "end_time": "12:00"}],
            "consultation_duration": 30,
            "buffer_time": 15,
        },
        headers=auth(token),
    )
    assert response.status_code == 200, response.text
    return token, dentist_id


@pytest.fixture
def monday():
    return next_weekday(0)
