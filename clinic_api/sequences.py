# clinic_api/sequences.py

from datetime import date as Date

from sqlmodel import Session

from .models import Counter


def next_value(session: Session, name: str) -> int:
    """Bump the named counter inside the caller's transaction."""
    counter = session.get(Counter, name, with_for_update=True)
    if counter is None:
        counter = Counter(name=name, value=0)
    counter.value += 1
    session.add(counter)
    session.flush()
    return counter.value


def patient_code(session: Session) -> str:
    return f"PAT{next_value(session, 'patient'):06d}"


def dentist_code(session: Session) -> str:
    return f"DEN{next_value(session, 'dentist'):04d}"


def appointment_code(session: Session, on: Date) -> str:
    day = on.strftime("%Y%m%d")
    return f"APT{day}{next_value(session, f'appointment:{day}'):03d}"
