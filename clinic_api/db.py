# clinic_api/db.py

import logging

from sqlmodel import SQLModel, create_engine, Session

from .config import DATABASE_URL, SQL_ECHO

logger = logging.getLogger(__name__)


def make_engine(url: str = DATABASE_URL, **kwargs):
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False  # required for SQLite + FastAPI
    return create_engine(url, echo=SQL_ECHO, connect_args=connect_args, **kwargs)


# Engine = connection to the database
engine = make_engine()


def init_db(bind=None) -> None:
    # models must be imported so their tables are registered on the metadata
    from . import models  # noqa: F401

    bind = bind or engine
    logger.info("Creating tables on %s", bind.url)
    SQLModel.metadata.create_all(bind)


# Dependency: one session per request
def get_session():
    with Session(engine) as session:
        yield session
