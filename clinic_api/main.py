# clinic_api/main.py

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import LOG_LEVEL
from .db import init_db
from .routers import appointments_routes, auth_routes, dentists_routes, patients_routes, users_routes
from .scheduling.errors import (
    IllegalTransition,
    InvalidInterval,
    PractitionerUnavailable,
    SchedulingConflict,
    SchedulingError,
)

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# HTTP status for each scheduling failure
ERROR_STATUS = {
    InvalidInterval: 400,
    PractitionerUnavailable: 409,
    SchedulingConflict: 409,
    IllegalTransition: 400,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    init_db()
    yield
    logger.info("Application shutting down...")


async def scheduling_error_handler(request: Request, exc: SchedulingError):
    status_code = ERROR_STATUS.get(type(exc), 400)
    logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content={"detail": exc.message})


def create_app() -> FastAPI:
    app = FastAPI(title="Clinic API", version="1.0.0", lifespan=lifespan)

    app.add_exception_handler(SchedulingError, scheduling_error_handler)

    app.include_router(auth_routes.router)
    app.include_router(users_routes.router)
    app.include_router(patients_routes.router)
    app.include_router(dentists_routes.router)
    app.include_router(appointments_routes.router)

    @app.get("/health")
    def health_check():
        return {"status": "ok"}

    return app


app = create_app()
