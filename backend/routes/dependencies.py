from fastapi import Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core import config
from backend.database import SessionLocal, ensure_appointment_note_schema, ensure_appointment_schema
from backend.scheduling.engine import SchedulingEngine
from backend.scheduling.errors import (
    InPast,
    InvalidStateTransition,
    NotFound,
    OutOfHours,
    SchedulingError,
    SlotUnavailable,
    ValidationError,
)

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'

SCHEDULING_ERROR_STATUS = {
    NotFound: status.HTTP_404_NOT_FOUND,
    SlotUnavailable: status.HTTP_409_CONFLICT,
    InvalidStateTransition: status.HTTP_409_CONFLICT,
    OutOfHours: status.HTTP_400_BAD_REQUEST,
    InPast: status.HTTP_400_BAD_REQUEST,
    ValidationError: status.HTTP_400_BAD_REQUEST,
}


def ensure_database_ready() -> None:
    try:
        ensure_appointment_schema()
        ensure_appointment_note_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_engine(db: Session = Depends(get_db)) -> SchedulingEngine:
    return SchedulingEngine(db)


def scheduling_http_error(exc: SchedulingError) -> HTTPException:
    return HTTPException(
        status_code=SCHEDULING_ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST),
        detail=exc.message,
    )


def database_unavailable(engine: SchedulingEngine) -> HTTPException:
    engine.db.rollback()
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )


def sweep_missed_if_enabled(engine: SchedulingEngine) -> None:
    if config.SWEEP_MISSED_ON_READ:
        engine.sweep_missed()
