from datetime import date, datetime, time
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError

from backend.core import config
from backend.models.appointment import AppointmentStatus
from backend.models.appointment_note import PaymentStatus
from backend.routes.dependencies import (
    database_unavailable,
    ensure_database_ready,
    get_engine,
    scheduling_http_error,
    sweep_missed_if_enabled,
)
from backend.scheduling.engine import BookingOrigin, BookingRequest, SchedulingEngine
from backend.scheduling.errors import SchedulingError
from backend.scheduling.notes import CompletionNotes

router = APIRouter(tags=['appointments'])


def _normalize_required(value: str, message: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError(message)
    return normalized


def _normalize_optional(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


class CreateAppointmentRequest(BaseModel):
    patient_id: str
    title: str
    date: date
    start_time: time
    end_time: time

    @field_validator('patient_id')
    @classmethod
    def validate_patient_id(cls, value: str) -> str:
        return _normalize_required(value, 'Patient is required.')

    @field_validator('title')
    @classmethod
    def validate_title(cls, value: str) -> str:
        normalized = _normalize_required(value, 'Title is required.')
        if len(normalized) > config.MAX_TITLE_LENGTH:
            raise ValueError(f'Title must be {config.MAX_TITLE_LENGTH} characters or fewer.')
        return normalized

    def to_booking(self, origin: BookingOrigin) -> BookingRequest:
        return BookingRequest(
            patient_id=self.patient_id,
            date=self.date,
            start_time=self.start_time,
            end_time=self.end_time,
            title=self.title,
            origin=origin,
        )


class RescheduleAppointmentRequest(BaseModel):
    date: date
    start_time: time
    end_time: time


class CancelAppointmentRequest(BaseModel):
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        return _normalize_optional(value)


class PaymentRequest(BaseModel):
    status: PaymentStatus = PaymentStatus.PENDING
    amount: Decimal | None = Field(default=None, ge=0)


class CompleteAppointmentRequest(BaseModel):
    treatment_notes: str | None = None
    reminder_notes: str | None = None
    payment: PaymentRequest | None = None

    @field_validator('treatment_notes', 'reminder_notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        normalized = _normalize_optional(value)
        if normalized is not None and len(normalized) > config.MAX_NOTES_LENGTH:
            raise ValueError(f'Notes must be {config.MAX_NOTES_LENGTH} characters or fewer.')
        return normalized

    def to_completion_notes(self) -> CompletionNotes | None:
        if self.treatment_notes is None and self.reminder_notes is None and self.payment is None:
            return None

        payment = self.payment or PaymentRequest()
        return CompletionNotes(
            treatment_notes=self.treatment_notes,
            reminder_notes=self.reminder_notes,
            payment_status=payment.status,
            payment_amount=payment.amount,
        )


class AppointmentResponse(BaseModel):
    id: int
    patient_id: str
    title: str
    date: date
    start_time: time
    end_time: time
    status: AppointmentStatus
    cancellation_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class SweepResponse(BaseModel):
    cancelled: int


def _run(engine: SchedulingEngine, operation, *args, **kwargs) -> AppointmentResponse:
    try:
        appointment = operation(*args, **kwargs)
        return AppointmentResponse.model_validate(appointment)
    except SchedulingError as exc:
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(engine) from exc


def _list(engine: SchedulingEngine, query, *args, sweep: bool = True) -> list[AppointmentResponse]:
    try:
        if sweep:
            sweep_missed_if_enabled(engine)
        return [AppointmentResponse.model_validate(appointment) for appointment in query(*args)]
    except SQLAlchemyError as exc:
        raise database_unavailable(engine) from exc


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(data: CreateAppointmentRequest, engine: SchedulingEngine = Depends(get_engine)):
    ensure_database_ready()
    return _run(engine, engine.book, data.to_booking(BookingOrigin.STAFF))


@router.post('/requests', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def request_appointment(data: CreateAppointmentRequest, engine: SchedulingEngine = Depends(get_engine)):
    ensure_database_ready()
    return _run(engine, engine.book, data.to_booking(BookingOrigin.PUBLIC))


@router.get('', response_model=list[AppointmentResponse])
def list_appointments(
    appointment_date: date | None = Query(default=None, alias='date'),
    appointment_status: AppointmentStatus | None = Query(default=None, alias='status'),
    engine: SchedulingEngine = Depends(get_engine),
):
    ensure_database_ready()
    return _list(engine, engine.list_appointments, appointment_date, appointment_status)


@router.get('/archived', response_model=list[AppointmentResponse])
def list_archived_appointments(
    appointment_date: date | None = Query(default=None, alias='date'),
    engine: SchedulingEngine = Depends(get_engine),
):
    ensure_database_ready()
    return _list(engine, engine.list_archived, appointment_date)


@router.get('/missed', response_model=list[AppointmentResponse])
def list_missed_appointments(engine: SchedulingEngine = Depends(get_engine)):
    ensure_database_ready()
    return _list(engine, engine.list_missed, sweep=False)


@router.post('/missed/sweep', response_model=SweepResponse)
def sweep_missed_appointments(engine: SchedulingEngine = Depends(get_engine)):
    ensure_database_ready()

    try:
        return SweepResponse(cancelled=engine.sweep_missed())
    except SQLAlchemyError as exc:
        raise database_unavailable(engine) from exc


@router.get('/patient/{patient_id}', response_model=list[AppointmentResponse])
def list_patient_appointments(
    patient_id: str,
    sort_by: str = Query(default='date', alias='sortBy', pattern='^(date|created)$'),
    engine: SchedulingEngine = Depends(get_engine),
):
    normalized_patient_id = patient_id.strip()
    if not normalized_patient_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Patient is required.',
        )

    ensure_database_ready()
    return _list(engine, engine.list_patient_appointments, normalized_patient_id, sort_by)


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(appointment_id: int, engine: SchedulingEngine = Depends(get_engine)):
    ensure_database_ready()
    return _run(engine, engine.get_appointment, appointment_id)


@router.post('/{appointment_id}/approve', response_model=AppointmentResponse)
def approve_appointment(appointment_id: int, engine: SchedulingEngine = Depends(get_engine)):
    ensure_database_ready()
    return _run(engine, engine.approve, appointment_id)


@router.post('/{appointment_id}/reschedule', response_model=AppointmentResponse)
def reschedule_appointment(
    appointment_id: int,
    data: RescheduleAppointmentRequest,
    engine: SchedulingEngine = Depends(get_engine),
):
    ensure_database_ready()
    return _run(engine, engine.reschedule, appointment_id, data.date, data.start_time, data.end_time)


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    data: CancelAppointmentRequest | None = None,
    engine: SchedulingEngine = Depends(get_engine),
):
    ensure_database_ready()
    reason = data.reason if data is not None else None
    return _run(engine, engine.cancel, appointment_id, reason)


@router.post('/{appointment_id}/complete', response_model=AppointmentResponse)
def complete_appointment(
    appointment_id: int,
    data: CompleteAppointmentRequest | None = None,
    engine: SchedulingEngine = Depends(get_engine),
):
    ensure_database_ready()
    notes = data.to_completion_notes() if data is not None else None
    return _run(engine, engine.complete, appointment_id, notes)
