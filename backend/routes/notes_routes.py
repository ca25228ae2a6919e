from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from backend.models.appointment_note import PaymentStatus
from backend.routes.dependencies import database_unavailable, ensure_database_ready, get_engine
from backend.scheduling.engine import SchedulingEngine

router = APIRouter(tags=['notes'])


class AppointmentNoteResponse(BaseModel):
    id: int
    appointment_id: int
    patient_id: str
    treatment_notes: str | None = None
    reminder_notes: str | None = None
    payment_status: PaymentStatus
    payment_amount: Decimal | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


@router.get('/patient/{patient_id}', response_model=list[AppointmentNoteResponse])
def list_patient_notes(patient_id: str, engine: SchedulingEngine = Depends(get_engine)):
    ensure_database_ready()

    try:
        return [AppointmentNoteResponse.model_validate(note) for note in engine.list_patient_notes(patient_id.strip())]
    except SQLAlchemyError as exc:
        raise database_unavailable(engine) from exc
