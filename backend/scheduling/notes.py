"""Treatment notes and payment status attached to completed appointments."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable

from sqlalchemy.orm import Session

from backend.models.appointment_note import AppointmentNote, PaymentStatus


@dataclass(frozen=True)
class CompletionNotes:
    treatment_notes: str | None = None
    reminder_notes: str | None = None
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_amount: Decimal | None = None


class NotesRecorder:
    def __init__(self, db: Session, now: Callable[[], datetime] = datetime.now) -> None:
        self.db = db
        self._now = now

    def attach(self, appointment_id: int, patient_id: str, notes: CompletionNotes) -> AppointmentNote:
        note = AppointmentNote(
            appointment_id=appointment_id,
            patient_id=patient_id,
            treatment_notes=notes.treatment_notes,
            reminder_notes=notes.reminder_notes,
            payment_status=notes.payment_status.value,
            payment_amount=notes.payment_amount,
            created_at=self._now(),
        )
        self.db.add(note)
        self.db.commit()
        self.db.refresh(note)
        return note

    def list_for_patient(self, patient_id: str) -> list[AppointmentNote]:
        return self.db.query(AppointmentNote).filter(
            AppointmentNote.patient_id == patient_id,
        ).order_by(AppointmentNote.created_at.desc(), AppointmentNote.id.desc()).all()
