"""Treatment notes and payment status recorded when an appointment is completed."""

import enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from backend.database import Base


class PaymentStatus(str, enum.Enum):
    PAID = "Paid"
    PENDING = "Pending"
    PARTIAL = "Partial"


class AppointmentNote(Base):
    """Notes attached to a finished appointment."""
    __tablename__ = "appointment_notes"

    id = Column(Integer, primary_key=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    patient_id = Column(String, nullable=False)
    treatment_notes = Column(Text, nullable=True)
    reminder_notes = Column(Text, nullable=True)
    payment_status = Column(String, nullable=False, default=PaymentStatus.PENDING.value)
    payment_amount = Column(Numeric(10, 2), nullable=True)
    created_at = Column(DateTime)
