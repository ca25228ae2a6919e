"""Appointment model definitions."""

import enum

from sqlalchemy import Column, Date, DateTime, Integer, String, Time
from backend.database import Base


class AppointmentStatus(str, enum.Enum):
    """Lifecycle states of an appointment."""

    PENDING = "Pending"
    SCHEDULED = "Scheduled"
    RESCHEDULED = "Rescheduled"
    FINISHED = "Finished"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({AppointmentStatus.FINISHED, AppointmentStatus.CANCELLED})
ACTIVE_STATUSES = frozenset(
    {AppointmentStatus.PENDING, AppointmentStatus.SCHEDULED, AppointmentStatus.RESCHEDULED}
)


class Appointment(Base):
    """Represents a booked appointment on the clinic calendar."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    patient_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    status = Column(String, nullable=False, default=AppointmentStatus.SCHEDULED.value)
    cancellation_reason = Column(String, nullable=True)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)

    @property
    def appointment_status(self) -> AppointmentStatus:
        return AppointmentStatus(self.status)

    def __repr__(self) -> str:
        return (
            f"<Appointment id={self.id} date={self.date} "
            f"{self.start_time}-{self.end_time} status={self.status}>"
        )
