"""Domain events published after scheduling transitions commit.

Subscribers (email notifications, the activity log) are fire-and-forget: a
subscriber that raises is logged and skipped, and never affects the
transition that produced the event.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Callable

from backend.models.appointment import Appointment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppointmentSnapshot:
    id: int
    patient_id: str
    title: str
    date: date
    start_time: time
    end_time: time
    status: str
    cancellation_reason: str | None = None

    @classmethod
    def from_model(cls, appointment: Appointment) -> 'AppointmentSnapshot':
        return cls(
            id=appointment.id,
            patient_id=appointment.patient_id,
            title=appointment.title,
            date=appointment.date,
            start_time=appointment.start_time,
            end_time=appointment.end_time,
            status=appointment.status,
            cancellation_reason=appointment.cancellation_reason,
        )


@dataclass(frozen=True)
class SchedulingEvent:
    appointment: AppointmentSnapshot
    occurred_at: datetime = field(default_factory=datetime.now)

    @property
    def name(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class BookingCreated(SchedulingEvent):
    pass


@dataclass(frozen=True)
class AppointmentConfirmed(SchedulingEvent):
    pass


@dataclass(frozen=True)
class AppointmentRescheduled(SchedulingEvent):
    pass


@dataclass(frozen=True)
class AppointmentCompleted(SchedulingEvent):
    pass


@dataclass(frozen=True)
class AppointmentCancelled(SchedulingEvent):
    reason: str | None = None


@dataclass(frozen=True)
class MissedAppointment(SchedulingEvent):
    pass


Subscriber = Callable[[SchedulingEvent], None]


class EventBus:
    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> None:
        if subscriber not in self._subscribers:
            self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    def publish(self, event: SchedulingEvent) -> None:
        for subscriber in list(self._subscribers):
            try:
                subscriber(event)
            except Exception:
                logger.exception('Event subscriber %r failed for %s', subscriber, event.name)


def log_scheduling_event(event: SchedulingEvent) -> None:
    """Activity-log subscriber."""
    appointment = event.appointment
    logger.info(
        '%s appointment=%s patient=%s date=%s %s-%s status=%s',
        event.name,
        appointment.id,
        appointment.patient_id,
        appointment.date.isoformat(),
        appointment.start_time.strftime('%H:%M'),
        appointment.end_time.strftime('%H:%M'),
        appointment.status,
    )


event_bus = EventBus()
