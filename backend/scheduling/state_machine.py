"""Allowed appointment status transitions."""

from enum import Enum

from backend.models.appointment import AppointmentStatus
from backend.scheduling.errors import InvalidStateTransition


class Operation(str, Enum):
    APPROVE = 'approve'
    RESCHEDULE = 'reschedule'
    CANCEL = 'cancel'
    COMPLETE = 'complete'
    SWEEP_MISSED = 'sweep'


TRANSITIONS: dict[tuple[AppointmentStatus, Operation], AppointmentStatus] = {
    (AppointmentStatus.PENDING, Operation.APPROVE): AppointmentStatus.SCHEDULED,
    (AppointmentStatus.PENDING, Operation.CANCEL): AppointmentStatus.CANCELLED,
    (AppointmentStatus.SCHEDULED, Operation.RESCHEDULE): AppointmentStatus.RESCHEDULED,
    (AppointmentStatus.SCHEDULED, Operation.CANCEL): AppointmentStatus.CANCELLED,
    (AppointmentStatus.SCHEDULED, Operation.COMPLETE): AppointmentStatus.FINISHED,
    (AppointmentStatus.SCHEDULED, Operation.SWEEP_MISSED): AppointmentStatus.CANCELLED,
    (AppointmentStatus.RESCHEDULED, Operation.RESCHEDULE): AppointmentStatus.RESCHEDULED,
    (AppointmentStatus.RESCHEDULED, Operation.CANCEL): AppointmentStatus.CANCELLED,
    (AppointmentStatus.RESCHEDULED, Operation.COMPLETE): AppointmentStatus.FINISHED,
}


def can_transition(current: AppointmentStatus, operation: Operation) -> bool:
    return (current, operation) in TRANSITIONS


def next_status(current: AppointmentStatus, operation: Operation) -> AppointmentStatus:
    try:
        return TRANSITIONS[(current, operation)]
    except KeyError:
        raise InvalidStateTransition(current.value, operation.value) from None
