"""Errors raised by the scheduling engine.

Every mutating operation either returns the updated appointment or raises
exactly one of these; nothing is committed when one is raised.
"""


class SchedulingError(Exception):
    default_message = 'Scheduling request failed.'

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class SlotUnavailable(SchedulingError):
    default_message = 'This time slot is already occupied by another appointment.'


class OutOfHours(SchedulingError):
    default_message = 'Appointment is outside business hours.'


class InPast(SchedulingError):
    default_message = 'Appointments must be scheduled in the future.'


class InvalidStateTransition(SchedulingError):
    default_message = 'Operation is not allowed for the current appointment status.'

    def __init__(self, current_status: str, operation: str) -> None:
        super().__init__(f"Cannot {operation} an appointment that is {current_status}.")
        self.current_status = current_status
        self.operation = operation


class NotFound(SchedulingError):
    default_message = 'Appointment not found.'


class ValidationError(SchedulingError):
    default_message = 'Invalid appointment request.'
