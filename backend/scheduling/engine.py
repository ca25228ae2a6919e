"""Appointment scheduling: availability, booking and lifecycle transitions.

Every write runs as a check-then-write sequence inside ``AppointmentStore.lock_dates``
for each date it touches, and the slot conflict check is repeated against the
database inside that critical section right before the commit. Two requests
for overlapping intervals on the same date therefore cannot both succeed, no
matter what availability either caller saw earlier.

Events are published only after the commit. Treatment notes passed to
``complete`` are attached after the status change has committed; if
attaching them fails the appointment stays ``Finished`` and the failure is
only logged, so callers must not assume notes exist once ``complete`` returns.
"""

import enum
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, time
from itertools import groupby
from typing import Callable, Iterator

from sqlalchemy.orm import Session

from backend.models.appointment import Appointment, AppointmentStatus
from backend.models.appointment_note import AppointmentNote
from backend.scheduling.clock import (
    SchedulingSettings,
    generate_slot_grid,
    intervals_overlap,
    is_aligned,
    is_interval_within_business_hours,
    is_past,
    next_slot_boundary,
    round_up_to_next_granularity,
)
from backend.scheduling.errors import InPast, NotFound, OutOfHours, SlotUnavailable, ValidationError
from backend.scheduling.events import (
    AppointmentCancelled,
    AppointmentCompleted,
    AppointmentConfirmed,
    AppointmentRescheduled,
    AppointmentSnapshot,
    BookingCreated,
    EventBus,
    MissedAppointment,
    SchedulingEvent,
    event_bus,
)
from backend.scheduling.notes import CompletionNotes, NotesRecorder
from backend.scheduling.state_machine import Operation, next_status
from backend.scheduling.store import AppointmentStore, DateLockRegistry, date_locks

logger = logging.getLogger(__name__)


class BookingOrigin(str, enum.Enum):
    PUBLIC = 'public'
    STAFF = 'staff'


MAX_PATIENT_ID_LENGTH = 64

INITIAL_STATUS = {
    BookingOrigin.PUBLIC: AppointmentStatus.PENDING,
    BookingOrigin.STAFF: AppointmentStatus.SCHEDULED,
}


@dataclass(frozen=True)
class BookingRequest:
    patient_id: str
    date: date
    start_time: time
    end_time: time
    title: str
    origin: BookingOrigin = BookingOrigin.STAFF


@dataclass(frozen=True)
class TimeSlot:
    date: date
    start_time: time
    end_time: time
    available: bool


class SchedulingEngine:
    def __init__(
        self,
        db: Session,
        settings: SchedulingSettings | None = None,
        events: EventBus = event_bus,
        now: Callable[[], datetime] = datetime.now,
        locks: DateLockRegistry = date_locks,
        notes: NotesRecorder | None = None,
    ) -> None:
        self.db = db
        self.settings = settings or SchedulingSettings.from_config()
        self.events = events
        self._now = now
        self.store = AppointmentStore(db, now=now, locks=locks)
        self.notes = notes or NotesRecorder(db, now=now)

    # Availability

    def iter_available_slots(self, day: date, now: datetime | None = None) -> Iterator[TimeSlot]:
        """Yield the day's grid in order, each slot flagged free or taken.

        Appointments are read when iteration starts; calling again recomputes
        from scratch. A closed day yields nothing.
        """
        if not self.settings.hours.is_open_on(day):
            return

        now = now or self._now()
        occupied = [
            (appointment.start_time, appointment.end_time)
            for appointment in self.store.load_appointments_for_date(day)
        ]

        for slot in generate_slot_grid(day, self.settings.granularity_minutes, self.settings.hours):
            available = not is_past(datetime.combine(day, slot.start_time), now) and not any(
                intervals_overlap(slot.start_time, slot.end_time, start, end) for start, end in occupied
            )
            yield TimeSlot(day, slot.start_time, slot.end_time, available)

    def get_available_slots(self, day: date, now: datetime | None = None) -> list[TimeSlot]:
        return list(self.iter_available_slots(day, now))

    def earliest_bookable_start(self, day: date, now: datetime | None = None) -> time | None:
        """First free slot start on ``day`` at or after the next granularity boundary."""
        hours = self.settings.hours
        granularity = self.settings.granularity_minutes
        now = now or self._now()

        if not hours.is_open_on(day) or day < now.date():
            return None

        lower_bound = hours.open_time
        if day == now.date():
            if next_slot_boundary(now, granularity).date() != day:
                return None
            lower_bound = max(lower_bound, round_up_to_next_granularity(now, granularity))

        for slot in self.iter_available_slots(day, now):
            if slot.available and slot.start_time >= lower_bound:
                return slot.start_time
        return None

    # Validation

    def _validate_interval(self, day: date, start_time: time, end_time: time, now: datetime) -> None:
        granularity = self.settings.granularity_minutes
        hours = self.settings.hours

        if start_time >= end_time:
            raise ValidationError('Start time must be before end time.')

        if not is_aligned(start_time, granularity) or not is_aligned(end_time, granularity):
            raise ValidationError(f'Appointments must start and end on {granularity}-minute boundaries.')

        if not hours.is_open_on(day):
            raise OutOfHours(f"The clinic is closed on {day.strftime('%A')}s.")

        if not is_interval_within_business_hours(start_time, end_time, hours):
            raise OutOfHours(
                f"Please select a time between {hours.open_time.strftime('%H:%M')} "
                f"and {hours.close_time.strftime('%H:%M')}."
            )

        if is_past(datetime.combine(day, start_time), now):
            raise InPast()

    def _validate_text(self, value: str | None, field_name: str, max_length: int, required: bool) -> str | None:
        normalized = (value or '').strip()
        if not normalized:
            if required:
                raise ValidationError(f'{field_name} is required.')
            return None
        if len(normalized) > max_length:
            raise ValidationError(f'{field_name} must be {max_length} characters or fewer.')
        return normalized

    def _ensure_slot_free(self, day: date, start_time: time, end_time: time, exclude_id: int | None = None) -> None:
        for existing in self.store.load_appointments_for_date(day, exclude_id=exclude_id):
            if intervals_overlap(start_time, end_time, existing.start_time, existing.end_time):
                logger.info(
                    'Slot conflict on %s %s-%s with appointment %s',
                    day, start_time, end_time, existing.id,
                )
                raise SlotUnavailable()

    def _validate_completion_notes(self, notes: CompletionNotes | None) -> CompletionNotes | None:
        if notes is None:
            return None

        max_length = self.settings.max_notes_length
        return CompletionNotes(
            treatment_notes=self._validate_text(notes.treatment_notes, 'Treatment notes', max_length, False),
            reminder_notes=self._validate_text(notes.reminder_notes, 'Reminder notes', max_length, False),
            payment_status=notes.payment_status,
            payment_amount=notes.payment_amount,
        )

    # Transactions

    @contextmanager
    def _write_transaction(self, *days: date) -> Iterator[None]:
        with self.store.lock_dates(*days):
            try:
                yield
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

    @contextmanager
    def _locked_appointment(self, appointment_id: int, *extra_days: date) -> Iterator[Appointment]:
        appointment = self.get_appointment(appointment_id)

        while True:
            locked_day = appointment.date
            with self._write_transaction(locked_day, *extra_days):
                appointment = self.store.load_by_id(appointment_id, refresh=True)
                if appointment is None:
                    raise NotFound()
                if appointment.date == locked_day:
                    yield appointment
                    return
            # Moved to another date while we waited; lock that date instead.

    def _publish(self, event: SchedulingEvent) -> None:
        self.events.publish(event)

    # Operations

    def book(self, request: BookingRequest) -> Appointment:
        patient_id = self._validate_text(request.patient_id, 'Patient', MAX_PATIENT_ID_LENGTH, required=True)
        title = self._validate_text(request.title, 'Title', self.settings.max_title_length, required=True)
        self._validate_interval(request.date, request.start_time, request.end_time, self._now())

        status = INITIAL_STATUS[BookingOrigin(request.origin)]

        with self._write_transaction(request.date):
            self._ensure_slot_free(request.date, request.start_time, request.end_time)
            appointment = self.store.insert(
                Appointment(
                    patient_id=patient_id,
                    title=title,
                    date=request.date,
                    start_time=request.start_time,
                    end_time=request.end_time,
                    status=status.value,
                )
            )

        logger.info('Booked appointment %s (%s) for patient %s', appointment.id, status.value, patient_id)
        self._publish(BookingCreated(AppointmentSnapshot.from_model(appointment)))
        return appointment

    def approve(self, appointment_id: int) -> Appointment:
        with self._locked_appointment(appointment_id) as appointment:
            appointment.status = next_status(appointment.appointment_status, Operation.APPROVE).value
            self.store.update(appointment)

        logger.info('Approved appointment %s', appointment_id)
        self._publish(AppointmentConfirmed(AppointmentSnapshot.from_model(appointment)))
        return appointment

    def reschedule(self, appointment_id: int, day: date, start_time: time, end_time: time) -> Appointment:
        with self._locked_appointment(appointment_id, day) as appointment:
            status = next_status(appointment.appointment_status, Operation.RESCHEDULE)
            self._validate_interval(day, start_time, end_time, self._now())
            self._ensure_slot_free(day, start_time, end_time, exclude_id=appointment.id)

            appointment.date = day
            appointment.start_time = start_time
            appointment.end_time = end_time
            appointment.status = status.value
            self.store.update(appointment)

        logger.info('Rescheduled appointment %s to %s %s-%s', appointment_id, day, start_time, end_time)
        self._publish(AppointmentRescheduled(AppointmentSnapshot.from_model(appointment)))
        return appointment

    def cancel(self, appointment_id: int, reason: str | None = None) -> Appointment:
        with self._locked_appointment(appointment_id) as appointment:
            status = next_status(appointment.appointment_status, Operation.CANCEL)
            reason = self._validate_text(reason, 'Cancellation reason', self.settings.max_notes_length, required=False)

            appointment.status = status.value
            appointment.cancellation_reason = reason
            self.store.update(appointment)

        logger.info('Cancelled appointment %s', appointment_id)
        self._publish(AppointmentCancelled(AppointmentSnapshot.from_model(appointment), reason=reason))
        return appointment

    def complete(self, appointment_id: int, notes: CompletionNotes | None = None) -> Appointment:
        with self._locked_appointment(appointment_id) as appointment:
            status = next_status(appointment.appointment_status, Operation.COMPLETE)
            notes = self._validate_completion_notes(notes)

            appointment.status = status.value
            self.store.update(appointment)

        logger.info('Completed appointment %s', appointment_id)

        if notes is not None:
            try:
                self.notes.attach(appointment.id, appointment.patient_id, notes)
            except Exception:
                self.db.rollback()
                logger.exception('Failed to attach notes to completed appointment %s', appointment_id)

        self._publish(AppointmentCompleted(AppointmentSnapshot.from_model(appointment)))
        return appointment

    def sweep_missed(self, now: datetime | None = None) -> int:
        """Cancel ``Scheduled`` appointments whose end time has passed.

        ``Pending`` and ``Rescheduled`` appointments are left alone. Running it
        again with nothing newly elapsed changes nothing.
        """
        now = now or self._now()
        candidates = [(appointment.date, appointment.id) for appointment in self.store.list_elapsed_scheduled(now)]
        swept: list[Appointment] = []

        for day, group in groupby(candidates, key=lambda candidate: candidate[0]):
            candidate_ids = [appointment_id for _, appointment_id in group]
            with self._write_transaction(day):
                for appointment_id in candidate_ids:
                    appointment = self.store.load_by_id(appointment_id, refresh=True)
                    if (
                        appointment is None
                        or appointment.appointment_status is not AppointmentStatus.SCHEDULED
                        or datetime.combine(appointment.date, appointment.end_time) >= now
                    ):
                        continue

                    appointment.status = next_status(appointment.appointment_status, Operation.SWEEP_MISSED).value
                    appointment.cancellation_reason = self.settings.missed_reason
                    self.store.update(appointment)
                    swept.append(appointment)

        for appointment in swept:
            self._publish(MissedAppointment(AppointmentSnapshot.from_model(appointment)))

        if swept:
            logger.info('Cancelled %d missed appointment(s)', len(swept))
        return len(swept)

    # Queries

    def get_appointment(self, appointment_id: int) -> Appointment:
        appointment = self.store.load_by_id(appointment_id)
        if appointment is None:
            raise NotFound()
        return appointment

    def list_appointments(self, day: date | None = None, status: AppointmentStatus | None = None) -> list[Appointment]:
        if status is None:
            return self.store.list_appointments(day)
        return self.store.list_appointments(day, statuses=[status])

    def list_archived(self, day: date | None = None) -> list[Appointment]:
        return self.store.list_archived(day)

    def list_missed(self, now: datetime | None = None) -> list[Appointment]:
        return self.store.list_elapsed_scheduled(now or self._now())

    def list_patient_appointments(self, patient_id: str, sort_by: str = 'date') -> list[Appointment]:
        return self.store.list_for_patient(patient_id, sort_by)

    def list_patient_notes(self, patient_id: str) -> list[AppointmentNote]:
        return self.notes.list_for_patient(patient_id)
