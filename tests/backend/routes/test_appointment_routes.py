from datetime import date, datetime, time
from decimal import Decimal

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from backend.models.appointment import AppointmentStatus
from backend.models.appointment_note import PaymentStatus
from backend.routes.appointment_routes import (
    CancelAppointmentRequest,
    CompleteAppointmentRequest,
    CreateAppointmentRequest,
    PaymentRequest,
    RescheduleAppointmentRequest,
    approve_appointment,
    cancel_appointment,
    complete_appointment,
    create_appointment,
    get_appointment,
    list_appointments,
    list_archived_appointments,
    list_missed_appointments,
    list_patient_appointments,
    request_appointment,
    reschedule_appointment,
    sweep_missed_appointments,
)
from backend.routes.dependencies import scheduling_http_error
from backend.routes.notes_routes import list_patient_notes
from backend.scheduling import errors


@pytest.fixture(autouse=True)
def skip_schema_checks(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('backend.routes.appointment_routes.ensure_database_ready', lambda: None)
    monkeypatch.setattr('backend.routes.notes_routes.ensure_database_ready', lambda: None)
    monkeypatch.setattr('backend.core.config.SWEEP_MISSED_ON_READ', False)


def _create_request(start: time = time(9, 0), end: time = time(9, 30), day: date = date(2024, 3, 1)):
    return CreateAppointmentRequest(
        patient_id='patient-1',
        title='Consultation',
        date=day,
        start_time=start,
        end_time=end,
    )


def test_create_appointment_request_normalizes_fields() -> None:
    request = CreateAppointmentRequest(
        patient_id=' patient-7 ',
        title='  Braces adjustment ',
        date='2024-03-01',
        start_time='09:00',
        end_time='09:30',
    )

    assert request.patient_id == 'patient-7'
    assert request.title == 'Braces adjustment'
    assert request.start_time == time(9, 0)


@pytest.mark.parametrize('field_name', ['patient_id', 'title'])
def test_create_appointment_request_rejects_blank_fields(field_name: str) -> None:
    payload = {
        'patient_id': 'patient-1',
        'title': 'Consultation',
        'date': date(2024, 3, 1),
        'start_time': time(9, 0),
        'end_time': time(9, 30),
    }
    payload[field_name] = '   '

    with pytest.raises(ValidationError):
        CreateAppointmentRequest(**payload)


def test_complete_request_without_content_has_no_notes() -> None:
    assert CompleteAppointmentRequest(treatment_notes='   ').to_completion_notes() is None


def test_complete_request_rejects_negative_payment() -> None:
    with pytest.raises(ValidationError):
        PaymentRequest(status=PaymentStatus.PAID, amount=Decimal('-1'))


def test_staff_booking_is_scheduled_and_public_request_is_pending(scheduling_engine) -> None:
    staff = create_appointment(_create_request(), engine=scheduling_engine)
    public = request_appointment(_create_request(time(10, 0), time(10, 30)), engine=scheduling_engine)

    assert staff.status is AppointmentStatus.SCHEDULED
    assert public.status is AppointmentStatus.PENDING


def test_create_appointment_conflict_returns_409(scheduling_engine) -> None:
    create_appointment(_create_request(), engine=scheduling_engine)

    with pytest.raises(HTTPException) as exception_info:
        create_appointment(_create_request(), engine=scheduling_engine)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'This time slot is already occupied by another appointment.'


@pytest.mark.parametrize(
    ('start', 'end', 'day', 'status_code'),
    [
        (time(8, 0), time(8, 30), date(2024, 3, 1), 400),
        (time(9, 0), time(9, 30), date(2024, 2, 1), 400),
        (time(9, 30), time(9, 0), date(2024, 3, 1), 400),
    ],
)
def test_create_appointment_invalid_interval_returns_400(
    scheduling_engine,
    start: time,
    end: time,
    day: date,
    status_code: int,
) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_appointment(_create_request(start, end, day), engine=scheduling_engine)

    assert exception_info.value.status_code == status_code


def test_get_appointment_returns_not_found(scheduling_engine) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_appointment(appointment_id=999, engine=scheduling_engine)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Appointment not found.'


def test_approve_then_reschedule_then_complete(scheduling_engine) -> None:
    pending = request_appointment(_create_request(), engine=scheduling_engine)

    approved = approve_appointment(appointment_id=pending.id, engine=scheduling_engine)
    moved = reschedule_appointment(
        appointment_id=pending.id,
        data=RescheduleAppointmentRequest(date=date(2024, 3, 1), start_time=time(14, 0), end_time=time(15, 0)),
        engine=scheduling_engine,
    )
    finished = complete_appointment(
        appointment_id=pending.id,
        data=CompleteAppointmentRequest(
            treatment_notes='Scaling done.',
            payment=PaymentRequest(status=PaymentStatus.PAID, amount=Decimal('1200')),
        ),
        engine=scheduling_engine,
    )

    assert approved.status is AppointmentStatus.SCHEDULED
    assert moved.status is AppointmentStatus.RESCHEDULED
    assert moved.start_time == time(14, 0)
    assert finished.status is AppointmentStatus.FINISHED

    notes = list_patient_notes(patient_id='patient-1', engine=scheduling_engine)
    assert len(notes) == 1
    assert notes[0].treatment_notes == 'Scaling done.'
    assert notes[0].payment_status is PaymentStatus.PAID


def test_cancel_twice_returns_409(scheduling_engine) -> None:
    created = create_appointment(_create_request(), engine=scheduling_engine)

    cancelled = cancel_appointment(
        appointment_id=created.id,
        data=CancelAppointmentRequest(reason=' Rescheduling elsewhere '),
        engine=scheduling_engine,
    )
    with pytest.raises(HTTPException) as exception_info:
        cancel_appointment(appointment_id=created.id, data=None, engine=scheduling_engine)

    assert cancelled.cancellation_reason == 'Rescheduling elsewhere'
    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'Cannot cancel an appointment that is Cancelled.'


def test_listing_routes_split_active_and_archived(scheduling_engine) -> None:
    active = create_appointment(_create_request(), engine=scheduling_engine)
    cancelled = create_appointment(_create_request(time(10, 0), time(10, 30)), engine=scheduling_engine)
    cancel_appointment(appointment_id=cancelled.id, data=None, engine=scheduling_engine)

    listed = list_appointments(appointment_date=date(2024, 3, 1), appointment_status=None, engine=scheduling_engine)
    archived = list_archived_appointments(appointment_date=None, engine=scheduling_engine)
    by_patient = list_patient_appointments(patient_id='patient-1', sort_by='created', engine=scheduling_engine)

    assert [appointment.id for appointment in listed] == [active.id]
    assert [appointment.id for appointment in archived] == [cancelled.id]
    assert {appointment.id for appointment in by_patient} == {active.id, cancelled.id}


def test_list_patient_appointments_rejects_blank_patient(scheduling_engine) -> None:
    with pytest.raises(HTTPException) as exception_info:
        list_patient_appointments(patient_id='  ', sort_by='date', engine=scheduling_engine)

    assert exception_info.value.status_code == 400


def test_missed_routes_preview_and_sweep(scheduling_engine, clock) -> None:
    created = create_appointment(_create_request(day=date(2024, 2, 28)), engine=scheduling_engine)
    clock.now = datetime(2024, 2, 29, 8, 0)

    missed = list_missed_appointments(engine=scheduling_engine)
    swept = sweep_missed_appointments(engine=scheduling_engine)
    swept_again = sweep_missed_appointments(engine=scheduling_engine)

    assert [appointment.id for appointment in missed] == [created.id]
    assert swept.cancelled == 1
    assert swept_again.cancelled == 0
    assert get_appointment(appointment_id=created.id, engine=scheduling_engine).cancellation_reason == 'missed'


def test_listing_sweeps_missed_appointments_when_enabled(scheduling_engine, clock, monkeypatch) -> None:
    monkeypatch.setattr('backend.core.config.SWEEP_MISSED_ON_READ', True)
    created = create_appointment(_create_request(day=date(2024, 2, 28)), engine=scheduling_engine)
    clock.now = datetime(2024, 2, 29, 8, 0)

    listed = list_appointments(appointment_date=None, appointment_status=None, engine=scheduling_engine)
    archived = list_archived_appointments(appointment_date=None, engine=scheduling_engine)

    assert listed == []
    assert [appointment.id for appointment in archived] == [created.id]


@pytest.mark.parametrize(
    ('error', 'status_code'),
    [
        (errors.NotFound(), 404),
        (errors.SlotUnavailable(), 409),
        (errors.InvalidStateTransition('Finished', 'cancel'), 409),
        (errors.OutOfHours(), 400),
        (errors.InPast(), 400),
        (errors.ValidationError('Start time must be before end time.'), 400),
    ],
)
def test_scheduling_errors_map_to_http_status(error: errors.SchedulingError, status_code: int) -> None:
    http_error = scheduling_http_error(error)

    assert http_error.status_code == status_code
    assert http_error.detail == error.message
