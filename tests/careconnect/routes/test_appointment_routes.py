from datetime import date, time, timedelta

import pytest
from fastapi import HTTPException
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError

from careconnect.models.appointment import Appointment
from careconnect.routes.appointment_routes import (
    CreateAppointmentRequest,
    cancel_my_appointment,
    create_appointment,
    list_my_appointments,
    list_provider_appointments,
)
from careconnect.routes.availability_routes import list_provider_slots


def _request(provider_id: int, on: date, at: str = '09:00', **overrides) -> CreateAppointmentRequest:
    payload = {
        'provider_id': provider_id,
        'patient_email': 'patient@example.com',
        'date': on,
        'time': at,
    }
    payload.update(overrides)
    return CreateAppointmentRequest(**payload)


def test_create_appointment_request_normalizes_fields() -> None:
    request = _request(
        1,
        date(2026, 3, 2),
        at='09:30:00',
        patient_email=' PATIENT@Example.COM ',
        appointment_type=' Follow-Up ',
        notes='   ',
    )

    assert request.patient_email == 'patient@example.com'
    assert request.time == time(9, 30)
    assert request.appointment_type == 'follow-up'
    assert request.notes is None
    assert request.duration_minutes == 30


@pytest.mark.parametrize(
    'overrides',
    [
        {'patient_email': '   '},
        {'patient_email': 'not-an-email'},
        {'time': '25:00'},
        {'duration_minutes': 0},
        {'notes': 'x' * 601},
    ],
)
def test_create_appointment_request_rejects_invalid_input(overrides: dict) -> None:
    with pytest.raises(ValidationError):
        _request(1, date(2026, 3, 2), **overrides)


def test_create_appointment_books_free_slot(scheduling_db, provider, next_monday, add_weekly_window) -> None:
    add_weekly_window(provider.id, 1, time(9, 0), time(12, 0))

    appointment = create_appointment(data=_request(provider.id, next_monday, '10:00', notes=' Bring results '),
                                     db=scheduling_db)

    assert appointment.id is not None
    assert appointment.status == 'scheduled'
    assert appointment.notes == 'Bring results'

    slots = list_provider_slots(provider_id=provider.id, slot_date=next_monday, duration_minutes=30, db=scheduling_db)
    assert '10:00' not in slots.slots
    assert {'09:30', '10:30'} <= set(slots.slots)


def test_create_appointment_rejects_double_booking(scheduling_db, provider, next_monday, add_weekly_window) -> None:
    add_weekly_window(provider.id, 1, time(9, 0), time(12, 0))
    create_appointment(data=_request(provider.id, next_monday, '10:00'), db=scheduling_db)

    with pytest.raises(HTTPException) as exception_info:
        create_appointment(data=_request(provider.id, next_monday, '10:00', patient_email='other@example.com'),
                           db=scheduling_db)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'This time is no longer available.'


def test_create_appointment_rejects_overlapping_longer_booking(
    scheduling_db, provider, next_monday, add_weekly_window, add_appointment
) -> None:
    add_weekly_window(provider.id, 1, time(9, 0), time(12, 0))
    add_appointment(provider.id, next_monday, time(9, 45))

    with pytest.raises(HTTPException) as exception_info:
        create_appointment(data=_request(provider.id, next_monday, '09:00', duration_minutes=60), db=scheduling_db)

    assert exception_info.value.status_code == 409


def test_create_appointment_rejects_time_off_the_grid(scheduling_db, provider, next_monday, add_weekly_window) -> None:
    add_weekly_window(provider.id, 1, time(9, 0), time(12, 0), time(10, 0), time(10, 30))

    for requested in ('09:10', '10:00', '12:00', '08:30'):
        with pytest.raises(HTTPException) as exception_info:
            create_appointment(data=_request(provider.id, next_monday, requested), db=scheduling_db)
        assert exception_info.value.status_code == 400
        assert exception_info.value.detail == 'Not a bookable start time for this provider.'


def test_create_appointment_on_grid_but_taken_is_conflict(
    scheduling_db, provider, next_monday, add_weekly_window, add_appointment
) -> None:
    add_weekly_window(provider.id, 1, time(9, 0), time(12, 0), time(10, 0), time(10, 30))
    add_appointment(provider.id, next_monday, time(10, 30))

    with pytest.raises(HTTPException) as exception_info:
        create_appointment(data=_request(provider.id, next_monday, '10:30'), db=scheduling_db)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'This time is no longer available.'


def test_create_appointment_honours_full_fit_setting(
    scheduling_db, provider, next_monday, add_weekly_window, monkeypatch: pytest.MonkeyPatch
) -> None:
    add_weekly_window(provider.id, 1, time(9, 0), time(10, 15))
    monkeypatch.setattr('careconnect.core.config.SLOT_REQUIRE_FULL_FIT', True)

    with pytest.raises(HTTPException) as exception_info:
        create_appointment(data=_request(provider.id, next_monday, '10:00'), db=scheduling_db)

    assert exception_info.value.status_code == 400


def test_create_appointment_over_cancelled_booking(
    scheduling_db, provider, next_monday, add_weekly_window, add_appointment
) -> None:
    add_weekly_window(provider.id, 1, time(9, 0), time(11, 0))
    add_appointment(provider.id, next_monday, time(10, 0), patient_email='former@example.com', status='cancelled')

    slots = list_provider_slots(provider_id=provider.id, slot_date=next_monday, duration_minutes=30, db=scheduling_db)
    assert '10:00' in slots.slots

    appointment = create_appointment(data=_request(provider.id, next_monday, '10:00'), db=scheduling_db)

    assert appointment.status == 'scheduled'
    rows = scheduling_db.query(Appointment).filter(
        Appointment.provider_id == provider.id,
        Appointment.date == next_monday,
        Appointment.time == time(10, 0),
    ).all()
    assert sorted(row.status for row in rows) == ['cancelled', 'scheduled']


def test_create_appointment_on_closed_day(scheduling_db, provider, next_monday) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_appointment(data=_request(provider.id, next_monday), db=scheduling_db)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'The provider is not available on this date.'


def test_create_appointment_rejects_past_date(scheduling_db, provider) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_appointment(data=_request(provider.id, date.today() - timedelta(days=1)), db=scheduling_db)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Appointments must be scheduled in the future.'


def test_create_appointment_for_unknown_provider(scheduling_db, next_monday) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_appointment(data=_request(999, next_monday), db=scheduling_db)

    assert exception_info.value.status_code == 404


def test_create_appointment_maps_concurrent_insert_to_conflict(
    scheduling_db, provider, next_monday, add_weekly_window, monkeypatch: pytest.MonkeyPatch
) -> None:
    add_weekly_window(provider.id, 1, time(9, 0), time(12, 0))

    def commit_loses_race() -> None:
        raise IntegrityError('INSERT INTO appointments', {}, Exception('UNIQUE constraint failed'))

    monkeypatch.setattr(scheduling_db, 'commit', commit_loses_race)

    with pytest.raises(HTTPException) as exception_info:
        create_appointment(data=_request(provider.id, next_monday, '09:00'), db=scheduling_db)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'This time is no longer available.'


def test_unique_constraint_guards_provider_date_time(scheduling_db, provider, next_monday, add_appointment) -> None:
    add_appointment(provider.id, next_monday, time(9, 0))

    with pytest.raises(IntegrityError):
        add_appointment(provider.id, next_monday, time(9, 0), patient_email='other@example.com')


def test_list_provider_appointments_skips_cancelled(scheduling_db, provider, next_monday, add_appointment) -> None:
    add_appointment(provider.id, next_monday, time(11, 0))
    add_appointment(provider.id, next_monday, time(9, 0))
    add_appointment(provider.id, next_monday, time(10, 0), status='cancelled')
    add_appointment(provider.id, next_monday + timedelta(days=1), time(9, 0))

    appointments = list_provider_appointments(provider_id=provider.id, appointment_date=next_monday, db=scheduling_db)

    assert [appointment.time for appointment in appointments] == [time(9, 0), time(11, 0)]


def test_list_my_appointments_rejects_blank_patient_email() -> None:
    with pytest.raises(HTTPException) as exception_info:
        list_my_appointments(patient_email='   ', db=None)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'A valid patient email is required to view appointments.'


def test_list_my_appointments_returns_only_own_bookings(scheduling_db, provider, next_monday, add_appointment) -> None:
    add_appointment(provider.id, next_monday, time(10, 0), patient_email='patient@example.com')
    add_appointment(provider.id, next_monday, time(9, 0), patient_email='someone@example.com')

    appointments = list_my_appointments(patient_email=' Patient@Example.com ', db=scheduling_db)

    assert [appointment.time for appointment in appointments] == [time(10, 0)]


def test_cancel_my_appointment_rejects_blank_patient_email(scheduling_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        cancel_my_appointment(appointment_id=1, patient_email='   ', db=scheduling_db)

    assert exception_info.value.status_code == 400


def test_cancel_my_appointment_returns_not_found_when_missing(scheduling_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        cancel_my_appointment(appointment_id=999, patient_email='patient@example.com', db=scheduling_db)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Appointment not found.'


def test_cancel_my_appointment_rejects_non_owner(scheduling_db, provider, next_monday, add_appointment) -> None:
    appointment = add_appointment(provider.id, next_monday, time(10, 0), patient_email='owner@example.com')

    with pytest.raises(HTTPException) as exception_info:
        cancel_my_appointment(appointment_id=appointment.id, patient_email='other@example.com', db=scheduling_db)

    assert exception_info.value.status_code == 403
    assert exception_info.value.detail == 'Only the patient who booked this appointment can cancel it.'


def test_cancel_my_appointment_reopens_slot(
    scheduling_db, provider, next_monday, add_weekly_window
) -> None:
    add_weekly_window(provider.id, 1, time(9, 0), time(10, 0))
    appointment = create_appointment(data=_request(provider.id, next_monday, '09:00'), db=scheduling_db)
    appointment_id = appointment.id

    before = list_provider_slots(provider_id=provider.id, slot_date=next_monday, duration_minutes=30, db=scheduling_db)
    assert before.slots == ['09:30']

    cancel_my_appointment(appointment_id=appointment_id, patient_email='patient@example.com', db=scheduling_db)

    assert scheduling_db.query(Appointment).filter(Appointment.id == appointment_id).first() is None
    after = list_provider_slots(provider_id=provider.id, slot_date=next_monday, duration_minutes=30, db=scheduling_db)
    assert after.slots == ['09:00', '09:30']

    rebooked = create_appointment(data=_request(provider.id, next_monday, '09:00', patient_email='next@example.com'),
                                  db=scheduling_db)
    assert rebooked.patient_email == 'next@example.com'


def test_unique_constraint_ignores_cancelled_rows(scheduling_db, provider, next_monday, add_appointment) -> None:
    add_appointment(provider.id, next_monday, time(9, 0), status='cancelled')
    add_appointment(provider.id, next_monday, time(9, 0), status='cancelled', patient_email='other@example.com')
    add_appointment(provider.id, next_monday, time(9, 0), patient_email='third@example.com')

    with pytest.raises(IntegrityError):
        add_appointment(provider.id, next_monday, time(9, 0), patient_email='fourth@example.com')
