import logging
from datetime import date, time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from careconnect.core import config
from careconnect.models.appointment import Appointment
from careconnect.routes.availability_routes import (
    compute_day_slots,
    is_active_appointment,
    load_schedule,
    reject_past_date,
)
from careconnect.routes.dependencies import (
    database_unavailable,
    ensure_database_ready,
    get_active_provider,
    get_db,
    normalize_email,
)
from careconnect.scheduling.availability import candidate_start_times
from careconnect.scheduling.times import format_slot, parse_wall_clock

router = APIRouter(tags=['appointments'])

logger = logging.getLogger(__name__)

SLOT_TAKEN_DETAIL = 'This time is no longer available.'
NOT_BOOKABLE_DETAIL = 'Not a bookable start time for this provider.'


class CreateAppointmentRequest(BaseModel):
    provider_id: int
    patient_email: str
    date: date
    time: time
    duration_minutes: int = Field(default=config.DEFAULT_SLOT_DURATION_MINUTES, ge=5, le=480)
    appointment_type: str = 'general'
    notes: str | None = None

    @field_validator('patient_email')
    @classmethod
    def validate_patient_email(cls, value: str) -> str:
        return normalize_email(value, field_label='Patient email')

    @field_validator('time', mode='before')
    @classmethod
    def validate_time(cls, value: str | time) -> time:
        return parse_wall_clock(value)

    @field_validator('appointment_type')
    @classmethod
    def validate_appointment_type(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not normalized:
            raise ValueError('Appointment type is required.')
        return normalized

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > config.MAX_APPOINTMENT_NOTES_LENGTH:
            raise ValueError(f'Notes must be {config.MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

        return normalized


class AppointmentResponse(BaseModel):
    id: int
    provider_id: int
    patient_email: str
    date: date
    time: time
    duration_minutes: int
    appointment_type: str
    status: str
    notes: str | None = None

    class Config:
        from_attributes = True


def _require_patient_email(patient_email: str, action: str) -> str:
    try:
        return normalize_email(patient_email, field_label='Patient email')
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'A valid patient email is required to {action}.',
        ) from exc


@router.post('/appointments', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(data: CreateAppointmentRequest, db: Session = Depends(get_db)):
    reject_past_date(data.date, 'Appointments must be scheduled in the future.')

    ensure_database_ready()

    try:
        get_active_provider(data.provider_id, db)

        schedule = load_schedule(data.provider_id, data.date, db)
        if not schedule.is_open:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='The provider is not available on this date.',
            )

        candidates = candidate_start_times(
            schedule.window,
            data.duration_minutes,
            require_full_fit=config.SLOT_REQUIRE_FULL_FIT,
        )
        if data.time not in candidates:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=NOT_BOOKABLE_DETAIL,
            )

        day = compute_day_slots(data.provider_id, data.date, data.duration_minutes, db)
        if format_slot(data.time) not in day.slots:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=SLOT_TAKEN_DETAIL,
            )

        appointment = Appointment(
            provider_id=data.provider_id,
            patient_email=data.patient_email,
            date=data.date,
            time=data.time,
            duration_minutes=data.duration_minutes,
            appointment_type=data.appointment_type,
            status='scheduled',
            notes=data.notes,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)

        logger.info('Booked appointment %s with provider %s on %s at %s.',
                    appointment.id, data.provider_id, data.date, format_slot(data.time))

        return appointment
    except IntegrityError as exc:
        # Another booking for the same provider, date and time won the race.
        db.rollback()
        logger.info('Concurrent booking rejected for provider %s on %s at %s.',
                    data.provider_id, data.date, format_slot(data.time))
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=SLOT_TAKEN_DETAIL,
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.get('/providers/{provider_id}/appointments', response_model=list[AppointmentResponse])
def list_provider_appointments(
    provider_id: int,
    appointment_date: date = Query(..., alias='date'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        get_active_provider(provider_id, db)

        return db.query(Appointment).filter(
            Appointment.provider_id == provider_id,
            Appointment.date == appointment_date,
            is_active_appointment(),
        ).order_by(Appointment.time.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.get('/appointments', response_model=list[AppointmentResponse])
def list_my_appointments(
    patient_email: str = Query(...),
    db: Session = Depends(get_db),
):
    normalized_email = _require_patient_email(patient_email, 'view appointments')

    ensure_database_ready()

    try:
        return db.query(Appointment).filter(
            Appointment.patient_email == normalized_email,
            is_active_appointment(),
        ).order_by(Appointment.date.asc(), Appointment.time.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.delete('/appointments/{appointment_id}', status_code=status.HTTP_204_NO_CONTENT)
def cancel_my_appointment(
    appointment_id: int,
    patient_email: str = Query(...),
    db: Session = Depends(get_db),
):
    normalized_email = _require_patient_email(patient_email, 'cancel an appointment')

    ensure_database_ready()

    try:
        appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()

        if not appointment:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Appointment not found.',
            )

        if (appointment.patient_email or '').strip().lower() != normalized_email:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='Only the patient who booked this appointment can cancel it.',
            )

        provider_id, appointment_date = appointment.provider_id, appointment.date

        # Deleting frees the (provider, date, time) slot for rebooking.
        db.delete(appointment)
        db.commit()

        logger.info('Cancelled appointment %s with provider %s on %s.',
                    appointment_id, provider_id, appointment_date)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc
