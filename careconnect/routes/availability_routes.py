import logging
from datetime import date, datetime, time, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from careconnect.core import config
from careconnect.models.appointment import Appointment
from careconnect.models.availability import ProviderAvailability
from careconnect.routes.dependencies import (
    database_unavailable,
    ensure_database_ready,
    get_active_provider,
    get_db,
)
from careconnect.scheduling.availability import (
    day_of_week_for,
    resolve_available_slots,
    resolve_schedule_for_date,
)
from careconnect.scheduling.schemas import (
    AppointmentRecord,
    AvailabilityOverride,
    AvailabilityWindow,
    ResolvedSchedule,
    ScheduleSource,
)
from careconnect.scheduling.times import parse_wall_clock

router = APIRouter(tags=['availability'])

logger = logging.getLogger(__name__)

CANCELLED_STATUS = 'cancelled'


def is_active_appointment():
    return or_(Appointment.status.is_(None), Appointment.status != CANCELLED_STATUS)


def _parse_optional_time(value: str | time | None) -> time | None:
    if value is None or value == '':
        return None
    return parse_wall_clock(value)


def _check_hours(
    start_time: time,
    end_time: time,
    break_start: time | None,
    break_end: time | None,
) -> None:
    if start_time >= end_time:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Start time must be before end time.',
        )

    if (break_start is None) != (break_end is None):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Break start and break end must be set together.',
        )

    if break_start is not None and not (start_time <= break_start < break_end <= end_time):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Break must fall within working hours and start before it ends.',
        )


class WeeklyAvailabilityRequest(BaseModel):
    start_time: time
    end_time: time
    break_start: time | None = None
    break_end: time | None = None

    @field_validator('start_time', 'end_time', mode='before')
    @classmethod
    def validate_hours(cls, value: str | time) -> time:
        return parse_wall_clock(value)

    @field_validator('break_start', 'break_end', mode='before')
    @classmethod
    def validate_break(cls, value: str | time | None) -> time | None:
        return _parse_optional_time(value)


class CreateOverrideRequest(BaseModel):
    specific_date: date
    is_closed: bool = False
    start_time: time | None = None
    end_time: time | None = None
    break_start: time | None = None
    break_end: time | None = None

    @field_validator('start_time', 'end_time', 'break_start', 'break_end', mode='before')
    @classmethod
    def validate_times(cls, value: str | time | None) -> time | None:
        return _parse_optional_time(value)

    @model_validator(mode='after')
    def validate_open_hours(self) -> 'CreateOverrideRequest':
        if not self.is_closed and (self.start_time is None or self.end_time is None):
            raise ValueError('Open overrides need a start time and an end time.')
        return self


class AvailabilityResponse(BaseModel):
    id: int
    provider_id: int
    day_of_week: int
    start_time: time | None = None
    end_time: time | None = None
    break_start: time | None = None
    break_end: time | None = None
    is_recurring: bool
    specific_date: date | None = None
    is_closed: bool

    class Config:
        from_attributes = True


class ProviderSlotsResponse(BaseModel):
    provider_id: int
    date: date
    source: ScheduleSource
    is_open: bool
    duration_minutes: int
    slots: list[str]


def load_weekly_windows(provider_id: int, db: Session) -> list[AvailabilityWindow]:
    rows = db.query(ProviderAvailability).filter(
        ProviderAvailability.provider_id == provider_id,
        ProviderAvailability.is_recurring.is_(True),
    ).order_by(ProviderAvailability.day_of_week.asc()).all()

    return [AvailabilityWindow.model_validate(row) for row in rows]


def load_overrides(provider_id: int, start_date: date, end_date: date, db: Session) -> list[AvailabilityOverride]:
    rows = db.query(ProviderAvailability).filter(
        ProviderAvailability.provider_id == provider_id,
        ProviderAvailability.is_recurring.is_(False),
        ProviderAvailability.specific_date >= start_date,
        ProviderAvailability.specific_date <= end_date,
    ).all()

    return [AvailabilityOverride.model_validate(row) for row in rows]


def load_active_appointments(
    provider_id: int,
    start_date: date,
    end_date: date,
    db: Session,
) -> list[AppointmentRecord]:
    rows = db.query(Appointment).filter(
        Appointment.provider_id == provider_id,
        Appointment.date >= start_date,
        Appointment.date <= end_date,
        is_active_appointment(),
    ).order_by(Appointment.date.asc(), Appointment.time.asc()).all()

    return [AppointmentRecord.model_validate(row) for row in rows]


def resolve_day(
    provider_id: int,
    target_date: date,
    duration_minutes: int,
    weekly_windows: list[AvailabilityWindow],
    overrides: list[AvailabilityOverride],
    appointments: list[AppointmentRecord],
    now: datetime | None = None,
) -> ProviderSlotsResponse:
    schedule = resolve_schedule_for_date(target_date, weekly_windows, overrides)

    if not schedule.is_open:
        return ProviderSlotsResponse(
            provider_id=provider_id,
            date=target_date,
            source=schedule.source,
            is_open=False,
            duration_minutes=duration_minutes,
            slots=[],
        )

    # Appointments from the previous day can run past midnight into this one.
    same_day_bookings = [
        appointment
        for appointment in appointments
        if target_date - timedelta(days=1) <= appointment.date <= target_date
    ]

    slots = resolve_available_slots(
        provider_id,
        target_date,
        schedule.window,
        same_day_bookings,
        duration_minutes,
        require_full_fit=config.SLOT_REQUIRE_FULL_FIT,
    )

    current = now or datetime.now()
    if target_date == current.date():
        cutoff = current.strftime('%H:%M')
        slots = [slot for slot in slots if slot > cutoff]

    return ProviderSlotsResponse(
        provider_id=provider_id,
        date=target_date,
        source=schedule.source,
        is_open=True,
        duration_minutes=duration_minutes,
        slots=slots,
    )


def load_schedule(provider_id: int, target_date: date, db: Session) -> ResolvedSchedule:
    weekly_windows = load_weekly_windows(provider_id, db)
    overrides = load_overrides(provider_id, target_date, target_date, db)

    return resolve_schedule_for_date(target_date, weekly_windows, overrides)


def compute_day_slots(
    provider_id: int,
    target_date: date,
    duration_minutes: int,
    db: Session,
    now: datetime | None = None,
) -> ProviderSlotsResponse:
    weekly_windows = load_weekly_windows(provider_id, db)
    overrides = load_overrides(provider_id, target_date, target_date, db)
    appointments = load_active_appointments(provider_id, target_date - timedelta(days=1), target_date, db)

    return resolve_day(provider_id, target_date, duration_minutes, weekly_windows, overrides, appointments, now)


def reject_past_date(target_date: date, detail: str) -> None:
    if target_date < date.today():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
        )


@router.get('/{provider_id}/availability', response_model=list[AvailabilityResponse])
def list_weekly_availability(provider_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        get_active_provider(provider_id, db)

        return db.query(ProviderAvailability).filter(
            ProviderAvailability.provider_id == provider_id,
            ProviderAvailability.is_recurring.is_(True),
        ).order_by(ProviderAvailability.day_of_week.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.put('/{provider_id}/availability/{day_of_week}', response_model=AvailabilityResponse)
def set_weekly_availability(
    provider_id: int,
    day_of_week: int,
    data: WeeklyAvailabilityRequest,
    db: Session = Depends(get_db),
):
    if not 0 <= day_of_week <= 6:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Day of week must be between 0 (Sunday) and 6 (Saturday).',
        )

    _check_hours(data.start_time, data.end_time, data.break_start, data.break_end)

    ensure_database_ready()

    try:
        get_active_provider(provider_id, db)

        window = db.query(ProviderAvailability).filter(
            ProviderAvailability.provider_id == provider_id,
            ProviderAvailability.day_of_week == day_of_week,
            ProviderAvailability.is_recurring.is_(True),
        ).first()

        if window is None:
            window = ProviderAvailability(
                provider_id=provider_id,
                day_of_week=day_of_week,
                is_recurring=True,
                is_closed=False,
            )
            db.add(window)

        window.start_time = data.start_time
        window.end_time = data.end_time
        window.break_start = data.break_start
        window.break_end = data.break_end

        db.commit()
        db.refresh(window)

        logger.info('Weekly availability for provider %s on day %s set to %s-%s.',
                    provider_id, day_of_week, data.start_time, data.end_time)

        return window
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.delete('/{provider_id}/availability/{day_of_week}', status_code=status.HTTP_204_NO_CONTENT)
def remove_weekly_availability(provider_id: int, day_of_week: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        get_active_provider(provider_id, db)

        window = db.query(ProviderAvailability).filter(
            ProviderAvailability.provider_id == provider_id,
            ProviderAvailability.day_of_week == day_of_week,
            ProviderAvailability.is_recurring.is_(True),
        ).first()

        if not window:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Availability not found.',
            )

        db.delete(window)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.post('/{provider_id}/overrides', response_model=AvailabilityResponse, status_code=status.HTTP_201_CREATED)
def create_override(provider_id: int, data: CreateOverrideRequest, db: Session = Depends(get_db)):
    if not data.is_closed:
        _check_hours(data.start_time, data.end_time, data.break_start, data.break_end)

    ensure_database_ready()

    try:
        get_active_provider(provider_id, db)

        existing = db.query(ProviderAvailability).filter(
            ProviderAvailability.provider_id == provider_id,
            ProviderAvailability.is_recurring.is_(False),
            ProviderAvailability.specific_date == data.specific_date,
        ).first()
        if existing:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='An override already exists for this date.',
            )

        override = ProviderAvailability(
            provider_id=provider_id,
            day_of_week=day_of_week_for(data.specific_date),
            is_recurring=False,
            specific_date=data.specific_date,
            is_closed=data.is_closed,
            start_time=None if data.is_closed else data.start_time,
            end_time=None if data.is_closed else data.end_time,
            break_start=None if data.is_closed else data.break_start,
            break_end=None if data.is_closed else data.break_end,
        )
        db.add(override)
        db.commit()
        db.refresh(override)

        return override
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.delete('/{provider_id}/overrides/{specific_date}', status_code=status.HTTP_204_NO_CONTENT)
def remove_override(provider_id: int, specific_date: date, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        get_active_provider(provider_id, db)

        override = db.query(ProviderAvailability).filter(
            ProviderAvailability.provider_id == provider_id,
            ProviderAvailability.is_recurring.is_(False),
            ProviderAvailability.specific_date == specific_date,
        ).first()

        if not override:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Override not found.',
            )

        db.delete(override)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.get('/{provider_id}/slots', response_model=ProviderSlotsResponse)
def list_provider_slots(
    provider_id: int,
    slot_date: date = Query(..., alias='date'),
    duration_minutes: int = Query(default=config.DEFAULT_SLOT_DURATION_MINUTES, ge=5, le=480),
    db: Session = Depends(get_db),
):
    reject_past_date(slot_date, 'Slots can only be listed for today or later.')

    ensure_database_ready()

    try:
        get_active_provider(provider_id, db)

        return compute_day_slots(provider_id, slot_date, duration_minutes, db)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.get('/{provider_id}/calendar', response_model=list[ProviderSlotsResponse])
def list_provider_calendar(
    provider_id: int,
    start: date | None = Query(default=None),
    days: int = Query(default=14, ge=1),
    duration_minutes: int = Query(default=config.DEFAULT_SLOT_DURATION_MINUTES, ge=5, le=480),
    db: Session = Depends(get_db),
):
    start_date = start or date.today()
    reject_past_date(start_date, 'The calendar cannot start in the past.')

    if days > config.CALENDAR_MAX_DAYS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'The calendar covers at most {config.CALENDAR_MAX_DAYS} days.',
        )

    ensure_database_ready()

    try:
        get_active_provider(provider_id, db)

        end_date = start_date + timedelta(days=days - 1)
        weekly_windows = load_weekly_windows(provider_id, db)
        overrides = load_overrides(provider_id, start_date, end_date, db)
        appointments = load_active_appointments(provider_id, start_date - timedelta(days=1), end_date, db)

        calendar_days: list[ProviderSlotsResponse] = []
        current_day = start_date
        now = datetime.now()

        while current_day <= end_date:
            calendar_days.append(
                resolve_day(provider_id, current_day, duration_minutes, weekly_windows, overrides, appointments, now)
            )
            current_day += timedelta(days=1)

        return calendar_days
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc
