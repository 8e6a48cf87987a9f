import os
from datetime import date, time, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from careconnect.database import Base  # noqa: E402
from careconnect.models.appointment import Appointment  # noqa: E402
from careconnect.models.availability import ProviderAvailability  # noqa: E402
from careconnect.models.provider import Provider  # noqa: E402

ROUTE_MODULES = (
    'careconnect.routes.provider_routes',
    'careconnect.routes.availability_routes',
    'careconnect.routes.appointment_routes',
)


@pytest.fixture
def scheduling_db(monkeypatch: pytest.MonkeyPatch):
    for module_name in ROUTE_MODULES:
        monkeypatch.setattr(f'{module_name}.ensure_database_ready', lambda: None)

    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    tables = [Provider.__table__, ProviderAvailability.__table__, Appointment.__table__]
    Base.metadata.create_all(bind=engine, tables=tables)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine, tables=list(reversed(tables)))


@pytest.fixture
def provider(scheduling_db) -> Provider:
    record = Provider(name='Dr. Ada Okafor', email='ada@clinic.example', specialty='cardiology', is_active=True)
    scheduling_db.add(record)
    scheduling_db.commit()
    scheduling_db.refresh(record)
    return record


def upcoming(day_of_week: int) -> date:
    """Next date strictly after today falling on ``day_of_week`` (0 = Sunday)."""
    candidate = date.today() + timedelta(days=1)
    while (candidate.weekday() + 1) % 7 != day_of_week:
        candidate += timedelta(days=1)
    return candidate


@pytest.fixture
def next_monday() -> date:
    return upcoming(1)


@pytest.fixture
def add_weekly_window(scheduling_db):
    def _add(provider_id: int, day_of_week: int, start: time, end: time,
             break_start: time | None = None, break_end: time | None = None) -> ProviderAvailability:
        window = ProviderAvailability(
            provider_id=provider_id,
            day_of_week=day_of_week,
            start_time=start,
            end_time=end,
            break_start=break_start,
            break_end=break_end,
            is_recurring=True,
            is_closed=False,
        )
        scheduling_db.add(window)
        scheduling_db.commit()
        scheduling_db.refresh(window)
        return window

    return _add


@pytest.fixture
def add_appointment(scheduling_db):
    def _add(provider_id: int, on: date, at: time, duration_minutes: int | None = 30,
             patient_email: str = 'patient@example.com', status: str = 'scheduled') -> Appointment:
        appointment = Appointment(
            provider_id=provider_id,
            patient_email=patient_email,
            date=on,
            time=at,
            duration_minutes=duration_minutes,
            appointment_type='general',
            status=status,
        )
        scheduling_db.add(appointment)
        scheduling_db.commit()
        scheduling_db.refresh(appointment)
        return appointment

    return _add
