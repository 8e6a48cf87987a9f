from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from careconnect.core import config


DATABASE_URL = config.DATABASE_URL

# Cancelled appointments keep their row but release their slot.
ACTIVE_SLOT_CONDITION = "status IS NULL OR status != 'cancelled'"

engine = create_engine(
    DATABASE_URL,
    connect_args={'check_same_thread': False} if DATABASE_URL.startswith('sqlite') else {},
)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_availability_schema_checked = False
_appointment_schema_checked = False


def ensure_availability_schema() -> None:
    global _availability_schema_checked

    if _availability_schema_checked:
        return

    with _schema_lock:
        if _availability_schema_checked:
            return

        inspector = inspect(engine)

        if 'provider_availability' not in inspector.get_table_names():
            _availability_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('provider_availability')}
        migration_steps = [
            ('break_start', 'ALTER TABLE provider_availability ADD COLUMN break_start TIME'),
            ('break_end', 'ALTER TABLE provider_availability ADD COLUMN break_end TIME'),
            ('is_recurring', 'ALTER TABLE provider_availability ADD COLUMN is_recurring BOOLEAN DEFAULT TRUE'),
            ('specific_date', 'ALTER TABLE provider_availability ADD COLUMN specific_date DATE'),
            ('is_closed', 'ALTER TABLE provider_availability ADD COLUMN is_closed BOOLEAN DEFAULT FALSE'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_provider_availability_weekday '
                    'ON provider_availability(provider_id, day_of_week)'
                )
            )
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_provider_availability_specific_date '
                    'ON provider_availability(provider_id, specific_date)'
                )
            )

        _availability_schema_checked = True


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('duration_minutes', 'ALTER TABLE appointments ADD COLUMN duration_minutes INTEGER DEFAULT 30'),
            ('appointment_type', 'ALTER TABLE appointments ADD COLUMN appointment_type VARCHAR'),
            ('notes', 'ALTER TABLE appointments ADD COLUMN notes VARCHAR'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_provider_slot '
                    'ON appointments(provider_id, date, time) '
                    f'WHERE {ACTIVE_SLOT_CONDITION}'
                )
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_patient_email ON appointments(patient_email)')
            )

        _appointment_schema_checked = True
