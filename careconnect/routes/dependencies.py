import logging

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from careconnect.database import SessionLocal, ensure_availability_schema, ensure_appointment_schema
from careconnect.models.provider import Provider

logger = logging.getLogger(__name__)

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'


def database_unavailable(exc: SQLAlchemyError) -> HTTPException:
    logger.exception('Database operation failed: %s', exc)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )


def ensure_database_ready() -> None:
    try:
        ensure_availability_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_active_provider(provider_id: int, db: Session) -> Provider:
    provider = db.query(Provider).filter(
        Provider.id == provider_id,
        Provider.is_active.is_(True),
    ).first()

    if not provider:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Provider not found.',
        )

    return provider


def normalize_email(value: str, *, field_label: str) -> str:
    normalized = value.strip().lower()
    if not normalized:
        raise ValueError(f'{field_label} is required.')
    if '@' not in normalized:
        raise ValueError(f'{field_label} must be an email address.')
    return normalized
