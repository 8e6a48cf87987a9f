from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from careconnect.models.provider import Provider
from careconnect.routes.dependencies import (
    database_unavailable,
    ensure_database_ready,
    get_active_provider,
    get_db,
    normalize_email,
)

router = APIRouter(tags=['providers'])


class CreateProviderRequest(BaseModel):
    name: str
    email: str
    specialty: str | None = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Provider name is required.')
        return normalized

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        return normalize_email(value, field_label='Provider email')

    @field_validator('specialty')
    @classmethod
    def validate_specialty(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().lower()
        return normalized or None


class ProviderResponse(BaseModel):
    id: int
    name: str
    email: str
    specialty: str | None = None
    is_active: bool

    class Config:
        from_attributes = True


@router.post('', response_model=ProviderResponse, status_code=status.HTTP_201_CREATED)
def create_provider(data: CreateProviderRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        provider = Provider(
            name=data.name,
            email=data.email,
            specialty=data.specialty,
            is_active=True,
        )
        db.add(provider)
        db.commit()
        db.refresh(provider)

        return provider
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail='A provider with this email already exists.',
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.get('', response_model=list[ProviderResponse])
def list_providers(
    specialty: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        query = db.query(Provider).filter(Provider.is_active.is_(True))
        if specialty and specialty.strip():
            query = query.filter(Provider.specialty == specialty.strip().lower())

        return query.order_by(Provider.name.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.get('/{provider_id}', response_model=ProviderResponse)
def get_provider(provider_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return get_active_provider(provider_id, db)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc
