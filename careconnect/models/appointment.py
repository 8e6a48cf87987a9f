"""Appointment model definitions."""

from datetime import datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Integer, String, Time, text
from careconnect.database import ACTIVE_SLOT_CONDITION, Base


class Appointment(Base):
    """Represents a booked appointment with a provider."""
    __tablename__ = "appointments"
    __table_args__ = (
        Index(
            "uq_appointments_provider_slot",
            "provider_id",
            "date",
            "time",
            unique=True,
            sqlite_where=text(ACTIVE_SLOT_CONDITION),
            postgresql_where=text(ACTIVE_SLOT_CONDITION),
        ),
    )

    id = Column(Integer, primary_key=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False, index=True)
    patient_email = Column(String, nullable=False, index=True)
    date = Column(Date, nullable=False)
    time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, default=30)
    appointment_type = Column(String, default="general")
    status = Column(String, default="scheduled")
    notes = Column(String)
    created_at = Column(DateTime, default=datetime.now)
