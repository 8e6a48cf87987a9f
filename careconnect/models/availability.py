"""Availability model definitions."""

from sqlalchemy import Boolean, Column, Date, ForeignKey, Integer, Time
from careconnect.database import Base


class ProviderAvailability(Base):
    """Represents a provider's working hours.

    Recurring rows are the weekly template, one per day of week. Rows with
    ``is_recurring`` false carry a ``specific_date`` and replace the template
    for that date only.
    """
    __tablename__ = "provider_availability"

    id = Column(Integer, primary_key=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)  # 0 = Sunday
    start_time = Column(Time)
    end_time = Column(Time)
    break_start = Column(Time)
    break_end = Column(Time)
    is_recurring = Column(Boolean, default=True)
    specific_date = Column(Date)
    is_closed = Column(Boolean, default=False)
