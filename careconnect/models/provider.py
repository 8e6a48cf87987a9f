"""Provider model definitions."""

from sqlalchemy import Boolean, Column, Integer, String
from careconnect.database import Base


class Provider(Base):
    """Represents a healthcare provider patients can book."""
    __tablename__ = "providers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True)
    specialty = Column(String, index=True)
    is_active = Column(Boolean, default=True)
