"""Patient model definitions."""

from datetime import datetime

from sqlalchemy import Column, Integer, DateTime, String
from hospital.database import Base


class Patient(Base):
    """Represents a registered patient account."""
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    name = Column(String, nullable=False)
    contact = Column(String, unique=True, index=True, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
