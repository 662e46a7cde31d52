"""Appointment model definitions."""

from datetime import datetime

from sqlalchemy import Column, Integer, DateTime, ForeignKey, Index, String, text
from hospital.database import ACTIVE_SLOT_INDEX, Base

STATUS_SCHEDULED = 'scheduled'
STATUS_CONFIRMED = 'confirmed'
STATUS_COMPLETED = 'completed'
STATUS_CANCELLED = 'cancelled'
APPOINTMENT_STATUSES = (STATUS_SCHEDULED, STATUS_CONFIRMED, STATUS_COMPLETED, STATUS_CANCELLED)

_ACTIVE_ONLY = text("status != 'cancelled'")


class Appointment(Base):
    """Represents a scheduled consultation.

    ``doctor_name`` is a copy of the doctor's name at booking time rather than
    a foreign key, so appointments outlive the doctor record they were made
    against.
    """
    __tablename__ = "appointments"
    __table_args__ = (
        Index(
            ACTIVE_SLOT_INDEX,
            "doctor_name",
            "date",
            "time",
            unique=True,
            postgresql_where=_ACTIVE_ONLY,
            sqlite_where=_ACTIVE_ONLY,
        ),
        Index("idx_appointments_doctor_date", "doctor_name", "date"),
    )

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, ForeignKey("patients.id", ondelete="SET NULL"), nullable=True, index=True)
    patient_name = Column(String, nullable=False)
    patient_contact = Column(String, nullable=False, index=True)
    patient_address = Column(String, nullable=False, default='')
    department = Column(String, nullable=False)
    doctor_name = Column(String, nullable=False)
    date = Column(String, nullable=False)  # YYYY-MM-DD
    time = Column(String, nullable=False)  # HH:MM
    symptoms = Column(String, nullable=False, default='')
    status = Column(String, nullable=False, default=STATUS_SCHEDULED)
    created_at = Column(DateTime, default=datetime.utcnow)
