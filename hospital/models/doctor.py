"""Doctor and availability window model definitions."""

from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from hospital.database import Base


class Doctor(Base):
    """A doctor on the roster together with the hours they accept bookings."""
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False, index=True)
    department = Column(String, nullable=False, index=True)
    fee = Column(String, default="")

    windows = relationship(
        "AvailabilityWindow",
        back_populates="doctor",
        cascade="all, delete-orphan",
        order_by="AvailabilityWindow.start_minute",
    )


class AvailabilityWindow(Base):
    """Half-open ``[start_minute, end_minute)`` interval of a calendar day; an end of 1440 is midnight."""
    __tablename__ = "availability_windows"
    __table_args__ = (
        CheckConstraint("start_minute >= 0 AND start_minute < end_minute AND end_minute <= 1440",
                        name="ck_availability_window_bounds"),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False, index=True)
    start_minute = Column(Integer, nullable=False)
    end_minute = Column(Integer, nullable=False)

    doctor = relationship("Doctor", back_populates="windows")
