"""Free-slot resolution for a doctor on a given day."""

from typing import Iterable, Optional

from sqlalchemy.orm import Session

from hospital.core import config
from hospital.models.appointment import Appointment, STATUS_CANCELLED
from hospital.models.doctor import Doctor
from hospital.scheduling.slots import generate_slots


def taken_times(
    doctor_name: str,
    date: str,
    appointments: Iterable[Appointment],
    exclude_appointment_id: Optional[int] = None,
) -> set[str]:
    return {
        appointment.time
        for appointment in appointments
        if appointment.doctor_name == doctor_name
        and appointment.date == date
        and appointment.status != STATUS_CANCELLED
        and (exclude_appointment_id is None or appointment.id != exclude_appointment_id)
    }


def free_slots(
    doctor: Doctor,
    date: str,
    appointments: Iterable[Appointment],
    exclude_appointment_id: Optional[int] = None,
) -> list[str]:
    """Bookable slots for ``doctor`` on ``date`` that nobody holds yet.

    ``exclude_appointment_id`` lets an appointment being edited keep its own
    slot selectable. It only matters when the edit stays on the same doctor
    and date; the appointment's previous time is never added back otherwise.
    """
    all_slots = generate_slots(doctor.windows, config.BOOKING_SLOT_MINUTES)
    taken = taken_times(doctor.name, date, appointments, exclude_appointment_id)
    return [slot for slot in all_slots if slot not in taken]


def load_free_slots(
    db: Session,
    doctor: Doctor,
    date: str,
    exclude_appointment_id: Optional[int] = None,
) -> list[str]:
    appointments = db.query(Appointment).filter(
        Appointment.doctor_name == doctor.name,
        Appointment.date == date,
        Appointment.status != STATUS_CANCELLED,
    ).all()

    return free_slots(doctor, date, appointments, exclude_appointment_id)
