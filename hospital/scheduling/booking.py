"""Booking operations shared by the admin and patient surfaces.

Every operation that fixes a (doctor, date, time) triple validates the time
against the doctor's bookable slots and then runs the conflict guard before
committing. Status changes never touch the triple and skip the guard.
"""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hospital.core import config
from hospital.models.appointment import Appointment, STATUS_CANCELLED, STATUS_SCHEDULED
from hospital.models.doctor import Doctor
from hospital.models.patient import Patient
from hospital.scheduling.conflicts import DATABASE_UNAVAILABLE, check_conflict, commit_booking
from hospital.scheduling.errors import BookingValidationError, DependencyFailure, NotFound
from hospital.scheduling.slots import generate_slots
from hospital.scheduling.status import apply_transition, is_terminal

logger = logging.getLogger(__name__)

APPOINTMENT_FIELDS = (
    'patient_name',
    'patient_contact',
    'patient_address',
    'department',
    'doctor_name',
    'date',
    'time',
    'symptoms',
)
SLOT_FIELDS = ('doctor_name', 'date', 'time')


def get_appointment(db: Session, appointment_id: int) -> Appointment:
    appointment = db.get(Appointment, appointment_id)
    if appointment is None:
        raise NotFound('Appointment not found.')
    return appointment


def get_doctor_by_name(db: Session, doctor_name: str) -> Doctor:
    doctor = db.query(Doctor).filter(Doctor.name == doctor_name).first()
    if doctor is None:
        raise NotFound('Doctor not found.')
    return doctor


def ensure_bookable_time(doctor: Doctor, time: str) -> None:
    if time not in generate_slots(doctor.windows, config.BOOKING_SLOT_MINUTES):
        raise BookingValidationError(f'{doctor.name} is not available at {time}.')


def owns_appointment(patient: Patient, appointment: Appointment) -> bool:
    if appointment.patient_id is not None:
        return appointment.patient_id == patient.id
    # Appointments booked before patient accounts existed only carry the contact number.
    return appointment.patient_contact == patient.contact


def _commit(db: Session, description: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Could not %s', description)
        raise DependencyFailure(DATABASE_UNAVAILABLE) from exc


def book_appointment(db: Session, details: dict, patient_id: Optional[int] = None) -> Appointment:
    try:
        doctor = get_doctor_by_name(db, details['doctor_name'])
        if patient_id is not None and db.get(Patient, patient_id) is None:
            raise NotFound('Patient not found.')
    except SQLAlchemyError as exc:
        raise DependencyFailure(DATABASE_UNAVAILABLE) from exc

    ensure_bookable_time(doctor, details['time'])
    check_conflict(db, details['doctor_name'], details['date'], details['time'])

    appointment = Appointment(
        **{field: details[field] for field in APPOINTMENT_FIELDS if field in details},
        patient_id=patient_id,
        status=STATUS_SCHEDULED,
    )
    commit_booking(db, appointment)

    logger.info(
        'Booked appointment %s with %s on %s at %s',
        appointment.id,
        appointment.doctor_name,
        appointment.date,
        appointment.time,
    )
    return appointment


def update_appointment(db: Session, appointment: Appointment, changes: dict, *, is_admin: bool) -> Appointment:
    """Apply a partial edit.

    ``changes`` holds only the fields the caller actually sent. When the
    doctor, date or time move, the new triple is re-validated and checked for
    conflicts with this appointment itself excluded.
    """
    changes = {key: value for key, value in changes.items() if value is not None}
    new_status = changes.pop('status', None)

    target = {field: changes.get(field, getattr(appointment, field)) for field in SLOT_FIELDS}
    slot_changed = any(target[field] != getattr(appointment, field) for field in SLOT_FIELDS)

    if slot_changed:
        if is_terminal(appointment.status):
            raise BookingValidationError('Completed or cancelled appointments cannot be rescheduled.')

        try:
            doctor = get_doctor_by_name(db, target['doctor_name'])
        except SQLAlchemyError as exc:
            raise DependencyFailure(DATABASE_UNAVAILABLE) from exc

        ensure_bookable_time(doctor, target['time'])
        check_conflict(db, target['doctor_name'], target['date'], target['time'], appointment.id)

        if target['doctor_name'] != appointment.doctor_name and 'department' not in changes:
            changes['department'] = doctor.department

    if new_status is not None:
        apply_transition(appointment, new_status, is_admin=is_admin)

    for field in APPOINTMENT_FIELDS:
        if field in changes:
            setattr(appointment, field, changes[field])

    commit_booking(db, appointment)
    return appointment


def change_status(db: Session, appointment: Appointment, new_status: str, *, is_admin: bool) -> bool:
    changed = apply_transition(appointment, new_status, is_admin=is_admin)
    if changed:
        _commit(db, f'update status of appointment {appointment.id}')
        logger.info('Appointment %s is now %s', appointment.id, appointment.status)
    return changed


def cancel_appointment(db: Session, appointment: Appointment, *, is_admin: bool) -> bool:
    """Soft cancel: the record stays for history and its slot becomes free."""
    return change_status(db, appointment, STATUS_CANCELLED, is_admin=is_admin)


def delete_appointment(db: Session, appointment: Appointment) -> None:
    """Hard delete: removes the record entirely, freeing the slot and losing history."""
    appointment_id = appointment.id
    db.delete(appointment)
    _commit(db, f'delete appointment {appointment_id}')
    logger.info('Deleted appointment %s', appointment_id)
