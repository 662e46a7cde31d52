"""Write-time protection against double booking.

Two layers guard the one-active-appointment-per-slot rule. ``check_conflict``
runs against the committed state right before a write, which catches the
common case with a readable error. The partial unique index on
``appointments(doctor_name, date, time) WHERE status != 'cancelled'`` catches
the remaining race where two requests pass the check before either commits;
``commit_booking`` turns that index violation into the same ``SlotConflict``;
any other integrity failure is reported as a validation error.
"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from hospital.models.appointment import Appointment, STATUS_CANCELLED
from hospital.scheduling.errors import BookingValidationError, DependencyFailure, SlotConflict

logger = logging.getLogger(__name__)

DATABASE_UNAVAILABLE = 'Database unavailable. Verify DATABASE_URL and database credentials.'


def find_conflict(
    db: Session,
    doctor_name: str,
    date: str,
    time: str,
    exclude_appointment_id: Optional[int] = None,
) -> Optional[Appointment]:
    query = db.query(Appointment).filter(
        Appointment.doctor_name == doctor_name,
        Appointment.date == date,
        Appointment.time == time,
        Appointment.status != STATUS_CANCELLED,
    )
    if exclude_appointment_id is not None:
        query = query.filter(Appointment.id != exclude_appointment_id)

    return query.first()


def check_conflict(
    db: Session,
    doctor_name: str,
    date: str,
    time: str,
    exclude_appointment_id: Optional[int] = None,
) -> None:
    try:
        conflict = find_conflict(db, doctor_name, date, time, exclude_appointment_id)
    except SQLAlchemyError as exc:
        logger.exception('Conflict check failed for %s on %s at %s', doctor_name, date, time)
        raise DependencyFailure(DATABASE_UNAVAILABLE) from exc

    if conflict is not None:
        logger.info('Slot %s %s for %s already held by appointment %s', date, time, doctor_name, conflict.id)
        raise SlotConflict()


def commit_booking(db: Session, appointment: Appointment) -> Appointment:
    # Rollback expires the instance, so keep the attempted values for the recheck.
    appointment_id = appointment.id
    doctor_name, date, time = appointment.doctor_name, appointment.date, appointment.time

    db.add(appointment)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        try:
            conflict = find_conflict(db, doctor_name, date, time, appointment_id)
        except SQLAlchemyError as lookup_exc:
            logger.exception('Conflict recheck failed for %s on %s at %s', doctor_name, date, time)
            raise DependencyFailure(DATABASE_UNAVAILABLE) from lookup_exc

        if conflict is None:
            logger.warning('Appointment for %s on %s at %s violated a constraint: %s', doctor_name, date, time, exc.orig)
            raise BookingValidationError('Appointment refers to a record that does not exist.') from exc

        logger.info(
            'Concurrent booking rejected by unique index for %s on %s at %s',
            doctor_name,
            date,
            time,
        )
        raise SlotConflict() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Could not save appointment for %s', appointment.doctor_name)
        raise DependencyFailure(DATABASE_UNAVAILABLE) from exc

    db.refresh(appointment)
    return appointment
