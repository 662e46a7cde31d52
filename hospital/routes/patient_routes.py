import logging
from datetime import date as Date

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hospital.auth.dependencies import get_current_patient, require_admin
from hospital.database import get_db
from hospital.models.appointment import Appointment
from hospital.models.patient import Patient
from hospital.routes.appointment_routes import (
    AppointmentResponse,
    MessageResponse,
    get_appointment_or_404,
    normalize_symptoms,
)
from hospital.routes.auth_routes import PatientProfile, normalize_email
from hospital.routes.common import (
    database_unavailable,
    date_to_str,
    ensure_database_ready,
    normalize_contact,
    normalize_required,
    normalize_time,
    to_http_exception,
)
from hospital.scheduling import booking
from hospital.scheduling.errors import SchedulingError
from hospital.services.notifications import (
    AppointmentNotice,
    send_appointment_cancellation,
    send_appointment_confirmation,
)

router = APIRouter(tags=['patients'])

logger = logging.getLogger(__name__)


class UpdateProfileRequest(BaseModel):
    name: str | None = None
    contact: str | None = None
    email: str | None = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str | None) -> str | None:
        return None if value is None else normalize_required(value, 'Name')

    @field_validator('contact')
    @classmethod
    def validate_contact(cls, value: str | None) -> str | None:
        return None if value is None else normalize_contact(value)

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str | None) -> str | None:
        return None if value is None else normalize_email(value)


class BookAppointmentRequest(BaseModel):
    department: str
    doctor_name: str
    date: Date
    time: str
    symptoms: str
    patient_address: str

    @field_validator('department', 'doctor_name', 'patient_address')
    @classmethod
    def validate_required(cls, value: str) -> str:
        return normalize_required(value, 'Field')

    @field_validator('time')
    @classmethod
    def validate_time(cls, value: str) -> str:
        return normalize_time(value)

    @field_validator('symptoms')
    @classmethod
    def validate_symptoms(cls, value: str) -> str:
        return normalize_symptoms(value)


class EditAppointmentRequest(BaseModel):
    department: str | None = None
    doctor_name: str | None = None
    date: Date | None = None
    time: str | None = None
    symptoms: str | None = None
    patient_address: str | None = None

    @field_validator('department', 'doctor_name', 'patient_address')
    @classmethod
    def validate_required(cls, value: str | None) -> str | None:
        return None if value is None else normalize_required(value, 'Field')

    @field_validator('time')
    @classmethod
    def validate_time(cls, value: str | None) -> str | None:
        return None if value is None else normalize_time(value)

    @field_validator('symptoms')
    @classmethod
    def validate_symptoms(cls, value: str | None) -> str | None:
        return None if value is None else normalize_symptoms(value)

    def changes(self) -> dict:
        changes = self.model_dump(exclude_unset=True, exclude_none=True)
        if 'date' in changes:
            changes['date'] = date_to_str(changes['date'])
        return changes


class LinkAppointmentsResponse(BaseModel):
    success: bool
    message: str
    linked: int


def get_owned_appointment(appointment_id: int, patient: Patient, db: Session, action: str) -> Appointment:
    appointment = get_appointment_or_404(appointment_id, db)
    if not booking.owns_appointment(patient, appointment):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f'Not authorized to {action} this appointment',
        )
    return appointment


def patient_appointments_query(patient: Patient, db: Session):
    return db.query(Appointment).filter(
        or_(
            Appointment.patient_id == patient.id,
            (Appointment.patient_id.is_(None)) & (Appointment.patient_contact == patient.contact),
        )
    )


@router.get('', response_model=list[PatientProfile])
def list_patients(db: Session = Depends(get_db), _admin: dict = Depends(require_admin)):
    try:
        return db.query(Patient).order_by(Patient.created_at.desc(), Patient.id.desc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/me', response_model=PatientProfile)
def get_profile(patient: Patient = Depends(get_current_patient)):
    return patient


@router.put('/me', response_model=PatientProfile)
def update_profile(
    data: UpdateProfileRequest,
    patient: Patient = Depends(get_current_patient),
    db: Session = Depends(get_db),
):
    try:
        if data.contact or data.email:
            clashes = []
            if data.contact:
                clashes.append(Patient.contact == data.contact)
            if data.email:
                clashes.append(Patient.email == data.email)

            existing = db.query(Patient).filter(Patient.id != patient.id, or_(*clashes)).first()
            if existing:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail='Contact or email already exists',
                )

        old_contact = patient.contact
        old_name = patient.name

        # Appointments hold copies of the patient's name and contact.
        if (data.contact and data.contact != old_contact) or (data.name and data.name != old_name):
            linked = patient_appointments_query(patient, db).all()
            for appointment in linked:
                appointment.patient_id = patient.id
                appointment.patient_contact = data.contact or old_contact
                appointment.patient_name = data.name or old_name
            logger.info('Updating %s appointments for patient %s after profile change', len(linked), patient.id)

        if data.name:
            patient.name = data.name
        if data.contact:
            patient.contact = data.contact
        if data.email:
            patient.email = data.email

        db.commit()
        db.refresh(patient)
        return patient
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/me/appointments', response_model=list[AppointmentResponse])
def list_my_appointments(
    patient: Patient = Depends(get_current_patient),
    db: Session = Depends(get_db),
):
    try:
        return patient_appointments_query(patient, db).order_by(
            Appointment.date.asc(),
            Appointment.time.asc(),
        ).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/me/appointments', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def book_my_appointment(
    data: BookAppointmentRequest,
    background_tasks: BackgroundTasks,
    patient: Patient = Depends(get_current_patient),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    details = data.model_dump()
    details['date'] = date_to_str(data.date)
    details['patient_name'] = patient.name
    details['patient_contact'] = patient.contact

    try:
        appointment = booking.book_appointment(db, details, patient_id=patient.id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    background_tasks.add_task(
        send_appointment_confirmation,
        AppointmentNotice.from_appointment(appointment),
        patient.email,
    )
    return appointment


@router.put('/me/appointments/{appointment_id}', response_model=AppointmentResponse)
def edit_my_appointment(
    appointment_id: int,
    data: EditAppointmentRequest,
    patient: Patient = Depends(get_current_patient),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    appointment = get_owned_appointment(appointment_id, patient, db, 'modify')
    try:
        return booking.update_appointment(db, appointment, data.changes(), is_admin=False)
    except SchedulingError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc


@router.patch('/me/appointments/{appointment_id}/cancel', response_model=MessageResponse)
def cancel_my_appointment(
    appointment_id: int,
    background_tasks: BackgroundTasks,
    patient: Patient = Depends(get_current_patient),
    db: Session = Depends(get_db),
):
    appointment = get_owned_appointment(appointment_id, patient, db, 'cancel')
    try:
        changed = booking.cancel_appointment(db, appointment, is_admin=False)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    if changed:
        background_tasks.add_task(
            send_appointment_cancellation,
            AppointmentNotice.from_appointment(appointment),
            patient.email,
        )
    return MessageResponse(success=True, message='Appointment cancelled successfully')


@router.delete('/me/appointments/{appointment_id}', response_model=MessageResponse)
def delete_my_appointment(
    appointment_id: int,
    patient: Patient = Depends(get_current_patient),
    db: Session = Depends(get_db),
):
    appointment = get_owned_appointment(appointment_id, patient, db, 'delete')
    try:
        booking.delete_appointment(db, appointment)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return MessageResponse(success=True, message='Appointment deleted successfully')


@router.post('/me/link-appointments', response_model=LinkAppointmentsResponse)
def link_my_appointments(
    patient: Patient = Depends(get_current_patient),
    db: Session = Depends(get_db),
):
    try:
        unlinked = db.query(Appointment).filter(
            Appointment.patient_contact == patient.contact,
            Appointment.patient_id.is_(None),
        ).all()

        if not unlinked:
            return LinkAppointmentsResponse(success=True, message='No appointments need linking', linked=0)

        for appointment in unlinked:
            appointment.patient_id = patient.id
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    return LinkAppointmentsResponse(
        success=True,
        message=f'Linked {len(unlinked)} appointments to your profile',
        linked=len(unlinked),
    )
