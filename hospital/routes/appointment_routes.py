from datetime import date as Date, datetime

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hospital.auth.dependencies import require_admin
from hospital.database import get_db
from hospital.models.appointment import APPOINTMENT_STATUSES, STATUS_CANCELLED, Appointment
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

router = APIRouter(tags=['appointments'])

MAX_SYMPTOMS_LENGTH = 1000


def normalize_status(value: str) -> str:
    normalized = value.strip().lower()
    if normalized not in APPOINTMENT_STATUSES:
        raise ValueError('Invalid appointment status.')
    return normalized


def normalize_symptoms(value: str) -> str:
    normalized = normalize_required(value, 'Symptoms')
    if len(normalized) > MAX_SYMPTOMS_LENGTH:
        raise ValueError(f'Symptoms must be {MAX_SYMPTOMS_LENGTH} characters or fewer.')
    return normalized


class CreateAppointmentRequest(BaseModel):
    patient_name: str
    patient_contact: str
    patient_address: str
    department: str
    doctor_name: str
    date: Date
    time: str
    symptoms: str
    patient_id: int | None = None
    patient_email: str | None = None

    @field_validator('patient_name', 'patient_address', 'department', 'doctor_name')
    @classmethod
    def validate_required(cls, value: str) -> str:
        return normalize_required(value, 'Field')

    @field_validator('patient_contact')
    @classmethod
    def validate_contact(cls, value: str) -> str:
        return normalize_contact(value)

    @field_validator('time')
    @classmethod
    def validate_time(cls, value: str) -> str:
        return normalize_time(value)

    @field_validator('symptoms')
    @classmethod
    def validate_symptoms(cls, value: str) -> str:
        return normalize_symptoms(value)

    def booking_details(self) -> dict:
        details = self.model_dump(exclude={'patient_id', 'patient_email'})
        details['date'] = date_to_str(self.date)
        return details


class UpdateAppointmentRequest(BaseModel):
    patient_name: str | None = None
    patient_contact: str | None = None
    patient_address: str | None = None
    department: str | None = None
    doctor_name: str | None = None
    date: Date | None = None
    time: str | None = None
    symptoms: str | None = None
    status: str | None = None

    @field_validator('patient_name', 'patient_address', 'department', 'doctor_name')
    @classmethod
    def validate_required(cls, value: str | None) -> str | None:
        return None if value is None else normalize_required(value, 'Field')

    @field_validator('patient_contact')
    @classmethod
    def validate_contact(cls, value: str | None) -> str | None:
        return None if value is None else normalize_contact(value)

    @field_validator('time')
    @classmethod
    def validate_time(cls, value: str | None) -> str | None:
        return None if value is None else normalize_time(value)

    @field_validator('symptoms')
    @classmethod
    def validate_symptoms(cls, value: str | None) -> str | None:
        return None if value is None else normalize_symptoms(value)

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str | None) -> str | None:
        return None if value is None else normalize_status(value)

    def changes(self) -> dict:
        changes = self.model_dump(exclude_unset=True, exclude_none=True)
        if 'date' in changes:
            changes['date'] = date_to_str(changes['date'])
        return changes


class StatusUpdateRequest(BaseModel):
    status: str

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str) -> str:
        return normalize_status(value)


class AppointmentResponse(BaseModel):
    id: int
    patient_id: int | None = None
    patient_name: str
    patient_contact: str
    patient_address: str
    department: str
    doctor_name: str
    date: str
    time: str
    symptoms: str
    status: str
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class MessageResponse(BaseModel):
    success: bool
    message: str


def get_appointment_or_404(appointment_id: int, db: Session) -> Appointment:
    try:
        return booking.get_appointment(db, appointment_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('', response_model=list[AppointmentResponse])
def list_appointments(
    doctor_name: str | None = Query(default=None),
    date_from: Date | None = Query(default=None),
    date_to: Date | None = Query(default=None),
    status_filter: str | None = Query(default=None, alias='status'),
    db: Session = Depends(get_db),
    _admin: dict = Depends(require_admin),
):
    if status_filter is not None and status_filter not in APPOINTMENT_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Invalid appointment status.',
        )

    try:
        query = db.query(Appointment)
        if doctor_name:
            query = query.filter(Appointment.doctor_name == doctor_name)
        # ISO dates compare correctly as strings.
        if date_from is not None:
            query = query.filter(Appointment.date >= date_to_str(date_from))
        if date_to is not None:
            query = query.filter(Appointment.date <= date_to_str(date_to))
        if status_filter is not None:
            query = query.filter(Appointment.status == status_filter)

        return query.order_by(Appointment.date.asc(), Appointment.time.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    _admin: dict = Depends(require_admin),
):
    ensure_database_ready()

    try:
        appointment = booking.book_appointment(db, data.booking_details(), patient_id=data.patient_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    background_tasks.add_task(
        send_appointment_confirmation,
        AppointmentNotice.from_appointment(appointment),
        data.patient_email,
    )
    return appointment


@router.put('/{appointment_id}', response_model=AppointmentResponse)
def update_appointment(
    appointment_id: int,
    data: UpdateAppointmentRequest,
    background_tasks: BackgroundTasks,
    patient_email: str | None = Query(default=None),
    db: Session = Depends(get_db),
    _admin: dict = Depends(require_admin),
):
    ensure_database_ready()

    appointment = get_appointment_or_404(appointment_id, db)
    previous_status = appointment.status
    try:
        booking.update_appointment(db, appointment, data.changes(), is_admin=True)
    except SchedulingError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc

    if appointment.status == STATUS_CANCELLED and previous_status != STATUS_CANCELLED:
        background_tasks.add_task(
            send_appointment_cancellation,
            AppointmentNotice.from_appointment(appointment),
            patient_email,
        )
    return appointment


@router.patch('/{appointment_id}/status', response_model=AppointmentResponse)
def update_appointment_status(
    appointment_id: int,
    data: StatusUpdateRequest,
    db: Session = Depends(get_db),
    _admin: dict = Depends(require_admin),
):
    appointment = get_appointment_or_404(appointment_id, db)
    try:
        booking.change_status(db, appointment, data.status, is_admin=True)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return appointment


@router.patch('/{appointment_id}/cancel', response_model=MessageResponse)
def cancel_appointment(
    appointment_id: int,
    background_tasks: BackgroundTasks,
    patient_email: str | None = Query(default=None),
    db: Session = Depends(get_db),
    _admin: dict = Depends(require_admin),
):
    appointment = get_appointment_or_404(appointment_id, db)
    try:
        changed = booking.cancel_appointment(db, appointment, is_admin=True)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    if changed:
        background_tasks.add_task(
            send_appointment_cancellation,
            AppointmentNotice.from_appointment(appointment),
            patient_email,
        )
    return MessageResponse(success=True, message='Appointment cancelled successfully')


@router.delete('/{appointment_id}', response_model=MessageResponse)
def delete_appointment(
    appointment_id: int,
    background_tasks: BackgroundTasks,
    patient_email: str | None = Query(default=None),
    db: Session = Depends(get_db),
    _admin: dict = Depends(require_admin),
):
    appointment = get_appointment_or_404(appointment_id, db)
    notice = AppointmentNotice.from_appointment(appointment)
    # A cancelled appointment already had its notice.
    was_active = appointment.status != STATUS_CANCELLED
    try:
        booking.delete_appointment(db, appointment)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    if was_active:
        background_tasks.add_task(send_appointment_cancellation, notice, patient_email)
    return MessageResponse(success=True, message='Appointment deleted successfully')
