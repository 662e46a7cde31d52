import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hospital.auth import jwt_handler
from hospital.auth.dependencies import get_current_patient, get_optional_token_payload, require_admin
from hospital.core import config
from hospital.database import get_db
from hospital.models.appointment import Appointment
from hospital.models.doctor import AvailabilityWindow, Doctor
from hospital.routes.common import (
    database_unavailable,
    date_to_str,
    ensure_database_ready,
    normalize_required,
    normalize_time,
    to_http_exception,
)
from hospital.scheduling import booking
from hospital.scheduling.availability import load_free_slots
from hospital.scheduling.errors import BookingValidationError, SchedulingError
from hospital.scheduling.slots import (
    format_time,
    generate_slots,
    parse_time,
    parse_window_end,
    validate_window,
    windows_from_selected_times,
)

router = APIRouter(tags=['doctors'])

logger = logging.getLogger(__name__)


def normalize_doctor_name(value: str) -> str:
    words = value.split()
    name = ' '.join(word[:1].upper() + word[1:] for word in words)
    if not name.startswith('Dr.'):
        name = f'Dr. {name}'
    return name


class WindowPayload(BaseModel):
    start: str
    end: str

    @field_validator('start')
    @classmethod
    def validate_start(cls, value: str) -> str:
        return normalize_time(value)

    @field_validator('end')
    @classmethod
    def validate_end(cls, value: str) -> str:
        try:
            return format_time(parse_window_end(value))
        except BookingValidationError as exc:
            raise ValueError(exc.detail) from exc


class DoctorRequest(BaseModel):
    name: str
    department: str
    fee: str = ''
    windows: list[WindowPayload] | None = None
    selected_times: list[str] | None = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        return normalize_doctor_name(normalize_required(value, 'Doctor name'))

    @field_validator('department')
    @classmethod
    def validate_department(cls, value: str) -> str:
        return normalize_required(value, 'Department')

    @field_validator('fee')
    @classmethod
    def validate_fee(cls, value: str) -> str:
        return value.strip()

    @model_validator(mode='after')
    def validate_availability_source(self) -> 'DoctorRequest':
        if self.windows is not None and self.selected_times is not None:
            raise ValueError('Provide either windows or selected_times, not both.')
        return self


class WindowResponse(BaseModel):
    start: str
    end: str


class DoctorResponse(BaseModel):
    id: int
    name: str
    department: str
    fee: str
    windows: list[WindowResponse]
    selected_times: list[str]


class FreeSlotsResponse(BaseModel):
    doctor_id: int
    doctor_name: str
    date: date
    slots: list[str]


def build_windows(data: DoctorRequest) -> list[tuple[int, int]]:
    granularity = config.DOCTOR_WINDOW_MINUTES

    if data.selected_times is not None:
        return windows_from_selected_times(data.selected_times, granularity)

    windows: list[tuple[int, int]] = []
    for window in data.windows or []:
        start, end = parse_time(window.start), parse_window_end(window.end)
        validate_window(start, end)
        if start % granularity or end % granularity:
            raise BookingValidationError(
                f'Availability windows must start and end on {granularity}-minute boundaries.'
            )
        windows.append((start, end))

    return windows


def serialize_doctor(doctor: Doctor) -> DoctorResponse:
    return DoctorResponse(
        id=doctor.id,
        name=doctor.name,
        department=doctor.department,
        fee=doctor.fee or '',
        windows=[
            WindowResponse(start=format_time(window.start_minute), end=format_time(window.end_minute))
            for window in doctor.windows
        ],
        # Admin forms pick availability at the definition step, not the bookable one.
        selected_times=generate_slots(doctor.windows, config.DOCTOR_WINDOW_MINUTES),
    )


def get_doctor_or_404(doctor_id: int, db: Session) -> Doctor:
    doctor = db.get(Doctor, doctor_id)
    if doctor is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Doctor not found.',
        )
    return doctor


def ensure_unique_name(name: str, db: Session, doctor_id: int | None = None) -> None:
    query = db.query(Doctor).filter(Doctor.name == name)
    if doctor_id is not None:
        query = query.filter(Doctor.id != doctor_id)

    if query.first() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail='A doctor with this name already exists.',
        )


@router.get('', response_model=list[DoctorResponse])
def list_doctors(
    department: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    try:
        query = db.query(Doctor)
        if department:
            query = query.filter(Doctor.department == department.strip())

        return [serialize_doctor(doctor) for doctor in query.order_by(Doctor.name.asc()).all()]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/{doctor_id}', response_model=DoctorResponse)
def get_doctor(doctor_id: int, db: Session = Depends(get_db)):
    try:
        return serialize_doctor(get_doctor_or_404(doctor_id, db))
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


def authorize_exclusion(appointment_id: int, payload: dict | None, db: Session) -> None:
    """Only an admin or the appointment's owner may see availability with it left out."""
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Sign in to edit an appointment.',
        )
    if payload.get('role') == jwt_handler.ROLE_ADMIN:
        return

    patient = get_current_patient(payload, db)
    appointment = db.get(Appointment, appointment_id)
    # Missing and foreign appointments look the same to the caller.
    if appointment is None or not booking.owns_appointment(patient, appointment):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Not authorized to view this appointment',
        )


@router.get('/{doctor_id}/slots', response_model=FreeSlotsResponse)
def list_free_slots(
    doctor_id: int,
    date: date = Query(...),
    exclude_appointment_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    payload: dict | None = Depends(get_optional_token_payload),
):
    ensure_database_ready()

    try:
        if exclude_appointment_id is not None:
            authorize_exclusion(exclude_appointment_id, payload, db)
        doctor = get_doctor_or_404(doctor_id, db)
        slots = load_free_slots(db, doctor, date_to_str(date), exclude_appointment_id)

        return FreeSlotsResponse(doctor_id=doctor.id, doctor_name=doctor.name, date=date, slots=slots)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('', response_model=DoctorResponse, status_code=status.HTTP_201_CREATED)
def create_doctor(
    data: DoctorRequest,
    db: Session = Depends(get_db),
    _admin: dict = Depends(require_admin),
):
    try:
        windows = build_windows(data)
        ensure_unique_name(data.name, db)

        doctor = Doctor(
            name=data.name,
            department=data.department,
            fee=data.fee,
            windows=[AvailabilityWindow(start_minute=start, end_minute=end) for start, end in windows],
        )
        db.add(doctor)
        db.commit()
        db.refresh(doctor)

        logger.info('Added doctor %s (%s)', doctor.name, doctor.department)
        return serialize_doctor(doctor)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.put('/{doctor_id}', response_model=DoctorResponse)
def update_doctor(
    doctor_id: int,
    data: DoctorRequest,
    db: Session = Depends(get_db),
    _admin: dict = Depends(require_admin),
):
    try:
        doctor = get_doctor_or_404(doctor_id, db)
        ensure_unique_name(data.name, db, doctor_id=doctor.id)

        doctor.name = data.name
        doctor.department = data.department
        doctor.fee = data.fee
        if data.windows is not None or data.selected_times is not None:
            doctor.windows = [
                AvailabilityWindow(start_minute=start, end_minute=end) for start, end in build_windows(data)
            ]

        db.commit()
        db.refresh(doctor)

        return serialize_doctor(doctor)
    except SchedulingError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/{doctor_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_doctor(
    doctor_id: int,
    db: Session = Depends(get_db),
    _admin: dict = Depends(require_admin),
):
    try:
        doctor = get_doctor_or_404(doctor_id, db)

        # Appointments keep their copy of the doctor's name and stay valid.
        db.delete(doctor)
        db.commit()
        logger.info('Removed doctor %s', doctor_id)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
