import logging
import secrets

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from hospital.auth import jwt_handler
from hospital.auth.passwords import hash_password, verify_password
from hospital.core import config
from hospital.database import get_db
from hospital.models.patient import Patient
from hospital.routes.common import database_unavailable, normalize_contact, normalize_required

router = APIRouter(tags=['auth'])

logger = logging.getLogger(__name__)


def normalize_email(value: str) -> str:
    normalized = value.strip().lower()
    local, _, domain = normalized.partition('@')
    if not local or '.' not in domain:
        raise ValueError('A valid email address is required.')
    return normalized


class AdminLoginRequest(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = 'bearer'


class RegisterPatientRequest(BaseModel):
    username: str
    password: str = Field(min_length=8, max_length=72)
    name: str
    contact: str
    email: str

    @field_validator('username')
    @classmethod
    def validate_username(cls, value: str) -> str:
        return normalize_required(value, 'Username')

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        return normalize_required(value, 'Name')

    @field_validator('contact')
    @classmethod
    def validate_contact(cls, value: str) -> str:
        return normalize_contact(value)

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        return normalize_email(value)


class PatientLoginRequest(BaseModel):
    username: str
    password: str


class PatientProfile(BaseModel):
    id: int
    username: str
    name: str
    contact: str
    email: str

    class Config:
        from_attributes = True


class PatientAuthResponse(BaseModel):
    success: bool = True
    message: str
    access_token: str
    token_type: str = 'bearer'
    patient: PatientProfile


def issue_patient_token(patient: Patient) -> str:
    return jwt_handler.create_access_token(subject=str(patient.id), role=jwt_handler.ROLE_PATIENT)


@router.post('/admin/login', response_model=TokenResponse)
def admin_login(data: AdminLoginRequest):
    valid = (
        bool(config.ADMIN_USERNAME)
        and bool(config.ADMIN_PASSWORD)
        and secrets.compare_digest(data.username.encode('utf-8'), config.ADMIN_USERNAME.encode('utf-8'))
        and secrets.compare_digest(data.password.encode('utf-8'), config.ADMIN_PASSWORD.encode('utf-8'))
    )
    if not valid:
        logger.info('Rejected admin login for %r', data.username)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid credentials')

    token = jwt_handler.create_access_token(subject=data.username, role=jwt_handler.ROLE_ADMIN)
    return TokenResponse(access_token=token)


@router.post('/patients/register', response_model=PatientAuthResponse, status_code=status.HTTP_201_CREATED)
def register_patient(data: RegisterPatientRequest, db: Session = Depends(get_db)):
    try:
        existing = db.query(Patient).filter(
            or_(
                Patient.username == data.username,
                Patient.contact == data.contact,
                Patient.email == data.email,
            )
        ).first()
        if existing:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Username, contact, or email already exists',
            )

        patient = Patient(
            username=data.username,
            hashed_password=hash_password(data.password),
            name=data.name,
            contact=data.contact,
            email=data.email,
        )
        db.add(patient)
        db.commit()
        db.refresh(patient)
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Username, contact, or email already exists',
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Patient registration failed')
        raise database_unavailable() from exc

    return PatientAuthResponse(
        message='Patient registered successfully',
        access_token=issue_patient_token(patient),
        patient=PatientProfile.model_validate(patient),
    )


@router.post('/patients/login', response_model=PatientAuthResponse)
def login_patient(data: PatientLoginRequest, db: Session = Depends(get_db)):
    try:
        patient = db.query(Patient).filter(Patient.username == data.username.strip()).first()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    if patient is None or not verify_password(data.password, patient.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid credentials')

    return PatientAuthResponse(
        message='Login successful',
        access_token=issue_patient_token(patient),
        patient=PatientProfile.model_validate(patient),
    )
