import re
from datetime import date

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from hospital.database import ensure_appointment_schema
from hospital.scheduling.conflicts import DATABASE_UNAVAILABLE
from hospital.scheduling.errors import (
    BookingValidationError,
    DependencyFailure,
    NotFound,
    SchedulingError,
    SlotConflict,
    Unauthorized,
)
from hospital.scheduling.slots import format_time, parse_time

CONTACT_PATTERN = re.compile(r'^\d{10}$')

_STATUS_BY_ERROR = (
    (BookingValidationError, status.HTTP_400_BAD_REQUEST),
    (Unauthorized, status.HTTP_403_FORBIDDEN),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (SlotConflict, status.HTTP_409_CONFLICT),
    (DependencyFailure, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def to_http_exception(exc: SchedulingError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=exc.detail)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.detail)


def database_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE,
    )


def ensure_database_ready() -> None:
    try:
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


def normalize_contact(value: str) -> str:
    normalized = value.strip()
    if not CONTACT_PATTERN.match(normalized):
        raise ValueError('Contact number must be exactly 10 digits.')
    return normalized


def normalize_required(value: str, field_name: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError(f'{field_name} is required.')
    return normalized


def normalize_time(value: str) -> str:
    try:
        return format_time(parse_time(value))
    except BookingValidationError as exc:
        raise ValueError(exc.detail) from exc


def date_to_str(value: date) -> str:
    return value.isoformat()
