import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from hospital.auth import jwt_handler
from hospital.database import get_db
from hospital.models.patient import Patient

security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


def _decode(token: str) -> dict:
    try:
        return jwt_handler.decode_access_token(token)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc


def get_token_payload(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    return _decode(credentials.credentials)


def get_optional_token_payload(
    credentials: HTTPAuthorizationCredentials | None = Depends(optional_security),
) -> dict | None:
    if credentials is None:
        return None
    return _decode(credentials.credentials)


def require_admin(payload: dict = Depends(get_token_payload)) -> dict:
    if payload.get("role") != jwt_handler.ROLE_ADMIN:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return payload


def get_current_patient(
    payload: dict = Depends(get_token_payload),
    db: Session = Depends(get_db),
) -> Patient:
    if payload.get("role") != jwt_handler.ROLE_PATIENT:
        raise HTTPException(status_code=401, detail="Invalid token subject")

    subject = payload.get("sub")
    if not subject or not str(subject).isdigit():
        raise HTTPException(status_code=401, detail="Invalid token subject")

    patient = db.get(Patient, int(subject))
    if patient is None:
        raise HTTPException(status_code=401, detail="Patient not found")
    return patient
