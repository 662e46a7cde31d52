import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')
os.environ.setdefault('JWT_SECRET_KEY', 'test-secret')

from hospital.database import Base  # noqa: E402
from hospital.models.appointment import Appointment  # noqa: E402
from hospital.models.doctor import AvailabilityWindow, Doctor  # noqa: E402
from hospital.models.patient import Patient  # noqa: E402


@pytest.fixture
def db_engine():
    engine = create_engine('sqlite:///:memory:')
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db(db_engine):
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def skip_schema_migrations(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('hospital.routes.common.ensure_appointment_schema', lambda: None)


@pytest.fixture
def make_doctor(db):
    def _make_doctor(name='Dr. Asha Rao', department='Cardiology', windows=((540, 600),), fee='500'):
        doctor = Doctor(
            name=name,
            department=department,
            fee=fee,
            windows=[AvailabilityWindow(start_minute=start, end_minute=end) for start, end in windows],
        )
        db.add(doctor)
        db.commit()
        db.refresh(doctor)
        return doctor

    return _make_doctor


@pytest.fixture
def make_appointment(db):
    def _make_appointment(
        doctor_name='Dr. Asha Rao',
        date='2026-03-02',
        time='09:15',
        status='scheduled',
        patient_id=None,
        patient_contact='9876543210',
        patient_name='Ravi Kumar',
    ):
        appointment = Appointment(
            patient_name=patient_name,
            patient_contact=patient_contact,
            patient_address='12 MG Road',
            patient_id=patient_id,
            department='Cardiology',
            doctor_name=doctor_name,
            date=date,
            time=time,
            symptoms='Chest pain',
            status=status,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return _make_appointment


@pytest.fixture
def make_patient(db):
    def _make_patient(username='ravi', contact='9876543210', email='ravi@example.com', name='Ravi Kumar'):
        patient = Patient(
            username=username,
            hashed_password='not-a-real-hash',
            name=name,
            contact=contact,
            email=email,
        )
        db.add(patient)
        db.commit()
        db.refresh(patient)
        return patient

    return _make_patient
