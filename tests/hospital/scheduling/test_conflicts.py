import threading

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from hospital.database import Base
from hospital.models.appointment import Appointment
from hospital.models.doctor import AvailabilityWindow, Doctor
from hospital.scheduling import booking
from hospital.scheduling.conflicts import check_conflict, commit_booking
from hospital.scheduling.errors import BookingValidationError, SlotConflict


def _details(time='09:15', date='2026-03-02'):
    return {
        'patient_name': 'Ravi Kumar',
        'patient_contact': '9876543210',
        'patient_address': '12 MG Road',
        'department': 'Cardiology',
        'doctor_name': 'Dr. Asha Rao',
        'date': date,
        'time': time,
        'symptoms': 'Chest pain',
    }


def test_check_conflict_passes_repeatedly_until_a_booking_commits(db, make_doctor) -> None:
    make_doctor()

    check_conflict(db, 'Dr. Asha Rao', '2026-03-02', '09:15')
    check_conflict(db, 'Dr. Asha Rao', '2026-03-02', '09:15')

    booking.book_appointment(db, _details())

    with pytest.raises(SlotConflict):
        check_conflict(db, 'Dr. Asha Rao', '2026-03-02', '09:15')


def test_check_conflict_ignores_cancelled_appointments(db, make_appointment) -> None:
    make_appointment(time='09:15', status='cancelled')

    check_conflict(db, 'Dr. Asha Rao', '2026-03-02', '09:15')


def test_check_conflict_excludes_the_appointment_itself(db, make_appointment) -> None:
    appointment = make_appointment(time='09:15')

    check_conflict(db, 'Dr. Asha Rao', '2026-03-02', '09:15', exclude_appointment_id=appointment.id)

    with pytest.raises(SlotConflict):
        check_conflict(db, 'Dr. Asha Rao', '2026-03-02', '09:15')


def test_commit_booking_turns_unique_index_violation_into_slot_conflict(db, make_appointment) -> None:
    make_appointment(time='09:15')
    duplicate = Appointment(**_details(), status='scheduled')

    with pytest.raises(SlotConflict):
        commit_booking(db, duplicate)

    active = db.query(Appointment).filter(Appointment.status != 'cancelled').all()
    assert len(active) == 1


def test_unique_index_allows_rebooking_a_cancelled_slot(db, make_appointment) -> None:
    make_appointment(time='09:15', status='cancelled')
    make_appointment(time='09:15', status='cancelled')

    rebooked = commit_booking(db, Appointment(**_details(), status='scheduled'))

    assert rebooked.id is not None


def test_index_rejects_second_writer_even_when_precheck_is_bypassed(db, make_doctor, monkeypatch) -> None:
    make_doctor()
    booking.book_appointment(db, _details())
    # Simulate a competing request that read the slot as free before the first commit.
    monkeypatch.setattr(booking, 'check_conflict', lambda *args, **kwargs: None)

    with pytest.raises(SlotConflict):
        booking.book_appointment(db, _details())

    assert db.query(Appointment).count() == 1


@pytest.fixture
def shared_sessionmaker(tmp_path):
    engine = create_engine(
        f'sqlite:///{tmp_path / "race.db"}',
        connect_args={'check_same_thread': False, 'timeout': 30},
    )
    Base.metadata.create_all(bind=engine)
    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    with session_factory() as session:
        session.add(Doctor(
            name='Dr. Asha Rao',
            department='Cardiology',
            windows=[AvailabilityWindow(start_minute=540, end_minute=600)],
        ))
        session.commit()

    try:
        yield session_factory
    finally:
        engine.dispose()


def test_concurrent_bookings_for_the_same_slot_commit_exactly_once(shared_sessionmaker, monkeypatch) -> None:
    barrier = threading.Barrier(2)
    real_check_conflict = booking.check_conflict

    def check_then_wait(*args, **kwargs):
        real_check_conflict(*args, **kwargs)
        # Both requests have seen the slot as free before either writes.
        barrier.wait(timeout=10)

    monkeypatch.setattr(booking, 'check_conflict', check_then_wait)

    outcomes: list[str] = []
    lock = threading.Lock()

    def attempt() -> None:
        with shared_sessionmaker() as session:
            try:
                booking.book_appointment(session, _details())
                result = 'booked'
            except SlotConflict:
                result = 'conflict'
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=attempt) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert sorted(outcomes) == ['booked', 'conflict']

    with shared_sessionmaker() as session:
        active = session.query(Appointment).filter(
            Appointment.doctor_name == 'Dr. Asha Rao',
            Appointment.date == '2026-03-02',
            Appointment.time == '09:15',
            Appointment.status != 'cancelled',
        ).count()
    assert active == 1


@pytest.fixture
def fk_session():
    engine = create_engine('sqlite:///:memory:')

    @event.listens_for(engine, 'connect')
    def enable_foreign_keys(dbapi_connection, _connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()

    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


def test_commit_booking_reports_foreign_key_failure_as_validation_error(fk_session) -> None:
    orphan = Appointment(**_details(), patient_id=999, status='scheduled')

    with pytest.raises(BookingValidationError):
        commit_booking(fk_session, orphan)

    assert fk_session.query(Appointment).count() == 0


def test_commit_booking_still_reports_slot_conflict_with_foreign_keys_on(fk_session) -> None:
    commit_booking(fk_session, Appointment(**_details(), status='scheduled'))

    with pytest.raises(SlotConflict):
        commit_booking(fk_session, Appointment(**_details(), status='scheduled'))
