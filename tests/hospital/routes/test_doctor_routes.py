from datetime import date

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from hospital.models.doctor import AvailabilityWindow, Doctor
from hospital.routes.doctor_routes import (
    DoctorRequest,
    WindowPayload,
    create_doctor,
    delete_doctor,
    get_doctor,
    list_doctors,
    list_free_slots,
    normalize_doctor_name,
    update_doctor,
)

ADMIN = {'sub': 'admin', 'role': 'admin'}


def test_normalize_doctor_name_adds_title_and_capitalises() -> None:
    assert normalize_doctor_name('asha  rao') == 'Dr. Asha Rao'
    assert normalize_doctor_name('Dr. Meera Iyer') == 'Dr. Meera Iyer'


def test_doctor_request_rejects_both_windows_and_selected_times() -> None:
    with pytest.raises(ValidationError):
        DoctorRequest(
            name='Asha Rao',
            department='Cardiology',
            windows=[WindowPayload(start='09:00', end='10:00')],
            selected_times=['09:00'],
        )


def test_doctor_request_rejects_malformed_window_time() -> None:
    with pytest.raises(ValidationError):
        WindowPayload(start='9am', end='10:00')


def test_create_doctor_from_selected_times(db) -> None:
    data = DoctorRequest(
        name='asha rao',
        department='Cardiology',
        fee='500',
        selected_times=['09:00', '09:30', '14:00'],
    )

    response = create_doctor(data=data, db=db, _admin=ADMIN)

    assert response.name == 'Dr. Asha Rao'
    assert [(window.start, window.end) for window in response.windows] == [('09:00', '10:00'), ('14:00', '14:30')]
    assert response.selected_times == ['09:00', '09:30', '14:00']
    assert db.query(AvailabilityWindow).count() == 2


def test_create_doctor_rejects_window_off_the_half_hour(db) -> None:
    data = DoctorRequest(
        name='Asha Rao',
        department='Cardiology',
        windows=[WindowPayload(start='09:15', end='10:00')],
    )

    with pytest.raises(HTTPException) as exception_info:
        create_doctor(data=data, db=db, _admin=ADMIN)

    assert exception_info.value.status_code == 400
    assert db.query(Doctor).count() == 0


def test_create_doctor_rejects_duplicate_name(db, make_doctor) -> None:
    make_doctor()

    with pytest.raises(HTTPException) as exception_info:
        create_doctor(data=DoctorRequest(name='Asha Rao', department='Neurology'), db=db, _admin=ADMIN)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'A doctor with this name already exists.'


def test_list_doctors_filters_by_department(db, make_doctor) -> None:
    make_doctor()
    make_doctor(name='Dr. Meera Iyer', department='Neurology')

    doctors = list_doctors(department='Neurology', db=db)

    assert [doctor.name for doctor in doctors] == ['Dr. Meera Iyer']


def test_get_doctor_returns_404_for_unknown_id(db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_doctor(doctor_id=99, db=db)

    assert exception_info.value.status_code == 404


def test_update_doctor_replaces_windows(db, make_doctor) -> None:
    doctor = make_doctor(windows=((540, 600),))
    data = DoctorRequest(name='Asha Rao', department='Cardiology', selected_times=['15:00'])

    response = update_doctor(doctor_id=doctor.id, data=data, db=db, _admin=ADMIN)

    assert response.selected_times == ['15:00']
    assert db.query(AvailabilityWindow).count() == 1


def test_update_doctor_keeps_windows_when_none_sent(db, make_doctor) -> None:
    doctor = make_doctor(windows=((540, 600),))

    response = update_doctor(
        doctor_id=doctor.id,
        data=DoctorRequest(name='Asha Rao', department='Cardiology', fee='800'),
        db=db,
        _admin=ADMIN,
    )

    assert response.fee == '800'
    assert response.selected_times == ['09:00', '09:30']


def test_delete_doctor_leaves_appointments_in_place(db, make_doctor, make_appointment) -> None:
    doctor_id = make_doctor().id
    appointment = make_appointment()

    delete_doctor(doctor_id=doctor_id, db=db, _admin=ADMIN)

    assert db.get(Doctor, doctor_id) is None
    assert db.query(AvailabilityWindow).count() == 0
    db.refresh(appointment)
    assert appointment.doctor_name == 'Dr. Asha Rao'


def test_list_free_slots_removes_booked_times(db, make_doctor, make_appointment) -> None:
    doctor = make_doctor(windows=((540, 600),))
    make_appointment(time='09:15')
    make_appointment(time='09:45', status='cancelled')

    response = list_free_slots(
        doctor_id=doctor.id,
        date=date(2026, 3, 2),
        exclude_appointment_id=None,
        db=db,
        payload=None,
    )

    assert response.slots == ['09:00', '09:30', '09:45']
    assert response.doctor_name == 'Dr. Asha Rao'


def test_list_free_slots_offers_back_the_appointment_being_edited(db, make_doctor, make_appointment) -> None:
    doctor = make_doctor(windows=((540, 600),))
    appointment = make_appointment(time='09:15')

    response = list_free_slots(
        doctor_id=doctor.id,
        date=date(2026, 3, 2),
        exclude_appointment_id=appointment.id,
        db=db,
        payload=ADMIN,
    )

    assert '09:15' in response.slots


def test_list_free_slots_returns_404_for_unknown_doctor(db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        list_free_slots(doctor_id=5, date=date(2026, 3, 2), exclude_appointment_id=None, db=db, payload=None)

    assert exception_info.value.status_code == 404


def _patient_payload(patient) -> dict:
    return {'sub': str(patient.id), 'role': 'patient'}


def test_list_free_slots_lets_owner_exclude_own_appointment(db, make_doctor, make_patient, make_appointment) -> None:
    doctor = make_doctor(windows=((540, 600),))
    patient = make_patient()
    appointment = make_appointment(time='09:15', patient_id=patient.id)

    response = list_free_slots(
        doctor_id=doctor.id,
        date=date(2026, 3, 2),
        exclude_appointment_id=appointment.id,
        db=db,
        payload=_patient_payload(patient),
    )

    assert '09:15' in response.slots


def test_list_free_slots_rejects_excluding_someone_elses_appointment(
    db, make_doctor, make_patient, make_appointment
) -> None:
    doctor = make_doctor(windows=((540, 600),))
    owner = make_patient()
    intruder = make_patient(username='sita', contact='9123456780', email='sita@example.com')
    appointment = make_appointment(time='09:15', patient_id=owner.id)

    with pytest.raises(HTTPException) as exception_info:
        list_free_slots(
            doctor_id=doctor.id,
            date=date(2026, 3, 2),
            exclude_appointment_id=appointment.id,
            db=db,
            payload=_patient_payload(intruder),
        )

    assert exception_info.value.status_code == 403
    assert exception_info.value.detail == 'Not authorized to view this appointment'


def test_list_free_slots_requires_sign_in_to_exclude(db, make_doctor, make_appointment) -> None:
    doctor = make_doctor(windows=((540, 600),))
    appointment = make_appointment(time='09:15')

    with pytest.raises(HTTPException) as exception_info:
        list_free_slots(
            doctor_id=doctor.id,
            date=date(2026, 3, 2),
            exclude_appointment_id=appointment.id,
            db=db,
            payload=None,
        )

    assert exception_info.value.status_code == 401


def test_create_doctor_accepts_availability_until_midnight(db) -> None:
    data = DoctorRequest(name='Asha Rao', department='Cardiology', selected_times=['23:00', '23:30'])

    response = create_doctor(data=data, db=db, _admin=ADMIN)

    assert [(window.start, window.end) for window in response.windows] == [('23:00', '24:00')]
    assert response.selected_times == ['23:00', '23:30']


def test_window_payload_accepts_midnight_end_only() -> None:
    assert WindowPayload(start='23:00', end='24:00').end == '24:00'

    with pytest.raises(ValidationError):
        WindowPayload(start='24:00', end='24:00')
