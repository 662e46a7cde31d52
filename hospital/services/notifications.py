"""Best-effort appointment emails.

These run after the booking has been committed. A failure here is logged and
dropped; it must never surface to the caller or undo the booking.
"""

import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Optional

from hospital.core import config
from hospital.models.appointment import Appointment

logger = logging.getLogger(__name__)

CLINIC_NAME = 'HealthCare Plus'


@dataclass(frozen=True)
class AppointmentNotice:
    """Detached copy of the fields an email needs.

    Emails are sent after the request session has closed, so they must not
    read from ORM instances.
    """
    id: int
    patient_name: str
    department: str
    doctor_name: str
    date: str
    time: str
    symptoms: str

    @classmethod
    def from_appointment(cls, appointment: Appointment) -> "AppointmentNotice":
        return cls(
            id=appointment.id,
            patient_name=appointment.patient_name,
            department=appointment.department,
            doctor_name=appointment.doctor_name,
            date=appointment.date,
            time=appointment.time,
            symptoms=appointment.symptoms,
        )


def is_configured() -> bool:
    return bool(config.SMTP_HOST and config.NOTIFICATION_SENDER)


def _appointment_lines(appointment: AppointmentNotice) -> list[str]:
    return [
        f'Doctor: {appointment.doctor_name}',
        f'Department: {appointment.department}',
        f'Date: {appointment.date}',
        f'Time: {appointment.time}',
    ]


def build_confirmation(appointment: AppointmentNotice, recipient: str) -> EmailMessage:
    message = EmailMessage()
    message['Subject'] = f'Appointment Confirmation - {CLINIC_NAME}'
    message['From'] = config.NOTIFICATION_SENDER
    message['To'] = recipient
    message.set_content('\n'.join([
        f'Dear {appointment.patient_name},',
        '',
        'Your appointment has been scheduled:',
        *_appointment_lines(appointment),
        f'Symptoms: {appointment.symptoms}',
        '',
        'Please arrive 15 minutes before your scheduled time and bring any relevant medical records.',
        'If you need to reschedule, please contact us at least 24 hours in advance.',
        '',
        f'{CLINIC_NAME} Team',
    ]))
    return message


def build_cancellation(appointment: AppointmentNotice, recipient: str) -> EmailMessage:
    message = EmailMessage()
    message['Subject'] = f'Appointment Cancellation - {CLINIC_NAME}'
    message['From'] = config.NOTIFICATION_SENDER
    message['To'] = recipient
    message.set_content('\n'.join([
        f'Dear {appointment.patient_name},',
        '',
        'Your appointment has been cancelled:',
        *_appointment_lines(appointment),
        '',
        'If you would like to reschedule, please visit the patient portal or contact us directly.',
        '',
        f'{CLINIC_NAME} Team',
    ]))
    return message


def _send(message: EmailMessage) -> None:
    with smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT, timeout=10) as smtp:
        if config.SMTP_USE_TLS:
            smtp.starttls()
        if config.SMTP_USERNAME:
            smtp.login(config.SMTP_USERNAME, config.SMTP_PASSWORD)
        smtp.send_message(message)


def _deliver(kind: str, builder, appointment: AppointmentNotice, recipient: Optional[str]) -> None:
    if not recipient:
        logger.debug('No recipient for %s of appointment %s', kind, appointment.id)
        return
    if not is_configured():
        logger.debug('SMTP not configured; skipping %s for appointment %s', kind, appointment.id)
        return

    try:
        _send(builder(appointment, recipient))
    except (smtplib.SMTPException, OSError):
        logger.exception('Failed to send %s for appointment %s', kind, appointment.id)
        return

    logger.info('Sent %s for appointment %s', kind, appointment.id)


def send_appointment_confirmation(appointment: AppointmentNotice, recipient: Optional[str]) -> None:
    _deliver('confirmation', build_confirmation, appointment, recipient)


def send_appointment_cancellation(appointment: AppointmentNotice, recipient: Optional[str]) -> None:
    _deliver('cancellation', build_cancellation, appointment, recipient)
