from hospital.models.appointment import (
    APPOINTMENT_STATUSES,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_CONFIRMED,
    STATUS_SCHEDULED,
    Appointment,
)
from hospital.scheduling.errors import BookingValidationError, Unauthorized

ALLOWED_TRANSITIONS = {
    STATUS_SCHEDULED: {STATUS_CONFIRMED, STATUS_COMPLETED, STATUS_CANCELLED},
    STATUS_CONFIRMED: {STATUS_COMPLETED, STATUS_CANCELLED},
    STATUS_COMPLETED: set(),
    STATUS_CANCELLED: set(),
}
TERMINAL_STATUSES = {STATUS_COMPLETED, STATUS_CANCELLED}


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def apply_transition(appointment: Appointment, new_status: str, *, is_admin: bool) -> bool:
    """Move ``appointment`` to ``new_status`` in memory.

    Returns ``False`` when the appointment is already in that status; nothing
    changes in that case. Leaving a slot needs no explicit release because
    cancelled rows are ignored by every availability and conflict query.
    """
    new_status = (new_status or '').strip().lower()
    if new_status not in APPOINTMENT_STATUSES:
        raise BookingValidationError(f'Unknown appointment status {new_status!r}.')

    if not is_admin and new_status != STATUS_CANCELLED:
        raise Unauthorized('Patients can only cancel appointments.')

    current = appointment.status or STATUS_SCHEDULED
    if current == new_status:
        return False

    if new_status not in ALLOWED_TRANSITIONS.get(current, set()):
        raise BookingValidationError(f'Cannot change appointment status from {current} to {new_status}.')

    appointment.status = new_status
    return True
