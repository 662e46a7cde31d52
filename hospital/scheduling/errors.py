"""Errors raised by the scheduling core.

Routers translate these into HTTP responses; nothing in this package knows
about status codes.
"""


class SchedulingError(Exception):
    """Base class for expected booking failures."""

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class BookingValidationError(SchedulingError):
    """A required field is missing or malformed."""


class NotFound(SchedulingError):
    """A referenced doctor, patient or appointment does not exist."""


class SlotConflict(SchedulingError):
    """The (doctor, date, time) triple is already held by an active appointment."""

    def __init__(self, detail: str = 'This slot is already booked.'):
        super().__init__(detail)


class Unauthorized(SchedulingError):
    """The caller may not act on this record."""


class DependencyFailure(SchedulingError):
    """The database or another backing service could not be reached."""
