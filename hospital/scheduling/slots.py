"""Turning availability windows into bookable slot start times.

Times are handled as minutes since midnight internally and exposed as
zero-padded ``HH:MM`` strings, the format appointments store.
"""

import re
from typing import Iterable

from hospital.scheduling.errors import BookingValidationError

MINUTES_PER_DAY = 24 * 60
END_OF_DAY = '24:00'

_TIME_PATTERN = re.compile(r'^([01]\d|2[0-3]):([0-5]\d)$')


def parse_time(value: str) -> int:
    match = _TIME_PATTERN.match((value or '').strip())
    if not match:
        raise BookingValidationError(f'Invalid time {value!r}; expected HH:MM.')
    return int(match.group(1)) * 60 + int(match.group(2))


def format_time(minutes: int) -> str:
    # 1440 only appears as a window end and renders as 24:00.
    return f'{minutes // 60:02d}:{minutes % 60:02d}'


def parse_window_end(value: str) -> int:
    """Like ``parse_time`` but also accepts ``24:00`` for a window that runs to midnight."""
    if (value or '').strip() == END_OF_DAY:
        return MINUTES_PER_DAY
    return parse_time(value)


def _window_bounds(window) -> tuple[int, int]:
    if hasattr(window, 'start_minute'):
        start, end = window.start_minute, window.end_minute
    else:
        start, end = window

    if isinstance(start, str):
        start = parse_time(start)
    if isinstance(end, str):
        end = parse_window_end(end)

    return start, end


def validate_window(start: int, end: int) -> None:
    if not (0 <= start < MINUTES_PER_DAY and 0 < end <= MINUTES_PER_DAY):
        raise BookingValidationError('Availability windows must fall within a single day.')
    if start >= end:
        raise BookingValidationError('Availability window start must be before its end.')


def _check_granularity(granularity_minutes: int) -> None:
    if granularity_minutes <= 0:
        raise BookingValidationError('Slot granularity must be a positive number of minutes.')


def generate_slots(windows: Iterable, granularity_minutes: int) -> list[str]:
    """Expand ``windows`` into sorted, de-duplicated slot starts.

    Each window is half-open: a slot is produced only when it fits entirely
    before the window's end. Overlapping windows contribute their union.
    Windows may be ORM ``AvailabilityWindow`` rows or ``(start, end)`` pairs
    of minutes or ``HH:MM`` strings.
    """
    _check_granularity(granularity_minutes)

    starts: set[int] = set()
    for window in windows:
        start, end = _window_bounds(window)
        validate_window(start, end)
        current = start
        while current + granularity_minutes <= end:
            starts.add(current)
            current += granularity_minutes

    return [format_time(minute) for minute in sorted(starts)]


def windows_from_selected_times(selected_times: Iterable[str], granularity_minutes: int) -> list[tuple[int, int]]:
    """Group individually selected slot starts into contiguous windows.

    Used when an admin ticks the start times a doctor is available at. Each
    returned window ends one step after its last selected start.
    """
    _check_granularity(granularity_minutes)

    minutes = sorted({parse_time(value) for value in selected_times})
    if not minutes:
        return []

    for minute in minutes:
        if minute % granularity_minutes != 0:
            raise BookingValidationError(
                f'Selected times must be on {granularity_minutes}-minute boundaries.'
            )

    windows: list[tuple[int, int]] = []
    window_start = previous = minutes[0]
    for minute in minutes[1:]:
        if minute - previous != granularity_minutes:
            windows.append((window_start, previous + granularity_minutes))
            window_start = minute
        previous = minute
    windows.append((window_start, previous + granularity_minutes))

    for start, end in windows:
        validate_window(start, end)

    return windows
