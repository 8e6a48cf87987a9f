"""Wall-clock time helpers shared by the scheduling core.

Times here never carry a date or a time zone: they are provider-local
"HH:MM" values, and all arithmetic is done in minutes since midnight.
"""

import re
from datetime import time

MINUTES_PER_DAY = 24 * 60

_WALL_CLOCK_PATTERN = re.compile(r'^([01]\d|2[0-3]):([0-5]\d)(?::(00))?$')


class InvalidTimeError(ValueError):
    """Raised when a value cannot be read as an HH:MM wall-clock time."""


def parse_wall_clock(value: str | time) -> time:
    if isinstance(value, time):
        if value.tzinfo is not None:
            raise InvalidTimeError(f'Expected a wall-clock time without time zone, got {value!r}.')
        if value.second or value.microsecond:
            raise InvalidTimeError(f'Expected a whole-minute time, got {value!r}.')
        return value

    if not isinstance(value, str):
        raise InvalidTimeError(f'Expected an HH:MM string, got {type(value).__name__}.')

    match = _WALL_CLOCK_PATTERN.match(value.strip())
    if match is None:
        raise InvalidTimeError(f'Invalid time {value!r}; expected HH:MM.')

    return time(int(match.group(1)), int(match.group(2)))


def to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f'{minutes} minutes is outside a single day.')
    return time(minutes // 60, minutes % 60)


def format_slot(value: time) -> str:
    return value.strftime('%H:%M')
