"""
Slot grid generation.

Builds the discrete candidate start times of a working day and removes the
ones that fall inside a break. Both steps are pure functions of their
arguments and return new lists.
"""

from datetime import time
from typing import Iterable

from careconnect.scheduling.schemas import DEFAULT_APPOINTMENT_DURATION_MINUTES
from careconnect.scheduling.times import from_minutes, parse_wall_clock, to_minutes


def generate_time_grid(
    start_time: str | time,
    end_time: str | time,
    duration_minutes: int = DEFAULT_APPOINTMENT_DURATION_MINUTES,
    *,
    require_full_fit: bool = False,
) -> list[time]:
    """
    Return the start times ``start, start + d, start + 2d, ...`` before ``end_time``.

    A window shorter than one slot yields no slots at all. Otherwise every
    start strictly before ``end_time`` is offered, so the last slot may run
    past closing unless ``require_full_fit`` is set, in which case each slot
    must also end no later than ``end_time``.
    """
    if duration_minutes <= 0:
        raise ValueError('duration_minutes must be positive.')

    open_minutes = to_minutes(parse_wall_clock(start_time))
    close_minutes = to_minutes(parse_wall_clock(end_time))

    if close_minutes - open_minutes < duration_minutes:
        return []

    last_start = close_minutes - duration_minutes if require_full_fit else close_minutes - 1

    return [from_minutes(minutes) for minutes in range(open_minutes, last_start + 1, duration_minutes)]


def is_in_break(slot_time: time, break_start: time, break_end: time) -> bool:
    # Half-open: the break's first minute is excluded, its end is bookable again.
    return break_start <= slot_time < break_end


def exclude_break(
    grid: Iterable[time],
    break_start: str | time | None = None,
    break_end: str | time | None = None,
) -> list[time]:
    if break_start is None or break_end is None:
        return list(grid)

    parsed_start = parse_wall_clock(break_start)
    parsed_end = parse_wall_clock(break_end)

    return [slot_time for slot_time in grid if not is_in_break(slot_time, parsed_start, parsed_end)]
