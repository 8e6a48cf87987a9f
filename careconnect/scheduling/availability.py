"""
Availability resolution.

Turns a provider's hours for one date and the bookings already made on it
into the list of start times a patient can still book:

    1. build the slot grid between opening and closing time
    2. drop the slots inside the break
    3. drop the slots that overlap an existing appointment

Appointments passed in are assumed to be active; cancelled bookings must be
filtered out by the caller before resolving.
"""

import logging
from datetime import date, time
from typing import Iterable

from careconnect.scheduling.overlap import has_conflict
from careconnect.scheduling.schemas import (
    DEFAULT_APPOINTMENT_DURATION_MINUTES,
    AppointmentRecord,
    AvailabilityOverride,
    AvailabilityWindow,
    ResolvedSchedule,
    ScheduleSource,
)
from careconnect.scheduling.slots import exclude_break, generate_time_grid
from careconnect.scheduling.times import format_slot

logger = logging.getLogger(__name__)


def day_of_week_for(target_date: date) -> int:
    """Day index with Sunday as 0, the convention of the weekly schedule."""
    return (target_date.weekday() + 1) % 7


def _same_provider(first: int | str, second: int | str) -> bool:
    return str(first) == str(second)


def is_window_usable(window: AvailabilityWindow) -> bool:
    if window.start_time >= window.end_time:
        return False

    if window.has_break:
        return window.start_time <= window.break_start < window.break_end <= window.end_time

    return True


def candidate_start_times(
    window: AvailabilityWindow,
    duration_minutes: int = DEFAULT_APPOINTMENT_DURATION_MINUTES,
    *,
    require_full_fit: bool = False,
) -> list[time]:
    """Start times the window offers before any booking is taken into account."""
    if not is_window_usable(window):
        return []

    grid = generate_time_grid(
        window.start_time,
        window.end_time,
        duration_minutes,
        require_full_fit=require_full_fit,
    )
    return exclude_break(grid, window.break_start, window.break_end)


def resolve_available_slots(
    provider_id: int | str,
    target_date: date,
    window: AvailabilityWindow,
    appointments: Iterable[AppointmentRecord],
    duration_minutes: int = DEFAULT_APPOINTMENT_DURATION_MINUTES,
    *,
    require_full_fit: bool = False,
) -> list[str]:
    """
    Compute the bookable ``HH:MM`` start times for ``provider_id`` on ``target_date``.

    An empty list means the provider works that day but nothing is free.
    Whether the provider works at all is decided before calling this, by
    finding a window for the date (see ``resolve_schedule_for_date``).
    """
    if not _same_provider(window.provider_id, provider_id):
        raise ValueError(f'Window belongs to provider {window.provider_id}, not {provider_id}.')

    if window.day_of_week != day_of_week_for(target_date):
        raise ValueError(
            f'Window is for day {window.day_of_week} but {target_date.isoformat()} '
            f'is day {day_of_week_for(target_date)}.'
        )

    if not is_window_usable(window):
        logger.debug(
            'Provider %s has a degenerate window on %s (%s-%s, break %s-%s); offering no slots.',
            provider_id,
            target_date,
            window.start_time,
            window.end_time,
            window.break_start,
            window.break_end,
        )
        return []

    candidates = candidate_start_times(window, duration_minutes, require_full_fit=require_full_fit)

    booked = [
        appointment
        for appointment in appointments
        if _same_provider(appointment.provider_id, provider_id)
    ]

    return [
        format_slot(slot_time)
        for slot_time in candidates
        if not has_conflict(target_date, slot_time, duration_minutes, booked)
    ]


def resolve_schedule_for_date(
    target_date: date,
    weekly_windows: Iterable[AvailabilityWindow],
    overrides: Iterable[AvailabilityOverride] = (),
) -> ResolvedSchedule:
    """Pick the hours that apply on ``target_date``.

    A date override wins over the weekly template; a closed override, or no
    window at all for that weekday, means the provider is closed.
    """
    matching_overrides = [override for override in overrides if override.specific_date == target_date]
    if len(matching_overrides) > 1:
        raise ValueError(f'More than one override for {target_date.isoformat()}.')

    if matching_overrides:
        window = matching_overrides[0].to_window()
        if window is None:
            return ResolvedSchedule(date=target_date, source=ScheduleSource.CLOSED)
        return ResolvedSchedule(date=target_date, source=ScheduleSource.OVERRIDE, window=window)

    day_of_week = day_of_week_for(target_date)
    matching_windows = [window for window in weekly_windows if window.day_of_week == day_of_week]
    if len(matching_windows) > 1:
        raise ValueError(f'More than one weekly window for day {day_of_week}.')

    if not matching_windows:
        return ResolvedSchedule(date=target_date, source=ScheduleSource.CLOSED)

    return ResolvedSchedule(date=target_date, source=ScheduleSource.WEEKLY, window=matching_windows[0])
