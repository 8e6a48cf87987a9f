"""
Overlap detection between a candidate slot and existing appointments.

Intervals are half-open, ``[start, start + duration)``: an appointment that
ends at 10:00 does not block a slot starting at 10:00.
"""

from datetime import date, datetime, time, timedelta
from typing import Iterable

from careconnect.scheduling.schemas import AppointmentRecord
from careconnect.scheduling.times import parse_wall_clock


def intervals_overlap(
    first_start: datetime,
    first_end: datetime,
    second_start: datetime,
    second_end: datetime,
) -> bool:
    return first_start < second_end and second_start < first_end


def slot_interval(slot_date: date, slot_time: str | time, duration_minutes: int) -> tuple[datetime, datetime]:
    if duration_minutes <= 0:
        raise ValueError('duration_minutes must be positive.')

    start = datetime.combine(slot_date, parse_wall_clock(slot_time))
    return start, start + timedelta(minutes=duration_minutes)


def appointment_interval(appointment: AppointmentRecord) -> tuple[datetime, datetime]:
    return slot_interval(appointment.date, appointment.time, appointment.duration_minutes)


def find_conflicts(
    slot_date: date,
    slot_time: str | time,
    duration_minutes: int,
    appointments: Iterable[AppointmentRecord],
) -> list[AppointmentRecord]:
    """Return the appointments whose interval intersects the candidate slot.

    The appointment status is not consulted; callers pass only the bookings
    that should still block time.
    """
    slot_start, slot_end = slot_interval(slot_date, slot_time, duration_minutes)

    conflicts: list[AppointmentRecord] = []
    for appointment in appointments:
        booked_start, booked_end = appointment_interval(appointment)
        if intervals_overlap(slot_start, slot_end, booked_start, booked_end):
            conflicts.append(appointment)

    return conflicts


def has_conflict(
    slot_date: date,
    slot_time: str | time,
    duration_minutes: int,
    appointments: Iterable[AppointmentRecord],
) -> bool:
    return bool(find_conflicts(slot_date, slot_time, duration_minutes, appointments))
