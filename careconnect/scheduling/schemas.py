"""Records consumed and produced by the scheduling core."""

from datetime import date, time
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

from careconnect.scheduling.times import parse_wall_clock

DEFAULT_APPOINTMENT_DURATION_MINUTES = 30


class AvailabilityWindow(BaseModel):
    """A provider's working hours for one day of the week.

    Only the shape of the record is validated here. A window whose start is
    not before its end, or whose break falls outside the working hours, is
    still a valid record; the resolver treats it as offering no slots.
    """

    provider_id: int | str
    day_of_week: int = Field(ge=0, le=6)
    start_time: time
    end_time: time
    break_start: time | None = None
    break_end: time | None = None

    class Config:
        from_attributes = True

    @field_validator('start_time', 'end_time', mode='before')
    @classmethod
    def validate_working_hours(cls, value: str | time) -> time:
        return parse_wall_clock(value)

    @field_validator('break_start', 'break_end', mode='before')
    @classmethod
    def validate_break(cls, value: str | time | None) -> time | None:
        if value is None or value == '':
            return None
        return parse_wall_clock(value)

    @model_validator(mode='after')
    def validate_break_pair(self) -> 'AvailabilityWindow':
        if (self.break_start is None) != (self.break_end is None):
            raise ValueError('break_start and break_end must be given together.')
        return self

    @property
    def has_break(self) -> bool:
        return self.break_start is not None


class AppointmentRecord(BaseModel):
    """An existing booking, read only for conflict detection."""

    provider_id: int | str
    date: date
    time: time
    duration_minutes: int = DEFAULT_APPOINTMENT_DURATION_MINUTES
    status: str | None = None

    class Config:
        from_attributes = True

    @field_validator('time', mode='before')
    @classmethod
    def validate_time(cls, value: str | time) -> time:
        return parse_wall_clock(value)

    @field_validator('duration_minutes', mode='before')
    @classmethod
    def default_duration(cls, value: int | None) -> int:
        if value is None:
            return DEFAULT_APPOINTMENT_DURATION_MINUTES
        return value

    @field_validator('duration_minutes')
    @classmethod
    def validate_duration(cls, value: int) -> int:
        if value <= 0:
            raise ValueError('duration_minutes must be positive.')
        return value


class AvailabilityOverride(BaseModel):
    """Hours for one concrete date that replace the weekly template."""

    provider_id: int | str
    specific_date: date
    is_closed: bool = False
    start_time: time | None = None
    end_time: time | None = None
    break_start: time | None = None
    break_end: time | None = None

    class Config:
        from_attributes = True

    @field_validator('start_time', 'end_time', 'break_start', 'break_end', mode='before')
    @classmethod
    def validate_times(cls, value: str | time | None) -> time | None:
        if value is None or value == '':
            return None
        return parse_wall_clock(value)

    @model_validator(mode='after')
    def validate_open_hours(self) -> 'AvailabilityOverride':
        if not self.is_closed and (self.start_time is None or self.end_time is None):
            raise ValueError('An open override needs start_time and end_time.')
        return self

    def to_window(self) -> AvailabilityWindow | None:
        if self.is_closed:
            return None

        return AvailabilityWindow(
            provider_id=self.provider_id,
            day_of_week=(self.specific_date.weekday() + 1) % 7,
            start_time=self.start_time,
            end_time=self.end_time,
            break_start=self.break_start,
            break_end=self.break_end,
        )


class ScheduleSource(str, Enum):
    WEEKLY = 'weekly'
    OVERRIDE = 'override'
    CLOSED = 'closed'


class ResolvedSchedule(BaseModel):
    """Which hours apply to one concrete date."""

    date: date
    source: ScheduleSource
    window: AvailabilityWindow | None = None

    @property
    def is_open(self) -> bool:
        return self.window is not None
