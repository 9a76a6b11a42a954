"""Slot calendar model: a doctor's declared schedule, already fetched."""

from datetime import date, time

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from clinic_scheduler.core import config
from clinic_scheduler.scheduling.dates import format_slot, normalize_date, parse_slot


def default_bookable_slots() -> list[time]:
    return [parse_slot(label) for label in config.BOOKABLE_SLOTS]


class TimeRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start_time: time
    end_time: time
    reason: str | None = None

    @field_validator('start_time', 'end_time', mode='before')
    @classmethod
    def validate_time(cls, value):
        return parse_slot(value)

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        return normalized or None

    @model_validator(mode='after')
    def validate_bounds(self) -> 'TimeRange':
        if self.end_time <= self.start_time:
            raise ValueError('end_time must be after start_time.')
        return self

    def contains(self, slot: time) -> bool:
        return self.start_time <= slot < self.end_time

    def overlaps(self, other: 'TimeRange') -> bool:
        return self.start_time < other.end_time and other.start_time < self.end_time


class DoctorCalendar(BaseModel):
    model_config = ConfigDict(frozen=True)

    doctor_id: str
    unavailable_dates: frozenset[date] = frozenset()
    unavailable_ranges: dict[date, tuple[TimeRange, ...]] = Field(default_factory=dict)
    bookable_slots: tuple[time, ...] = Field(default_factory=lambda: tuple(default_bookable_slots()))

    @field_validator('doctor_id')
    @classmethod
    def validate_doctor_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Doctor id is required.')
        return normalized

    @field_validator('unavailable_dates', mode='before')
    @classmethod
    def validate_unavailable_dates(cls, value):
        return frozenset(normalize_date(item) for item in value or ())

    @field_validator('unavailable_ranges', mode='before')
    @classmethod
    def validate_unavailable_ranges(cls, value):
        ranges: dict[date, list] = {}
        for key, entries in (value or {}).items():
            ranges.setdefault(normalize_date(key), []).extend(entries)
        return {key: tuple(entries) for key, entries in ranges.items()}

    @field_validator('bookable_slots', mode='before')
    @classmethod
    def validate_bookable_slots(cls, value):
        return tuple(sorted({parse_slot(item) for item in value or ()}))

    @property
    def slot_labels(self) -> list[str]:
        return [format_slot(slot) for slot in self.bookable_slots]


def is_date_unavailable(calendar: DoctorCalendar, value: date | str) -> bool:
    return normalize_date(value) in calendar.unavailable_dates


def blocked_ranges(calendar: DoctorCalendar, value: date | str) -> list[TimeRange]:
    return list(calendar.unavailable_ranges.get(normalize_date(value), ()))


def candidate_slots(calendar: DoctorCalendar) -> list[time]:
    return list(calendar.bookable_slots)
