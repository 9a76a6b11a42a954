"""Calendar date and slot normalization.

Everything that crosses into the calendar model or the resolver goes through
here first: dates become ``datetime.date`` in the clinic timezone, slot labels
become ``datetime.time`` with no seconds, and "now" is always aware.
"""

import re
from datetime import date, datetime, time
from zoneinfo import ZoneInfo

from clinic_scheduler.core import config
from clinic_scheduler.core.errors import InvalidDateError, InvalidSlotError


_SLOT_PATTERN = re.compile(r'^(\d{1,2}):(\d{2})(?::(\d{2}))?\s*([AaPp][Mm])?$')
_DATE_FORMATS = ('%Y-%m-%d', '%m/%d/%Y')


def clinic_timezone() -> ZoneInfo:
    return ZoneInfo(config.APP_TIMEZONE)


def clinic_now() -> datetime:
    return datetime.now(clinic_timezone())


def to_clinic_time(moment: datetime) -> datetime:
    """Naive datetimes are taken as clinic-local wall time."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=clinic_timezone())
    return moment.astimezone(clinic_timezone())


def today(now: datetime | None = None) -> date:
    return to_clinic_time(now or clinic_now()).date()


def normalize_date(value: date | datetime | str) -> date:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.date()
        return value.astimezone(clinic_timezone()).date()

    if isinstance(value, date):
        return value

    if isinstance(value, str):
        raw = value.strip()
        for date_format in _DATE_FORMATS:
            try:
                return datetime.strptime(raw, date_format).date()
            except ValueError:
                continue
        try:
            return normalize_date(datetime.fromisoformat(raw.replace('Z', '+00:00')))
        except ValueError:
            pass

    raise InvalidDateError(f'Invalid date: {value!r}.')


def parse_slot(value: time | str) -> time:
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0, tzinfo=None)

    if isinstance(value, str):
        match = _SLOT_PATTERN.match(value.strip())
        if match:
            hour = int(match.group(1))
            minute = int(match.group(2))
            meridiem = (match.group(4) or '').upper()

            if meridiem:
                if not 1 <= hour <= 12:
                    raise InvalidSlotError(f'Invalid time slot: {value!r}.')
                if meridiem == 'PM' and hour < 12:
                    hour += 12
                if meridiem == 'AM' and hour == 12:
                    hour = 0

            if 0 <= hour <= 23 and 0 <= minute <= 59:
                return time(hour, minute)

    raise InvalidSlotError(f'Invalid time slot: {value!r}.')


def format_slot(value: time) -> str:
    return f'{value.hour}:{value.minute:02d}'


def slot_start(slot_date: date, slot: time) -> datetime:
    return datetime.combine(slot_date, slot, tzinfo=clinic_timezone())
