"""Availability resolver.

Pure once its inputs are fetched: given a doctor's calendar, the occupied
slots for one date and the current time, partition the slot grid into
available and unavailable slots. Nothing here raises for "nothing left"; an
empty ``available`` list is a normal answer.
"""

from datetime import date, datetime, timedelta
from typing import Iterable

from pydantic import BaseModel

from clinic_scheduler.core import config
from clinic_scheduler.scheduling.calendar import (
    DoctorCalendar,
    blocked_ranges,
    candidate_slots,
    is_date_unavailable,
)
from clinic_scheduler.scheduling.dates import format_slot, normalize_date, to_clinic_time
from clinic_scheduler.scheduling.ledger import OccupiedSlot


REASON_PAST_DATE = 'past date'
REASON_PAST_TIME = 'past time'
REASON_OUTSIDE_WINDOW = 'outside booking window'
REASON_DOCTOR_UNAVAILABLE = 'doctor unavailable'
REASON_BLOCKED = 'blocked by doctor'
REASON_BOOKED = 'already booked'
REASON_OFF_GRID = 'not a bookable slot'


class UnavailableSlot(BaseModel):
    slot: str
    reason: str
    detail: str | None = None
    appointment_id: int | None = None


class AvailabilityResult(BaseModel):
    doctor_id: str
    date: date
    available: list[str]
    unavailable: list[UnavailableSlot]
    is_date_fully_booked: bool
    is_date_unavailable: bool
    date_unavailable_reason: str | None = None


def _whole_date_unavailable(
    doctor_id: str,
    slot_date: date,
    calendar: DoctorCalendar,
    reason: str,
) -> AvailabilityResult:
    return AvailabilityResult(
        doctor_id=doctor_id,
        date=slot_date,
        available=[],
        unavailable=[UnavailableSlot(slot=format_slot(slot), reason=reason) for slot in candidate_slots(calendar)],
        is_date_fully_booked=False,
        is_date_unavailable=True,
        date_unavailable_reason=reason,
    )


def resolve_availability(
    doctor_id: str,
    slot_date: date | str,
    calendar: DoctorCalendar,
    occupied: Iterable[OccupiedSlot],
    now: datetime,
    rescheduling_appointment_id: int | None = None,
    booking_range_days: int | None = None,
) -> AvailabilityResult:
    slot_date = normalize_date(slot_date)
    now = to_clinic_time(now)
    if booking_range_days is None:
        booking_range_days = config.BOOKING_RANGE_DAYS

    if slot_date < now.date():
        return _whole_date_unavailable(doctor_id, slot_date, calendar, REASON_PAST_DATE)

    if slot_date > now.date() + timedelta(days=booking_range_days):
        return _whole_date_unavailable(doctor_id, slot_date, calendar, REASON_OUTSIDE_WINDOW)

    if is_date_unavailable(calendar, slot_date):
        return _whole_date_unavailable(doctor_id, slot_date, calendar, REASON_DOCTOR_UNAVAILABLE)

    # The appointment being rescheduled does not block its own slot.
    booked = {
        entry.slot: entry.appointment_id
        for entry in occupied
        if entry.appointment_id != rescheduling_appointment_id
    }
    ranges = blocked_ranges(calendar, slot_date)
    is_today = slot_date == now.date()

    available: list[str] = []
    unavailable: list[UnavailableSlot] = []

    for slot in candidate_slots(calendar):
        label = format_slot(slot)
        blocking_range = next((time_range for time_range in ranges if time_range.contains(slot)), None)

        if blocking_range is not None:
            unavailable.append(UnavailableSlot(slot=label, reason=REASON_BLOCKED, detail=blocking_range.reason))
        elif slot in booked:
            unavailable.append(UnavailableSlot(slot=label, reason=REASON_BOOKED, appointment_id=booked[slot]))
        elif is_today and slot <= now.time():
            unavailable.append(UnavailableSlot(slot=label, reason=REASON_PAST_TIME))
        else:
            available.append(label)

    is_date_fully_booked = (
        not available
        and bool(unavailable)
        and all(entry.reason == REASON_BOOKED for entry in unavailable)
    )

    return AvailabilityResult(
        doctor_id=doctor_id,
        date=slot_date,
        available=available,
        unavailable=unavailable,
        is_date_fully_booked=is_date_fully_booked,
        is_date_unavailable=False,
    )
