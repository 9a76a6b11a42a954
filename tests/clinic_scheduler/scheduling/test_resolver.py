from datetime import date, datetime, time, timezone

import pytest

from clinic_scheduler.scheduling.calendar import DoctorCalendar
from clinic_scheduler.scheduling.ledger import OccupiedSlot
from clinic_scheduler.scheduling.resolver import (
    REASON_BLOCKED,
    REASON_BOOKED,
    REASON_DOCTOR_UNAVAILABLE,
    REASON_OUTSIDE_WINDOW,
    REASON_PAST_DATE,
    REASON_PAST_TIME,
    UnavailableSlot,
    resolve_availability,
)

NOW = datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc)
SLOTS = ['9:00', '9:30', '10:00']


@pytest.fixture
def calendar() -> DoctorCalendar:
    return DoctorCalendar(doctor_id='doctor-d', bookable_slots=SLOTS)


def test_single_booking_leaves_other_slots_open(calendar: DoctorCalendar) -> None:
    occupied = {OccupiedSlot(slot=time(9, 0), appointment_id=1)}

    result = resolve_availability('doctor-d', date(2024, 6, 10), calendar, occupied, NOW)

    assert result.available == ['9:30', '10:00']
    assert result.unavailable == [UnavailableSlot(slot='9:00', reason=REASON_BOOKED, appointment_id=1)]
    assert result.is_date_fully_booked is False
    assert result.is_date_unavailable is False


def test_unavailable_date_blocks_every_slot() -> None:
    calendar = DoctorCalendar(doctor_id='doctor-d', bookable_slots=SLOTS, unavailable_dates=['2024-06-11'])

    result = resolve_availability('doctor-d', date(2024, 6, 11), calendar, set(), NOW)

    assert result.available == []
    assert result.is_date_unavailable is True
    assert result.is_date_fully_booked is False
    assert [(entry.slot, entry.reason) for entry in result.unavailable] == [
        ('9:00', REASON_DOCTOR_UNAVAILABLE),
        ('9:30', REASON_DOCTOR_UNAVAILABLE),
        ('10:00', REASON_DOCTOR_UNAVAILABLE),
    ]


@pytest.mark.parametrize('past_date', [date(2024, 5, 31), date(2023, 1, 1)])
def test_past_dates_are_never_available(calendar: DoctorCalendar, past_date: date) -> None:
    occupied = {OccupiedSlot(slot=time(9, 0), appointment_id=1)}

    result = resolve_availability('doctor-d', past_date, calendar, occupied, NOW)

    assert result.available == []
    assert result.is_date_unavailable is True
    assert result.is_date_fully_booked is False
    assert {entry.reason for entry in result.unavailable} == {REASON_PAST_DATE}


def test_past_date_uses_date_only_comparison(calendar: DoctorCalendar) -> None:
    # Late evening still counts as today, not as a past date.
    late_now = datetime(2024, 6, 10, 23, 59, tzinfo=timezone.utc)

    assert resolve_availability('doctor-d', '2024-06-09', calendar, set(), late_now).is_date_unavailable is True
    assert resolve_availability('doctor-d', '2024-06-10', calendar, set(), late_now).is_date_unavailable is False


def test_slots_already_started_today_are_past_time(calendar: DoctorCalendar) -> None:
    midday = datetime(2024, 6, 10, 9, 30, tzinfo=timezone.utc)

    result = resolve_availability('doctor-d', date(2024, 6, 10), calendar, set(), midday)

    assert result.available == ['10:00']
    assert [(entry.slot, entry.reason) for entry in result.unavailable] == [
        ('9:00', REASON_PAST_TIME),
        ('9:30', REASON_PAST_TIME),
    ]
    assert result.is_date_fully_booked is False


def test_blocked_ranges_take_precedence_over_bookings() -> None:
    calendar = DoctorCalendar(
        doctor_id='doctor-d',
        bookable_slots=SLOTS,
        unavailable_ranges={date(2024, 6, 10): [{'start_time': '9:00', 'end_time': '9:30', 'reason': 'Rounds'}]},
    )
    occupied = {OccupiedSlot(slot=time(9, 0), appointment_id=1), OccupiedSlot(slot=time(9, 30), appointment_id=2)}

    result = resolve_availability('doctor-d', date(2024, 6, 10), calendar, occupied, NOW)

    assert result.available == ['10:00']
    assert result.unavailable == [
        UnavailableSlot(slot='9:00', reason=REASON_BLOCKED, detail='Rounds'),
        UnavailableSlot(slot='9:30', reason=REASON_BOOKED, appointment_id=2),
    ]


def test_fully_booked_only_when_patients_fill_every_slot(calendar: DoctorCalendar) -> None:
    occupied = {
        OccupiedSlot(slot=time(9, 0), appointment_id=1),
        OccupiedSlot(slot=time(9, 30), appointment_id=2),
        OccupiedSlot(slot=time(10, 0), appointment_id=3),
    }

    result = resolve_availability('doctor-d', date(2024, 6, 10), calendar, occupied, NOW)

    assert result.available == []
    assert result.is_date_fully_booked is True
    assert result.is_date_unavailable is False


def test_not_fully_booked_when_doctor_blocked_the_remainder() -> None:
    calendar = DoctorCalendar(
        doctor_id='doctor-d',
        bookable_slots=SLOTS,
        unavailable_ranges={date(2024, 6, 10): [{'start_time': '9:30', 'end_time': '10:30'}]},
    )
    occupied = {OccupiedSlot(slot=time(9, 0), appointment_id=1)}

    result = resolve_availability('doctor-d', date(2024, 6, 10), calendar, occupied, NOW)

    assert result.available == []
    assert result.is_date_fully_booked is False


def test_rescheduled_appointment_does_not_block_its_own_slot(calendar: DoctorCalendar) -> None:
    occupied = {OccupiedSlot(slot=time(9, 0), appointment_id=1), OccupiedSlot(slot=time(9, 30), appointment_id=2)}

    result = resolve_availability(
        'doctor-d',
        date(2024, 6, 10),
        calendar,
        occupied,
        NOW,
        rescheduling_appointment_id=1,
    )

    assert result.available == ['9:00', '10:00']
    assert [entry.slot for entry in result.unavailable] == ['9:30']


def test_empty_slot_grid_is_not_fully_booked() -> None:
    calendar = DoctorCalendar(doctor_id='doctor-d', bookable_slots=[])

    result = resolve_availability('doctor-d', date(2024, 6, 10), calendar, set(), NOW)

    assert result.available == []
    assert result.unavailable == []
    assert result.is_date_fully_booked is False


def test_dates_past_booking_window_are_unavailable(calendar: DoctorCalendar) -> None:
    result = resolve_availability('doctor-d', date(2024, 6, 11), calendar, set(), NOW, booking_range_days=5)

    assert result.available == []
    assert result.is_date_unavailable is True
    assert result.date_unavailable_reason == REASON_OUTSIDE_WINDOW
    assert {entry.reason for entry in result.unavailable} == {REASON_OUTSIDE_WINDOW}


def test_last_day_of_booking_window_is_open(calendar: DoctorCalendar) -> None:
    result = resolve_availability('doctor-d', date(2024, 6, 6), calendar, set(), NOW, booking_range_days=5)

    assert result.available == SLOTS
    assert result.date_unavailable_reason is None


def test_booking_window_defaults_to_configured_days(calendar: DoctorCalendar, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('clinic_scheduler.core.config.BOOKING_RANGE_DAYS', 90)

    assert resolve_availability('doctor-d', date(2024, 8, 30), calendar, set(), NOW).available == SLOTS
    assert resolve_availability('doctor-d', date(2024, 8, 31), calendar, set(), NOW).is_date_unavailable is True
