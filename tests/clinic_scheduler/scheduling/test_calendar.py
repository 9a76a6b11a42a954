from datetime import date, time

import pytest
from pydantic import ValidationError

from clinic_scheduler.scheduling.calendar import (
    DoctorCalendar,
    TimeRange,
    blocked_ranges,
    candidate_slots,
    default_bookable_slots,
    is_date_unavailable,
)


def test_calendar_normalizes_dates_and_slots() -> None:
    calendar = DoctorCalendar(
        doctor_id=' doctor-d ',
        unavailable_dates=['2024-06-11', date(2024, 6, 12)],
        unavailable_ranges={'2024-06-10': [{'start_time': '9:30', 'end_time': '10:00', 'reason': ' Surgery '}]},
        bookable_slots=['10:00', '9:00', '9:30', '09:00'],
    )

    assert calendar.doctor_id == 'doctor-d'
    assert calendar.unavailable_dates == frozenset({date(2024, 6, 11), date(2024, 6, 12)})
    assert calendar.bookable_slots == (time(9, 0), time(9, 30), time(10, 0))
    assert calendar.slot_labels == ['9:00', '9:30', '10:00']
    assert blocked_ranges(calendar, date(2024, 6, 10)) == [
        TimeRange(start_time=time(9, 30), end_time=time(10, 0), reason='Surgery')
    ]


def test_calendar_without_entries_is_fully_open() -> None:
    calendar = DoctorCalendar(doctor_id='doctor-d')

    assert is_date_unavailable(calendar, date(2024, 6, 10)) is False
    assert blocked_ranges(calendar, date(2024, 6, 10)) == []
    assert candidate_slots(calendar) == default_bookable_slots()


def test_is_date_unavailable_normalizes_query_date() -> None:
    calendar = DoctorCalendar(doctor_id='doctor-d', unavailable_dates=[date(2024, 6, 11)])

    assert is_date_unavailable(calendar, '2024-06-11') is True
    assert is_date_unavailable(calendar, '2024-06-12') is False


def test_time_range_is_half_open() -> None:
    time_range = TimeRange(start_time='9:30', end_time='10:30')

    assert time_range.contains(time(9, 30)) is True
    assert time_range.contains(time(10, 0)) is True
    assert time_range.contains(time(10, 30)) is False
    assert time_range.contains(time(9, 0)) is False


def test_time_range_rejects_inverted_bounds() -> None:
    with pytest.raises(ValidationError):
        TimeRange(start_time='10:00', end_time='9:00')


def test_calendar_rejects_blank_doctor_id() -> None:
    with pytest.raises(ValidationError):
        DoctorCalendar(doctor_id='   ')
