from datetime import date, time

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from clinic_scheduler.routes.calendar_routes import (
    BookableSlotsRequest,
    CreateBlockedTimeRequest,
    UnavailableDatesRequest,
    create_blocked_time,
    get_doctor_calendar,
    remove_blocked_time,
    replace_bookable_slots,
    replace_unavailable_dates,
)


@pytest.fixture(autouse=True)
def skip_schema_checks(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('clinic_scheduler.routes.calendar_routes.ensure_database_ready', lambda: None)


def test_bookable_slots_request_normalizes_labels() -> None:
    request = BookableSlotsRequest(slots=['09:00', '1:30 PM'])

    assert request.slots == ['9:00', '13:30']


def test_bookable_slots_request_rejects_malformed_slot() -> None:
    with pytest.raises(ValidationError):
        BookableSlotsRequest(slots=['nine'])


def test_create_blocked_time_request_normalizes_fields() -> None:
    request = CreateBlockedTimeRequest(date='06/10/2024', start_time='9:00', end_time='10:00 AM', reason='  ')

    assert request.date == date(2024, 6, 10)
    assert (request.start_time, request.end_time) == (time(9, 0), time(10, 0))
    assert request.reason is None


def test_unavailable_dates_request_rejects_bad_date() -> None:
    with pytest.raises(ValidationError):
        UnavailableDatesRequest(dates=['2024-13-40'])


def test_get_doctor_calendar_hides_past_entries(db, doctor_d: str, frozen_now) -> None:
    store_request = UnavailableDatesRequest(dates=['2024-06-11', '2024-06-12'])
    replace_unavailable_dates(doctor_id=doctor_d, data=store_request, db=db)
    create_blocked_time(
        doctor_id=doctor_d,
        data=CreateBlockedTimeRequest(date='2024-06-10', start_time='9:00', end_time='9:30', reason='Rounds'),
        db=db,
    )

    response = get_doctor_calendar(doctor_id=doctor_d, db=db)

    assert response.bookable_slots == ['9:00', '9:30', '10:00']
    assert response.unavailable_dates == [date(2024, 6, 11), date(2024, 6, 12)]
    assert [(entry.date, entry.start_time, entry.reason) for entry in response.unavailable_ranges] == [
        (date(2024, 6, 10), time(9, 0), 'Rounds')
    ]


def test_replace_unavailable_dates_returns_conflict_for_booked_day(
    db, doctor_d: str, add_appointment, frozen_now
) -> None:
    add_appointment(date(2024, 6, 11), time(9, 0))

    with pytest.raises(HTTPException) as exception_info:
        replace_unavailable_dates(doctor_id=doctor_d, data=UnavailableDatesRequest(dates=['2024-06-11']), db=db)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail['code'] == 'booking_conflict'
    assert exception_info.value.detail['dates'] == ['2024-06-11']


def test_replace_bookable_slots_updates_grid(db, doctor_d: str, frozen_now) -> None:
    response = replace_bookable_slots(doctor_id=doctor_d, data=BookableSlotsRequest(slots=['14:00', '13:00']), db=db)

    assert response.bookable_slots == ['13:00', '14:00']


def test_create_blocked_time_rejects_overlap(db, doctor_d: str, frozen_now) -> None:
    data = CreateBlockedTimeRequest(date='2024-06-10', start_time='9:00', end_time='10:00')
    create_blocked_time(doctor_id=doctor_d, data=data, db=db)

    with pytest.raises(HTTPException) as exception_info:
        create_blocked_time(doctor_id=doctor_d, data=data, db=db)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail['message'] == 'This time is already blocked.'


def test_create_blocked_time_rejects_inverted_range(db, doctor_d: str, frozen_now) -> None:
    data = CreateBlockedTimeRequest(date='2024-06-10', start_time='10:00', end_time='9:00')

    with pytest.raises(HTTPException) as exception_info:
        create_blocked_time(doctor_id=doctor_d, data=data, db=db)

    assert exception_info.value.status_code == 400


def test_remove_blocked_time_returns_not_found(db, doctor_d: str) -> None:
    with pytest.raises(HTTPException) as exception_info:
        remove_blocked_time(doctor_id=doctor_d, range_id=999, db=db)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail['message'] == 'Blocked time not found.'


def test_remove_blocked_time_reopens_slots(db, doctor_d: str, frozen_now) -> None:
    blocked = create_blocked_time(
        doctor_id=doctor_d,
        data=CreateBlockedTimeRequest(date='2024-06-10', start_time='9:00', end_time='10:00'),
        db=db,
    )

    remove_blocked_time(doctor_id=doctor_d, range_id=blocked.id, db=db)

    assert get_doctor_calendar(doctor_id=doctor_d, db=db).unavailable_ranges == []
