from datetime import date, time

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_scheduler.core.errors import SchedulingError
from clinic_scheduler.routes.common import (
    database_unavailable,
    ensure_database_ready,
    get_db,
    scheduling_http_error,
)
from clinic_scheduler.scheduling import store
from clinic_scheduler.scheduling.dates import format_slot, normalize_date, parse_slot, today

router = APIRouter(tags=['calendar'])


class UnavailableDatesRequest(BaseModel):
    dates: list[date]

    @field_validator('dates', mode='before')
    @classmethod
    def validate_dates(cls, value):
        return [normalize_date(item) for item in value or []]


class BookableSlotsRequest(BaseModel):
    slots: list[str]

    @field_validator('slots')
    @classmethod
    def validate_slots(cls, value: list[str]) -> list[str]:
        return [format_slot(parse_slot(item)) for item in value]


class CreateBlockedTimeRequest(BaseModel):
    date: date
    start_time: time
    end_time: time
    reason: str | None = None

    @field_validator('date', mode='before')
    @classmethod
    def validate_date(cls, value):
        return normalize_date(value)

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


class BlockedTimeResponse(BaseModel):
    id: int
    date: date
    start_time: time
    end_time: time
    reason: str | None = None

    class Config:
        from_attributes = True


class DoctorCalendarResponse(BaseModel):
    doctor_id: str
    bookable_slots: list[str]
    unavailable_dates: list[date]
    unavailable_ranges: list[BlockedTimeResponse]


def _calendar_response(db: Session, doctor_id: str) -> DoctorCalendarResponse:
    calendar = store.load_doctor_calendar(db, doctor_id)
    current_day = today()

    return DoctorCalendarResponse(
        doctor_id=doctor_id,
        bookable_slots=calendar.slot_labels,
        unavailable_dates=sorted(value for value in calendar.unavailable_dates if value >= current_day),
        unavailable_ranges=[
            BlockedTimeResponse.model_validate(blocked)
            for blocked in store.list_unavailable_ranges(db, doctor_id, from_date=current_day)
        ],
    )


@router.get('/{doctor_id}/calendar', response_model=DoctorCalendarResponse)
def get_doctor_calendar(doctor_id: str, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return _calendar_response(db, doctor_id)
    except SchedulingError as exc:
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.put('/{doctor_id}/calendar/unavailable-dates', response_model=DoctorCalendarResponse)
def replace_unavailable_dates(doctor_id: str, data: UnavailableDatesRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        store.set_unavailable_dates(db, doctor_id, data.dates)
        return _calendar_response(db, doctor_id)
    except SchedulingError as exc:
        db.rollback()
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.put('/{doctor_id}/calendar/slots', response_model=DoctorCalendarResponse)
def replace_bookable_slots(doctor_id: str, data: BookableSlotsRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        store.set_bookable_slots(db, doctor_id, data.slots)
        return _calendar_response(db, doctor_id)
    except SchedulingError as exc:
        db.rollback()
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post(
    '/{doctor_id}/calendar/ranges',
    response_model=BlockedTimeResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_blocked_time(doctor_id: str, data: CreateBlockedTimeRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return store.add_unavailable_range(
            db,
            doctor_id,
            data.date,
            data.start_time,
            data.end_time,
            reason=data.reason,
        )
    except SchedulingError as exc:
        db.rollback()
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/{doctor_id}/calendar/ranges/{range_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_blocked_time(doctor_id: str, range_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        store.remove_unavailable_range(db, doctor_id, range_id)
    except SchedulingError as exc:
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
