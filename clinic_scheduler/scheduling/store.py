"""Storage boundary for doctor calendars and appointment lookups.

Rows are turned into validated ``DoctorCalendar`` objects here so nothing
past this module deals with raw column values.
"""

import logging
from datetime import date, datetime, time
from typing import Iterable

from pydantic import ValidationError
from sqlalchemy.orm import Session

from clinic_scheduler.core.errors import BookingConflictError, InvalidSlotError, NotFoundError
from clinic_scheduler.models.appointment import ACTIVE_STATUSES, Appointment, normalize_status
from clinic_scheduler.models.doctor_calendar import (
    DoctorCalendarRecord,
    DoctorUnavailableDate,
    DoctorUnavailableRange,
)
from clinic_scheduler.scheduling.calendar import DoctorCalendar, TimeRange
from clinic_scheduler.scheduling.dates import format_slot, normalize_date, parse_slot, today


logger = logging.getLogger(__name__)


def load_doctor_calendar(db: Session, doctor_id: str, slot_date: date | str | None = None) -> DoctorCalendar:
    """Build the doctor's calendar; doctors with no entries are fully open.

    With ``slot_date`` only that date's unavailability is loaded, which is all
    the resolver needs for a single availability query.
    """
    record = db.get(DoctorCalendarRecord, doctor_id)
    dates_query = db.query(DoctorUnavailableDate.date).filter(DoctorUnavailableDate.doctor_id == doctor_id)
    ranges_query = db.query(DoctorUnavailableRange).filter(DoctorUnavailableRange.doctor_id == doctor_id)
    if slot_date is not None:
        slot_date = normalize_date(slot_date)
        dates_query = dates_query.filter(DoctorUnavailableDate.date == slot_date)
        ranges_query = ranges_query.filter(DoctorUnavailableRange.date == slot_date)

    unavailable_dates = dates_query.all()
    range_rows = ranges_query.order_by(
        DoctorUnavailableRange.date.asc(),
        DoctorUnavailableRange.start_time.asc(),
    ).all()

    unavailable_ranges: dict[date, list[TimeRange]] = {}
    for row in range_rows:
        unavailable_ranges.setdefault(row.date, []).append(
            TimeRange(start_time=row.start_time, end_time=row.end_time, reason=row.reason)
        )

    calendar_data = {
        'doctor_id': doctor_id,
        'unavailable_dates': [row[0] for row in unavailable_dates],
        'unavailable_ranges': unavailable_ranges,
    }
    if record is not None and record.bookable_slots:
        calendar_data['bookable_slots'] = record.bookable_slots.split(',')

    return DoctorCalendar(**calendar_data)


def list_unavailable_ranges(db: Session, doctor_id: str, from_date: date | None = None) -> list[DoctorUnavailableRange]:
    query = db.query(DoctorUnavailableRange).filter(DoctorUnavailableRange.doctor_id == doctor_id)
    if from_date is not None:
        query = query.filter(DoctorUnavailableRange.date >= from_date)
    return query.order_by(DoctorUnavailableRange.date.asc(), DoctorUnavailableRange.start_time.asc()).all()


def _active_appointments_on(db: Session, doctor_id: str, dates: Iterable[date]) -> list[Appointment]:
    dates = list(dates)
    if not dates:
        return []
    return db.query(Appointment).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.date.in_(dates),
        Appointment.status.in_(sorted(ACTIVE_STATUSES)),
    ).order_by(Appointment.date.asc(), Appointment.time.asc()).all()


def set_unavailable_dates(
    db: Session,
    doctor_id: str,
    dates: Iterable[date | str],
    now: datetime | None = None,
) -> list[date]:
    """Replace the doctor's unavailable dates. Past dates are dropped."""
    current_day = today(now)
    normalized = sorted({normalize_date(value) for value in dates})
    upcoming = [value for value in normalized if value >= current_day]

    existing = {
        row.date: row
        for row in db.query(DoctorUnavailableDate).filter(DoctorUnavailableDate.doctor_id == doctor_id).all()
    }
    added = [value for value in upcoming if value not in existing]

    conflicts = _active_appointments_on(db, doctor_id, added)
    if conflicts:
        raise BookingConflictError(
            'Cannot mark dates unavailable while appointments are booked on them.',
            details={'dates': sorted({appointment.date.isoformat() for appointment in conflicts})},
        )

    for value, row in existing.items():
        if value not in upcoming:
            db.delete(row)
    for value in added:
        db.add(DoctorUnavailableDate(doctor_id=doctor_id, date=value))

    db.commit()
    logger.info('Doctor %s now has %d unavailable dates', doctor_id, len(upcoming))
    return upcoming


def add_unavailable_range(
    db: Session,
    doctor_id: str,
    slot_date: date | str,
    start_time: time | str,
    end_time: time | str,
    reason: str | None = None,
) -> DoctorUnavailableRange:
    slot_date = normalize_date(slot_date)
    try:
        time_range = TimeRange(start_time=parse_slot(start_time), end_time=parse_slot(end_time), reason=reason)
    except ValidationError as exc:
        raise InvalidSlotError('Blocked time must end after it starts.') from exc

    overlapping_range = db.query(DoctorUnavailableRange).filter(
        DoctorUnavailableRange.doctor_id == doctor_id,
        DoctorUnavailableRange.date == slot_date,
        DoctorUnavailableRange.start_time < time_range.end_time,
        DoctorUnavailableRange.end_time > time_range.start_time,
    ).first()
    if overlapping_range:
        raise BookingConflictError('This time is already blocked.')

    overlapping_appointment = db.query(Appointment).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.date == slot_date,
        Appointment.time >= time_range.start_time,
        Appointment.time < time_range.end_time,
        Appointment.status.in_(sorted(ACTIVE_STATUSES)),
    ).first()
    if overlapping_appointment:
        raise BookingConflictError(
            'This time is already booked by a patient appointment.',
            details={'appointment_id': overlapping_appointment.id},
        )

    blocked = DoctorUnavailableRange(
        doctor_id=doctor_id,
        date=slot_date,
        start_time=time_range.start_time,
        end_time=time_range.end_time,
        reason=time_range.reason,
    )
    db.add(blocked)
    db.commit()
    db.refresh(blocked)

    logger.info(
        'Doctor %s blocked %s %s-%s',
        doctor_id,
        slot_date.isoformat(),
        format_slot(time_range.start_time),
        format_slot(time_range.end_time),
    )
    return blocked


def remove_unavailable_range(db: Session, doctor_id: str, range_id: int) -> None:
    blocked = db.query(DoctorUnavailableRange).filter(
        DoctorUnavailableRange.id == range_id,
        DoctorUnavailableRange.doctor_id == doctor_id,
    ).first()
    if not blocked:
        raise NotFoundError('Blocked time not found.')

    db.delete(blocked)
    db.commit()


def set_bookable_slots(db: Session, doctor_id: str, slots: Iterable[time | str]) -> list[time]:
    parsed = sorted({parse_slot(slot) for slot in slots})
    record = db.get(DoctorCalendarRecord, doctor_id)
    if record is None:
        record = DoctorCalendarRecord(doctor_id=doctor_id)
        db.add(record)

    record.bookable_slots = ','.join(format_slot(slot) for slot in parsed) or None
    db.commit()
    return parsed


def get_appointment(db: Session, appointment_id: int) -> Appointment:
    appointment = db.get(Appointment, appointment_id)
    if appointment is None:
        raise NotFoundError('Appointment not found.')
    return appointment


def list_appointments(
    db: Session,
    doctor_id: str | None = None,
    patient_id: str | None = None,
    statuses: Iterable[str] | None = None,
    from_date: date | None = None,
) -> list[Appointment]:
    query = db.query(Appointment)
    if doctor_id:
        query = query.filter(Appointment.doctor_id == doctor_id)
    if patient_id:
        query = query.filter(Appointment.patient_id == patient_id)
    if statuses:
        query = query.filter(Appointment.status.in_(sorted({normalize_status(status) for status in statuses})))
    if from_date is not None:
        query = query.filter(Appointment.date >= from_date)
    return query.order_by(Appointment.date.asc(), Appointment.time.asc()).all()
