"""Booking, rescheduling and status changes for appointments.

Each write re-reads the booking ledger and re-runs the resolver immediately
before committing. The partial unique index on active slots backs that check
inside the database, so a request that loses a race fails on commit, is
rolled back in full and surfaces as ``SlotUnavailableError``.
"""

import logging
from datetime import date, datetime, time

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from clinic_scheduler.core import config
from clinic_scheduler.core.errors import (
    DateUnavailableError,
    InvalidDateError,
    InvalidStatusTransitionError,
    PermissionDeniedError,
    SlotUnavailableError,
    StaleAppointmentError,
)
from clinic_scheduler.models.appointment import (
    ALL_STATUSES,
    MODE_IN_PERSON,
    MODES,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_CONFIRMED,
    STATUS_DECLINED,
    STATUS_PENDING,
    Appointment,
    normalize_status,
)
from clinic_scheduler.scheduling.dates import (
    clinic_now,
    format_slot,
    normalize_date,
    parse_slot,
    slot_start,
    to_clinic_time,
)
from clinic_scheduler.scheduling.ledger import BookingLedger
from clinic_scheduler.scheduling.resolver import (
    REASON_BOOKED,
    REASON_DOCTOR_UNAVAILABLE,
    REASON_OFF_GRID,
    REASON_OUTSIDE_WINDOW,
    REASON_PAST_DATE,
    AvailabilityResult,
    resolve_availability,
)
from clinic_scheduler.scheduling.store import get_appointment, load_doctor_calendar


logger = logging.getLogger(__name__)

ROLE_PATIENT = 'patient'
ROLE_DOCTOR = 'doctor'
ROLE_ADMIN = 'admin'

STATUS_TRANSITIONS = {
    STATUS_PENDING: {STATUS_CONFIRMED, STATUS_CANCELLED, STATUS_DECLINED},
    STATUS_CONFIRMED: {STATUS_CANCELLED, STATUS_COMPLETED},
}
DOCTOR_ONLY_STATUSES = {STATUS_CONFIRMED, STATUS_DECLINED, STATUS_COMPLETED}


def normalize_mode(mode: str | None) -> str:
    normalized = (mode or MODE_IN_PERSON).strip().lower().replace('_', '-')
    if normalized == 'in person':
        normalized = MODE_IN_PERSON
    if normalized not in MODES:
        raise ValueError(f'Invalid appointment mode: {mode!r}.')
    return normalized


def resolve_actor_role(appointment: Appointment, actor_role: str | None, actor_id: str | None) -> str:
    role = (actor_role or '').strip().lower()

    if not role:
        if actor_id and actor_id == appointment.patient_id:
            role = ROLE_PATIENT
        elif actor_id and actor_id == appointment.doctor_id:
            role = ROLE_DOCTOR
        else:
            raise PermissionDeniedError('Only the patient or doctor on this appointment can change it.')

    if role == ROLE_ADMIN:
        return role
    if role == ROLE_PATIENT and actor_id in (None, appointment.patient_id):
        return role
    if role == ROLE_DOCTOR and actor_id in (None, appointment.doctor_id):
        return role

    raise PermissionDeniedError('Only the patient or doctor on this appointment can change it.')


def ensure_slot_bookable(
    db: Session,
    doctor_id: str,
    slot_date: date,
    slot: time,
    now: datetime,
    rescheduling_appointment_id: int | None = None,
) -> AvailabilityResult:
    """Re-validate a slot against fresh ledger state; raise if it cannot be booked."""
    result = resolve_availability(
        doctor_id,
        slot_date,
        load_doctor_calendar(db, doctor_id, slot_date=slot_date),
        BookingLedger(db).occupied_slots(doctor_id, slot_date),
        now,
        rescheduling_appointment_id=rescheduling_appointment_id,
    )

    if result.date_unavailable_reason == REASON_PAST_DATE:
        raise InvalidDateError('Appointments cannot be scheduled on past dates.')
    if result.date_unavailable_reason == REASON_OUTSIDE_WINDOW:
        raise InvalidDateError(f'Appointments can only be booked within the next {config.BOOKING_RANGE_DAYS} days.')
    if result.date_unavailable_reason == REASON_DOCTOR_UNAVAILABLE:
        raise DateUnavailableError(
            'The doctor is not available on this date.',
            details={'doctor_id': doctor_id, 'date': slot_date.isoformat()},
        )

    label = format_slot(slot)
    if label not in result.available:
        reason = next((entry.reason for entry in result.unavailable if entry.slot == label), REASON_OFF_GRID)
        logger.warning('Rejected %s %s for doctor %s: %s', slot_date.isoformat(), label, doctor_id, reason)
        raise SlotUnavailableError(
            f'{label} on {slot_date.isoformat()} is not available ({reason}).',
            details={'doctor_id': doctor_id, 'date': slot_date.isoformat(), 'slot': label, 'reason': reason},
        )

    return result


def _commit(db: Session, appointment: Appointment) -> None:
    appointment_id = appointment.id
    doctor_id, slot_date, slot = appointment.doctor_id, appointment.date, appointment.time
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning('Slot %s %s for doctor %s was taken before commit', slot_date, slot, doctor_id)
        raise SlotUnavailableError(
            f'{format_slot(slot)} on {slot_date.isoformat()} is not available (already booked).',
            details={
                'doctor_id': doctor_id,
                'date': slot_date.isoformat(),
                'slot': format_slot(slot),
                'reason': REASON_BOOKED,
            },
        ) from exc
    except StaleDataError as exc:
        db.rollback()
        logger.warning('Appointment %s was modified concurrently', appointment_id)
        raise StaleAppointmentError('This appointment was changed by someone else. Reload and try again.') from exc

    db.refresh(appointment)


def book_appointment(
    db: Session,
    *,
    doctor_id: str,
    patient_id: str,
    slot_date: date | str,
    slot_time: time | str,
    mode: str | None = None,
    notes: str | None = None,
    appointment_type: str | None = None,
    created_by: str | None = None,
    now: datetime | None = None,
) -> Appointment:
    now = to_clinic_time(now or clinic_now())
    slot_date = normalize_date(slot_date)
    slot = parse_slot(slot_time)

    ensure_slot_bookable(db, doctor_id, slot_date, slot, now)

    # Doctors booking on their own calendar skip the approval step.
    status = STATUS_CONFIRMED if created_by and created_by == doctor_id else STATUS_PENDING
    appointment = Appointment(
        doctor_id=doctor_id,
        patient_id=patient_id,
        date=slot_date,
        time=slot,
        status=status,
        mode=normalize_mode(mode),
        notes=notes,
        appointment_type=appointment_type,
        created_by=created_by or patient_id,
        confirmed_at=now if status == STATUS_CONFIRMED else None,
        created_at=now,
        updated_at=now,
    )
    db.add(appointment)
    _commit(db, appointment)

    logger.info(
        'Booked appointment %s for patient %s with doctor %s on %s at %s (%s)',
        appointment.id,
        patient_id,
        doctor_id,
        slot_date.isoformat(),
        format_slot(slot),
        status,
    )
    return appointment


def reschedule_appointment(
    db: Session,
    appointment_id: int,
    new_date: date | str,
    new_time: time | str,
    *,
    notes: str | None = None,
    mode: str | None = None,
    actor_role: str | None = None,
    actor_id: str | None = None,
    now: datetime | None = None,
) -> Appointment:
    now = to_clinic_time(now or clinic_now())
    appointment = get_appointment(db, appointment_id)
    role = resolve_actor_role(appointment, actor_role, actor_id)

    if not appointment.is_active:
        raise InvalidStatusTransitionError(f'A {appointment.status} appointment cannot be rescheduled.')

    target_date = normalize_date(new_date)
    slot = parse_slot(new_time)
    target_mode = normalize_mode(mode) if mode else appointment.mode

    ensure_slot_bookable(
        db,
        appointment.doctor_id,
        target_date,
        slot,
        now,
        rescheduling_appointment_id=appointment.id,
    )

    previous = (appointment.date, appointment.time)
    appointment.date = target_date
    appointment.time = slot
    appointment.mode = target_mode
    # A moved appointment always needs the other party to approve it again.
    appointment.status = STATUS_PENDING
    appointment.confirmed_at = None
    if notes:
        appointment.notes = notes
    appointment.rescheduled_by = role
    appointment.rescheduled_by_id = actor_id or (
        appointment.patient_id if role == ROLE_PATIENT else appointment.doctor_id
    )
    appointment.rescheduled_at = now
    appointment.updated_at = now

    _commit(db, appointment)

    logger.info(
        'Rescheduled appointment %s from %s %s to %s %s by %s',
        appointment.id,
        previous[0].isoformat(),
        format_slot(previous[1]),
        target_date.isoformat(),
        format_slot(slot),
        role,
    )
    return appointment


def update_appointment_status(
    db: Session,
    appointment_id: int,
    status: str,
    *,
    note: str | None = None,
    actor_role: str | None = None,
    actor_id: str | None = None,
    now: datetime | None = None,
) -> Appointment:
    now = to_clinic_time(now or clinic_now())
    appointment = get_appointment(db, appointment_id)
    role = resolve_actor_role(appointment, actor_role, actor_id)

    target = normalize_status(status)
    if target not in ALL_STATUSES:
        raise InvalidStatusTransitionError(f'Unknown appointment status: {status!r}.')

    # A doctor cancelling a request they never approved is a decline.
    if target == STATUS_CANCELLED and role == ROLE_DOCTOR and appointment.status == STATUS_PENDING:
        target = STATUS_DECLINED

    if target not in STATUS_TRANSITIONS.get(appointment.status, set()):
        raise InvalidStatusTransitionError(
            f'Cannot change a {appointment.status} appointment to {target}.'
        )
    if target in DOCTOR_ONLY_STATUSES and role == ROLE_PATIENT:
        raise PermissionDeniedError(f'Only the doctor can mark an appointment {target}.')

    previous_status = appointment.status
    appointment.status = target
    appointment.status_note = note or appointment.status_note
    appointment.updated_at = now

    if target == STATUS_CONFIRMED:
        appointment.confirmed_at = now
    elif target in (STATUS_CANCELLED, STATUS_DECLINED):
        appointment.cancelled_at = now
        appointment.cancelled_by = role
    elif target == STATUS_COMPLETED:
        appointment.completed_at = now

    _commit(db, appointment)

    logger.info('Appointment %s moved from %s to %s by %s', appointment.id, previous_status, target, role)
    return appointment


def complete_elapsed_appointments(
    db: Session,
    now: datetime | None = None,
    doctor_id: str | None = None,
) -> list[Appointment]:
    """Mark confirmed appointments whose start time has passed as completed."""
    now = to_clinic_time(now or clinic_now())

    query = db.query(Appointment).filter(
        Appointment.status == STATUS_CONFIRMED,
        Appointment.date <= now.date(),
    )
    if doctor_id:
        query = query.filter(Appointment.doctor_id == doctor_id)

    completed: list[Appointment] = []
    for appointment in query.order_by(Appointment.date.asc(), Appointment.time.asc()).all():
        if slot_start(appointment.date, appointment.time) > now:
            continue
        appointment.status = STATUS_COMPLETED
        appointment.completed_at = now
        appointment.auto_completed = True
        appointment.updated_at = now
        completed.append(appointment)

    if completed:
        try:
            db.commit()
        except StaleDataError as exc:
            db.rollback()
            raise StaleAppointmentError('Appointments changed while completing them. Try again.') from exc
        logger.info('Auto-completed %d elapsed appointments', len(completed))

    return completed


def count_appointments(
    db: Session,
    doctor_id: str | None = None,
    patient_id: str | None = None,
) -> dict[str, int]:
    query = db.query(Appointment.status, func.count(Appointment.id))
    if doctor_id:
        query = query.filter(Appointment.doctor_id == doctor_id)
    if patient_id:
        query = query.filter(Appointment.patient_id == patient_id)

    counts = {status: 0 for status in ALL_STATUSES}
    for status, count in query.group_by(Appointment.status).all():
        counts[status] = count
    counts['total'] = sum(counts.values())
    return counts
