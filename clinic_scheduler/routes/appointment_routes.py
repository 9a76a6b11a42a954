from datetime import date, datetime, time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_scheduler.core import config
from clinic_scheduler.core.errors import SchedulingError, SlotUnavailableError
from clinic_scheduler.models.appointment import ALL_STATUSES, Appointment, normalize_status
from clinic_scheduler.routes.availability_routes import build_availability
from clinic_scheduler.routes.common import (
    database_unavailable,
    ensure_database_ready,
    get_db,
    scheduling_http_error,
)
from clinic_scheduler.scheduling import store, transactions
from clinic_scheduler.scheduling.dates import format_slot, normalize_date, parse_slot
from clinic_scheduler.scheduling.resolver import REASON_BLOCKED, REASON_BOOKED, REASON_OFF_GRID, REASON_PAST_TIME

router = APIRouter(tags=['appointments'])

ACTOR_ROLES = {transactions.ROLE_PATIENT, transactions.ROLE_DOCTOR, transactions.ROLE_ADMIN}

SLOT_UNAVAILABLE_MESSAGES = {
    REASON_BOOKED: 'This time was just booked. Please choose another.',
    REASON_BLOCKED: 'The doctor is not seeing patients at this time. Please choose another.',
    REASON_PAST_TIME: 'This time has already passed. Please choose a later time.',
    REASON_OFF_GRID: "This is not one of the doctor's appointment times. Please pick a listed time.",
}


def _normalize_notes(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > config.MAX_APPOINTMENT_NOTES_LENGTH:
        raise ValueError(f'Notes must be {config.MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

    return normalized


def _normalize_required_id(value: str, label: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError(f'{label} is required.')
    return normalized


class CreateAppointmentRequest(BaseModel):
    doctor_id: str
    patient_id: str
    date: date
    time: time
    mode: str | None = None
    notes: str | None = None
    appointment_type: str | None = None
    created_by: str | None = None

    @field_validator('doctor_id')
    @classmethod
    def validate_doctor_id(cls, value: str) -> str:
        return _normalize_required_id(value, 'Doctor id')

    @field_validator('patient_id')
    @classmethod
    def validate_patient_id(cls, value: str) -> str:
        return _normalize_required_id(value, 'Patient id')

    @field_validator('date', mode='before')
    @classmethod
    def validate_date(cls, value):
        return normalize_date(value)

    @field_validator('time', mode='before')
    @classmethod
    def validate_time(cls, value):
        return parse_slot(value)

    @field_validator('mode')
    @classmethod
    def validate_mode(cls, value: str | None) -> str:
        return transactions.normalize_mode(value)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)

    @field_validator('appointment_type')
    @classmethod
    def validate_appointment_type(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip().lower() or None


class RescheduleAppointmentRequest(BaseModel):
    date: date
    time: time
    notes: str | None = None
    mode: str | None = None
    actor_role: str | None = None
    actor_id: str | None = None

    @field_validator('date', mode='before')
    @classmethod
    def validate_date(cls, value):
        return normalize_date(value)

    @field_validator('time', mode='before')
    @classmethod
    def validate_time(cls, value):
        return parse_slot(value)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)

    @field_validator('mode')
    @classmethod
    def validate_mode(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return transactions.normalize_mode(value)

    @field_validator('actor_role')
    @classmethod
    def validate_actor_role(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().lower()
        if normalized not in ACTOR_ROLES:
            raise ValueError('Invalid actor role.')
        return normalized


class UpdateStatusRequest(BaseModel):
    status: str
    note: str | None = None
    actor_role: str | None = None
    actor_id: str | None = None

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str) -> str:
        normalized = normalize_status(value)
        if normalized not in ALL_STATUSES:
            raise ValueError('Invalid appointment status.')
        return normalized

    @field_validator('note')
    @classmethod
    def validate_note(cls, value: str | None) -> str | None:
        return _normalize_notes(value)

    @field_validator('actor_role')
    @classmethod
    def validate_actor_role(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().lower()
        if normalized not in ACTOR_ROLES:
            raise ValueError('Invalid actor role.')
        return normalized


class AppointmentResponse(BaseModel):
    id: int
    doctor_id: str
    patient_id: str
    date: date
    time: str
    status: str
    mode: str
    appointment_type: str | None = None
    notes: str | None = None
    status_note: str | None = None
    rescheduled_by: str | None = None
    rescheduled_by_id: str | None = None
    rescheduled_at: datetime | None = None
    cancelled_by: str | None = None
    auto_completed: bool = False


def to_response(appointment: Appointment) -> AppointmentResponse:
    return AppointmentResponse(
        id=appointment.id,
        doctor_id=appointment.doctor_id,
        patient_id=appointment.patient_id,
        date=appointment.date,
        time=format_slot(appointment.time),
        status=appointment.status,
        mode=appointment.mode,
        appointment_type=appointment.appointment_type,
        notes=appointment.notes,
        status_note=appointment.status_note,
        rescheduled_by=appointment.rescheduled_by,
        rescheduled_by_id=appointment.rescheduled_by_id,
        rescheduled_at=appointment.rescheduled_at,
        cancelled_by=appointment.cancelled_by,
        auto_completed=bool(appointment.auto_completed),
    )


def slot_taken_error(db: Session, exc: SlotUnavailableError) -> HTTPException:
    """409 carrying a fresh availability read so the client can re-render."""
    detail = exc.to_detail()
    detail['message'] = SLOT_UNAVAILABLE_MESSAGES.get(exc.details.get('reason'), exc.user_message)
    detail['reason_detail'] = exc.message

    doctor_id = exc.details.get('doctor_id')
    slot_date = exc.details.get('date')
    if doctor_id and slot_date:
        try:
            detail['availability'] = build_availability(db, doctor_id, normalize_date(slot_date)).model_dump(mode='json')
        except SQLAlchemyError:
            detail['availability'] = None

    return HTTPException(status_code=exc.status_code, detail=detail)


@router.get('', response_model=list[AppointmentResponse])
def list_appointments(
    doctor_id: str | None = Query(default=None),
    patient_id: str | None = Query(default=None),
    status_filter: list[str] | None = Query(default=None, alias='status'),
    from_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
):
    if not (doctor_id or '').strip() and not (patient_id or '').strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='A doctor_id or patient_id is required.',
        )

    ensure_database_ready()

    try:
        appointments = store.list_appointments(
            db,
            doctor_id=(doctor_id or '').strip() or None,
            patient_id=(patient_id or '').strip() or None,
            statuses=status_filter,
            from_date=from_date,
        )
        return [to_response(appointment) for appointment in appointments]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/counts', response_model=dict[str, int])
def appointment_counts(
    doctor_id: str | None = Query(default=None),
    patient_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return transactions.count_appointments(db, doctor_id=doctor_id, patient_id=patient_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/complete-elapsed', response_model=list[AppointmentResponse])
def complete_elapsed(doctor_id: str | None = Query(default=None), db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        completed = transactions.complete_elapsed_appointments(db, doctor_id=doctor_id)
        return [to_response(appointment) for appointment in completed]
    except SchedulingError as exc:
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(appointment_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return to_response(store.get_appointment(db, appointment_id))
    except SchedulingError as exc:
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(data: CreateAppointmentRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        appointment = transactions.book_appointment(
            db,
            doctor_id=data.doctor_id,
            patient_id=data.patient_id,
            slot_date=data.date,
            slot_time=data.time,
            mode=data.mode,
            notes=data.notes,
            appointment_type=data.appointment_type,
            created_by=data.created_by,
        )
        return to_response(appointment)
    except SlotUnavailableError as exc:
        raise slot_taken_error(db, exc) from exc
    except SchedulingError as exc:
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{appointment_id}/reschedule', response_model=AppointmentResponse)
def reschedule_appointment(
    appointment_id: int,
    data: RescheduleAppointmentRequest,
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = transactions.reschedule_appointment(
            db,
            appointment_id,
            data.date,
            data.time,
            notes=data.notes,
            mode=data.mode,
            actor_role=data.actor_role,
            actor_id=data.actor_id,
        )
        return to_response(appointment)
    except SlotUnavailableError as exc:
        raise slot_taken_error(db, exc) from exc
    except SchedulingError as exc:
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.patch('/{appointment_id}/status', response_model=AppointmentResponse)
def update_appointment_status(
    appointment_id: int,
    data: UpdateStatusRequest,
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = transactions.update_appointment_status(
            db,
            appointment_id,
            data.status,
            note=data.note,
            actor_role=data.actor_role,
            actor_id=data.actor_id,
        )
        return to_response(appointment)
    except SchedulingError as exc:
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
