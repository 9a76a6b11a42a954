from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_scheduler.core.errors import SchedulingError
from clinic_scheduler.routes.common import (
    database_unavailable,
    ensure_database_ready,
    get_db,
    scheduling_http_error,
)
from clinic_scheduler.scheduling.dates import clinic_now
from clinic_scheduler.scheduling.ledger import BookingLedger
from clinic_scheduler.scheduling.resolver import AvailabilityResult, resolve_availability
from clinic_scheduler.scheduling.store import get_appointment, load_doctor_calendar

router = APIRouter(tags=['availability'])


def build_availability(
    db: Session,
    doctor_id: str,
    slot_date: date,
    rescheduling_appointment_id: int | None = None,
) -> AvailabilityResult:
    return resolve_availability(
        doctor_id,
        slot_date,
        load_doctor_calendar(db, doctor_id, slot_date=slot_date),
        BookingLedger(db).occupied_slots(doctor_id, slot_date),
        clinic_now(),
        rescheduling_appointment_id=rescheduling_appointment_id,
    )


@router.get('/{doctor_id}', response_model=AvailabilityResult)
def get_availability(
    doctor_id: str,
    date_param: date = Query(..., alias='date'),
    appointment_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
):
    """Slots for one doctor and date; pass ``appointment_id`` while rescheduling it."""
    normalized_doctor_id = doctor_id.strip()
    if not normalized_doctor_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Doctor id is required.',
        )

    ensure_database_ready()

    try:
        if appointment_id is not None:
            appointment = get_appointment(db, appointment_id)
            if appointment.doctor_id != normalized_doctor_id:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail='Appointment does not belong to this doctor.',
                )

        return build_availability(db, normalized_doctor_id, date_param, appointment_id)
    except SchedulingError as exc:
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
