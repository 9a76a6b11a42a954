from datetime import date, time
from typing import Iterable, NamedTuple

from sqlalchemy.orm import Session

from clinic_scheduler.models.appointment import ACTIVE_STATUSES, Appointment
from clinic_scheduler.scheduling.dates import normalize_date


class OccupiedSlot(NamedTuple):
    slot: time
    appointment_id: int


class BookingLedger:
    """Reads booked appointments straight from the store on every call."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def query_appointments(
        self,
        doctor_id: str,
        slot_date: date | str,
        statuses: Iterable[str] = ACTIVE_STATUSES,
    ) -> list[Appointment]:
        return self.db.query(Appointment).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.date == normalize_date(slot_date),
            Appointment.status.in_(sorted(set(statuses))),
        ).order_by(Appointment.time.asc()).all()

    def occupied_slots(self, doctor_id: str, slot_date: date | str) -> set[OccupiedSlot]:
        rows = self.db.query(Appointment.time, Appointment.id).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.date == normalize_date(slot_date),
            Appointment.status.in_(sorted(ACTIVE_STATUSES)),
        ).all()

        return {
            OccupiedSlot(slot=slot.replace(second=0, microsecond=0), appointment_id=appointment_id)
            for slot, appointment_id in rows
        }
