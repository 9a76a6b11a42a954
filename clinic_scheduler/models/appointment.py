"""Appointment model definitions."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Date, DateTime, Index, Integer, String, Time, text
from clinic_scheduler.database import Base


STATUS_PENDING = 'pending'
STATUS_CONFIRMED = 'confirmed'
STATUS_CANCELLED = 'cancelled'
STATUS_DECLINED = 'declined'
STATUS_COMPLETED = 'completed'

ACTIVE_STATUSES = frozenset({STATUS_PENDING, STATUS_CONFIRMED})
ALL_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED, STATUS_CANCELLED, STATUS_DECLINED, STATUS_COMPLETED)
STATUS_ALIASES = {'approved': STATUS_CONFIRMED}

MODE_IN_PERSON = 'in-person'
MODE_ONLINE = 'online'
MODES = (MODE_IN_PERSON, MODE_ONLINE)

_ACTIVE_SLOT_CONDITION = text("status IN ('pending', 'confirmed')")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_status(value: str) -> str:
    normalized = (value or '').strip().lower()
    return STATUS_ALIASES.get(normalized, normalized)


class Appointment(Base):
    """A patient's booking of one slot on one doctor's calendar."""
    __tablename__ = "appointments"
    __table_args__ = (
        # At most one active appointment per doctor, date and slot.
        Index(
            'uq_appointments_active_slot',
            'doctor_id',
            'date',
            'time',
            unique=True,
            sqlite_where=_ACTIVE_SLOT_CONDITION,
            postgresql_where=_ACTIVE_SLOT_CONDITION,
        ),
        Index('idx_appointments_doctor_date', 'doctor_id', 'date'),
        Index('idx_appointments_patient_date', 'patient_id', 'date'),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(String, nullable=False)
    patient_id = Column(String, nullable=False)
    date = Column(Date, nullable=False)
    time = Column(Time, nullable=False)
    status = Column(String, nullable=False, default=STATUS_PENDING)
    mode = Column(String, nullable=False, default=MODE_IN_PERSON)
    appointment_type = Column(String)
    notes = Column(String)
    status_note = Column(String)
    created_by = Column(String)
    rescheduled_by = Column(String)
    rescheduled_by_id = Column(String)
    rescheduled_at = Column(DateTime(timezone=True))
    cancelled_by = Column(String)
    cancelled_at = Column(DateTime(timezone=True))
    confirmed_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    auto_completed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utc_now, onupdate=_utc_now)
    version_id = Column(Integer, nullable=False)

    __mapper_args__ = {'version_id_col': version_id}

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES
