"""Doctor calendar model definitions."""

from sqlalchemy import Column, Date, Integer, String, Time, UniqueConstraint
from clinic_scheduler.database import Base


class DoctorCalendarRecord(Base):
    """Per-doctor settings; a missing row means the clinic-wide slot grid."""
    __tablename__ = "doctor_calendars"

    doctor_id = Column(String, primary_key=True)
    bookable_slots = Column(String)  # comma-separated slot labels


class DoctorUnavailableDate(Base):
    """A whole day the doctor accepts no appointments."""
    __tablename__ = "doctor_unavailable_dates"
    __table_args__ = (UniqueConstraint('doctor_id', 'date', name='uq_doctor_unavailable_date'),)

    id = Column(Integer, primary_key=True)
    doctor_id = Column(String, nullable=False, index=True)
    date = Column(Date, nullable=False)


class DoctorUnavailableRange(Base):
    """A half-open [start_time, end_time) window blocked on one date."""
    __tablename__ = "doctor_unavailable_ranges"

    id = Column(Integer, primary_key=True)
    doctor_id = Column(String, nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    reason = Column(String)
