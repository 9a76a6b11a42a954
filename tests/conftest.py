import os
from datetime import date, datetime, time, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')
os.environ.setdefault('APP_TIMEZONE', 'UTC')

from clinic_scheduler.database import Base  # noqa: E402
from clinic_scheduler.models.appointment import Appointment  # noqa: E402
from clinic_scheduler.models import doctor_calendar  # noqa: E402,F401
from clinic_scheduler.scheduling.store import set_bookable_slots  # noqa: E402


FROZEN_NOW = datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f'sqlite:///{tmp_path / "scheduler.db"}',
        connect_args={'check_same_thread': False, 'timeout': 30},
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def frozen_now(monkeypatch: pytest.MonkeyPatch) -> datetime:
    monkeypatch.setattr('clinic_scheduler.scheduling.dates.clinic_now', lambda: FROZEN_NOW)
    monkeypatch.setattr('clinic_scheduler.scheduling.transactions.clinic_now', lambda: FROZEN_NOW)
    monkeypatch.setattr('clinic_scheduler.routes.availability_routes.clinic_now', lambda: FROZEN_NOW)
    return FROZEN_NOW


@pytest.fixture
def add_appointment(db):
    def _add(
        slot_date: date,
        slot_time: time,
        status: str = 'pending',
        doctor_id: str = 'doctor-d',
        patient_id: str = 'patient-1',
    ) -> Appointment:
        appointment = Appointment(
            doctor_id=doctor_id,
            patient_id=patient_id,
            date=slot_date,
            time=slot_time,
            status=status,
            mode='in-person',
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return _add


@pytest.fixture
def doctor_d(db) -> str:
    set_bookable_slots(db, 'doctor-d', ['9:00', '9:30', '10:00'])
    return 'doctor-d'
