from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from clinic_scheduler.core import config


engine = create_engine(config.DATABASE_URL, echo=config.SQL_ECHO)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

ACTIVE_SLOT_INDEX_SQL = (
    "CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_active_slot "
    "ON appointments(doctor_id, date, time) WHERE status IN ('pending', 'confirmed')"
)

_schema_lock = Lock()
_appointment_schema_checked = False
_calendar_schema_checked = False


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('mode', "ALTER TABLE appointments ADD COLUMN mode VARCHAR DEFAULT 'in-person'"),
            ('appointment_type', 'ALTER TABLE appointments ADD COLUMN appointment_type VARCHAR'),
            ('notes', 'ALTER TABLE appointments ADD COLUMN notes VARCHAR'),
            ('status_note', 'ALTER TABLE appointments ADD COLUMN status_note VARCHAR'),
            ('created_by', 'ALTER TABLE appointments ADD COLUMN created_by VARCHAR'),
            ('rescheduled_by', 'ALTER TABLE appointments ADD COLUMN rescheduled_by VARCHAR'),
            ('rescheduled_by_id', 'ALTER TABLE appointments ADD COLUMN rescheduled_by_id VARCHAR'),
            ('rescheduled_at', 'ALTER TABLE appointments ADD COLUMN rescheduled_at TIMESTAMP'),
            ('cancelled_by', 'ALTER TABLE appointments ADD COLUMN cancelled_by VARCHAR'),
            ('cancelled_at', 'ALTER TABLE appointments ADD COLUMN cancelled_at TIMESTAMP'),
            ('confirmed_at', 'ALTER TABLE appointments ADD COLUMN confirmed_at TIMESTAMP'),
            ('completed_at', 'ALTER TABLE appointments ADD COLUMN completed_at TIMESTAMP'),
            ('auto_completed', 'ALTER TABLE appointments ADD COLUMN auto_completed BOOLEAN DEFAULT FALSE'),
            ('version_id', 'ALTER TABLE appointments ADD COLUMN version_id INTEGER NOT NULL DEFAULT 1'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_doctor_date ON appointments(doctor_id, date)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_patient_date ON appointments(patient_id, date)')
            )
            connection.execute(text(ACTIVE_SLOT_INDEX_SQL))

        _appointment_schema_checked = True


def ensure_calendar_schema() -> None:
    global _calendar_schema_checked

    if _calendar_schema_checked:
        return

    with _schema_lock:
        if _calendar_schema_checked:
            return

        inspector = inspect(engine)

        if 'doctor_unavailable_ranges' not in inspector.get_table_names():
            _calendar_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('doctor_unavailable_ranges')}

        with engine.begin() as connection:
            if 'reason' not in existing_columns:
                connection.execute(text('ALTER TABLE doctor_unavailable_ranges ADD COLUMN reason VARCHAR'))
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_unavailable_ranges_doctor_date '
                    'ON doctor_unavailable_ranges(doctor_id, date)'
                )
            )

        _calendar_schema_checked = True
