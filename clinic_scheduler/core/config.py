import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: str) -> list[str]:
    raw = default if value is None else value
    return [item.strip() for item in raw.split(",") if item.strip()]


APP_ENV = os.getenv("APP_ENV", "development")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinic_scheduler.db")
SQL_ECHO = _get_bool(os.getenv("SQL_ECHO"), default=False)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CORS_ORIGINS = _get_list(os.getenv("CORS_ORIGINS"), "http://localhost:3000")

# All calendar dates and "today" are evaluated in this zone.
APP_TIMEZONE = os.getenv("APP_TIMEZONE", "UTC")

BOOKABLE_SLOTS = _get_list(
    os.getenv("BOOKABLE_SLOTS"),
    "9:00,9:30,10:00,10:30,11:00,11:30,13:00,13:30,14:00,14:30,15:00,15:30,16:00,16:30",
)

MAX_APPOINTMENT_NOTES_LENGTH = int(os.getenv("MAX_APPOINTMENT_NOTES_LENGTH", "600"))
BOOKING_RANGE_DAYS = int(os.getenv("BOOKING_RANGE_DAYS", "90"))


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and DATABASE_URL.startswith("sqlite"):
        raise RuntimeError("DATABASE_URL must point at a server database in production.")
    if not BOOKABLE_SLOTS:
        raise RuntimeError("BOOKABLE_SLOTS must list at least one slot.")
    if BOOKING_RANGE_DAYS < 1:
        raise RuntimeError("BOOKING_RANGE_DAYS must be positive.")
