import os
from datetime import time

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_time(value: str | None, default: str) -> time:
    raw = (value or default).strip()
    hour, minute = raw.split(":", 1)
    return time(int(hour), int(minute))


def _get_int_list(value: str | None) -> frozenset[int]:
    if not value:
        return frozenset()
    return frozenset(int(part) for part in value.split(",") if part.strip())


def _get_str_list(value: str | None, default: str) -> list[str]:
    return [part.strip() for part in (value or default).split(",") if part.strip()]

APP_ENV = os.getenv("APP_ENV", "development")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinic.db")

CORS_ALLOW_ORIGINS = _get_str_list(os.getenv("CORS_ALLOW_ORIGINS"), "http://localhost:3000")

APP_HOST = os.getenv("APP_HOST", "127.0.0.1")
APP_PORT = int(os.getenv("APP_PORT", "8000"))

# Booking window. The display window only affects what calendars render.
BUSINESS_OPEN_TIME = _get_time(os.getenv("BUSINESS_OPEN_TIME"), "09:00")
BUSINESS_CLOSE_TIME = _get_time(os.getenv("BUSINESS_CLOSE_TIME"), "17:00")
DISPLAY_OPEN_TIME = _get_time(os.getenv("DISPLAY_OPEN_TIME"), "09:00")
DISPLAY_CLOSE_TIME = _get_time(os.getenv("DISPLAY_CLOSE_TIME"), "19:00")

SLOT_GRANULARITY_MINUTES = int(os.getenv("SLOT_GRANULARITY_MINUTES", "30"))

# ISO weekday numbers, 1 = Monday ... 7 = Sunday.
CLOSED_WEEKDAYS = _get_int_list(os.getenv("CLOSED_WEEKDAYS"))

MISSED_CANCELLATION_REASON = os.getenv("MISSED_CANCELLATION_REASON", "missed")
SWEEP_MISSED_ON_READ = _get_bool(os.getenv("SWEEP_MISSED_ON_READ"), default=True)

MAX_TITLE_LENGTH = int(os.getenv("MAX_TITLE_LENGTH", "120"))
MAX_NOTES_LENGTH = int(os.getenv("MAX_NOTES_LENGTH", "2000"))


def validate_runtime_config() -> None:
    if SLOT_GRANULARITY_MINUTES <= 0 or 60 % SLOT_GRANULARITY_MINUTES != 0:
        raise RuntimeError("SLOT_GRANULARITY_MINUTES must be a positive divisor of 60.")
    if BUSINESS_CLOSE_TIME <= BUSINESS_OPEN_TIME:
        raise RuntimeError("BUSINESS_CLOSE_TIME must be after BUSINESS_OPEN_TIME.")
    for boundary in (BUSINESS_OPEN_TIME, BUSINESS_CLOSE_TIME):
        if boundary.minute % SLOT_GRANULARITY_MINUTES != 0:
            raise RuntimeError("Business hours must be aligned to SLOT_GRANULARITY_MINUTES.")
    if DISPLAY_OPEN_TIME > BUSINESS_OPEN_TIME or DISPLAY_CLOSE_TIME < BUSINESS_CLOSE_TIME:
        raise RuntimeError("The display window must contain the booking window.")
    invalid_weekdays = {day for day in CLOSED_WEEKDAYS if day < 1 or day > 7}
    if invalid_weekdays:
        raise RuntimeError("CLOSED_WEEKDAYS must use ISO weekday numbers 1-7.")
