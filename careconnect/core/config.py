import os

from dotenv import load_dotenv

load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./careconnect.db")

CORS_ALLOWED_ORIGINS = _get_list(os.getenv("CORS_ALLOWED_ORIGINS"), ["http://localhost:5173"])

DEFAULT_SLOT_DURATION_MINUTES = int(os.getenv("DEFAULT_SLOT_DURATION_MINUTES", "30"))
# When false, the last slot of the day may start before closing and run past it.
SLOT_REQUIRE_FULL_FIT = _get_bool(os.getenv("SLOT_REQUIRE_FULL_FIT"), default=False)
CALENDAR_MAX_DAYS = int(os.getenv("CALENDAR_MAX_DAYS", "28"))
MAX_APPOINTMENT_NOTES_LENGTH = int(os.getenv("MAX_APPOINTMENT_NOTES_LENGTH", "600"))

def validate_runtime_config() -> None:
    if DEFAULT_SLOT_DURATION_MINUTES <= 0:
        raise RuntimeError("DEFAULT_SLOT_DURATION_MINUTES must be a positive number of minutes.")
    if CALENDAR_MAX_DAYS <= 0:
        raise RuntimeError("CALENDAR_MAX_DAYS must be positive.")
    if APP_ENV.lower() == "production" and DATABASE_URL.startswith("sqlite"):
        raise RuntimeError("DATABASE_URL must point at a server database in production.")
