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

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./calmme.db")

CORS_ALLOWED_ORIGINS = _get_list(os.getenv("CORS_ALLOWED_ORIGINS"), ["http://localhost:4200"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# Unparseable dates are rejected unless lenient parsing is switched on, in which
# case they map to FALLBACK_DAY_OF_WEEK.
LENIENT_DATE_PARSING = _get_bool(os.getenv("LENIENT_DATE_PARSING"), default=False)
FALLBACK_DAY_OF_WEEK = os.getenv("FALLBACK_DAY_OF_WEEK", "monday").strip().lower()

SLOT_RESERVATION_RETRIES = int(os.getenv("SLOT_RESERVATION_RETRIES", "3"))
BOOKED_APPOINTMENT_STATUSES = _get_list(
    os.getenv("BOOKED_APPOINTMENT_STATUSES"),
    ["scheduled", "confirmed"],
)

DAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if SLOT_RESERVATION_RETRIES < 1:
        raise RuntimeError("SLOT_RESERVATION_RETRIES must be at least 1.")
    if FALLBACK_DAY_OF_WEEK not in DAY_NAMES:
        raise RuntimeError(
            f"FALLBACK_DAY_OF_WEEK must be one of {', '.join(DAY_NAMES)}; got {FALLBACK_DAY_OF_WEEK!r}."
        )
