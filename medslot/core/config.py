import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_list(value: str | None, default: tuple[int, ...]) -> tuple[int, ...]:
    if not value:
        return default
    return tuple(int(part) for part in value.split(",") if part.strip())


APP_ENV = os.getenv("APP_ENV", "development")
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./medslot.db")
SQL_ECHO = _get_bool(os.getenv("SQL_ECHO"), default=False)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

CORS_ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:4200").split(",")
    if origin.strip()
]

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

# Daily template: SLOTS_PER_DAY consecutive buckets starting at DAY_START_HOUR.
DAY_START_HOUR = int(os.getenv("DAY_START_HOUR", "9"))
SLOTS_PER_DAY = int(os.getenv("SLOTS_PER_DAY", "9"))
SLOT_DURATION_MINUTES = int(os.getenv("SLOT_DURATION_MINUTES", "60"))
DEFAULT_SLOT_CAPACITY = int(os.getenv("DEFAULT_SLOT_CAPACITY", "5"))

SLOT_LOOKAHEAD_DAYS = int(os.getenv("SLOT_LOOKAHEAD_DAYS", "7"))
SLOT_REPLENISH_WEEKS = int(os.getenv("SLOT_REPLENISH_WEEKS", "2"))

RUNNING_LATE_QUICK_PICKS = _get_int_list(os.getenv("RUNNING_LATE_QUICK_PICKS"), (15, 30, 45, 60))
DELAY_STEP_MINUTES = int(os.getenv("DELAY_STEP_MINUTES", "15"))

RECOMMENDATION_HORIZON_DAYS = int(os.getenv("RECOMMENDATION_HORIZON_DAYS", "30"))
RECOMMENDATION_LIMIT = int(os.getenv("RECOMMENDATION_LIMIT", "5"))
PREFERRED_DOCTOR_BONUS = float(os.getenv("PREFERRED_DOCTOR_BONUS", "50"))
PREFERRED_TIME_BONUS = float(os.getenv("PREFERRED_TIME_BONUS", "20"))
PREFERRED_TIME_WINDOW_HOURS = float(os.getenv("PREFERRED_TIME_WINDOW_HOURS", "2"))
FALLBACK_PREFERRED_HOUR = float(os.getenv("FALLBACK_PREFERRED_HOUR", "10"))

DEMAND_LOOKAHEAD_DAYS = int(os.getenv("DEMAND_LOOKAHEAD_DAYS", "7"))
HIGH_DEMAND_RATIO = float(os.getenv("HIGH_DEMAND_RATIO", "1.2"))
LOW_DEMAND_RATIO = float(os.getenv("LOW_DEMAND_RATIO", "0.6"))
HIGH_UTILIZATION = float(os.getenv("HIGH_UTILIZATION", "0.85"))
LOW_UTILIZATION = float(os.getenv("LOW_UTILIZATION", "0.30"))


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if DEFAULT_SLOT_CAPACITY <= 0:
        raise RuntimeError("DEFAULT_SLOT_CAPACITY must be a positive integer.")
    if not 0 <= DAY_START_HOUR < 24 or DAY_START_HOUR * 60 + SLOTS_PER_DAY * SLOT_DURATION_MINUTES > 24 * 60:
        raise RuntimeError("The daily slot template must fit inside a single day.")
