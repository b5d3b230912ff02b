import os


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")

class Settings:
    PROJECT_NAME = "Sales Report Scheduler"
    VERSION = "0.3.0"
    DEBUG = os.getenv("DEBUG", "false").lower() == "true"
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    # JWT
    SECRET_KEY = os.getenv("SECRET_KEY")
    if not SECRET_KEY:
        raise ValueError("SECRET_KEY environment variable must be set")
    ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 480))
    RATE_LIMIT_ENABLED = _env_flag("RATE_LIMIT_ENABLED", default=True)

    # Database
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./app.db")

    # Reporting
    # IANA name; day boundaries and schedule ticks are evaluated in this zone
    REPORT_TIMEZONE = os.getenv("REPORT_TIMEZONE", "UTC")

    # Scheduler
    SCHEDULER_ENABLED = _env_flag("SCHEDULER_ENABLED", default=True)
    SCHEDULE_POLL_INTERVAL_SECONDS = float(os.getenv("SCHEDULE_POLL_INTERVAL_SECONDS", 10))

    # CORS
    ALLOWED_ORIGINS = []
    for raw_origin in (os.getenv("ALLOWED_ORIGINS") or "http://localhost:5173").split(","):
        origin = raw_origin.strip()
        if origin:
            ALLOWED_ORIGINS.append(origin)

settings = Settings()
