"""Environment-driven settings. A local .env file is loaded first."""
import os

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./courtside.db")
SQL_ECHO = _env_bool("SQL_ECHO")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Upper bound on the number of days a slot generation run may cover.
MAX_SCHEDULE_DAYS = _env_int("MAX_SCHEDULE_DAYS", 7)
# Extra attempts after the first failed slot generation transaction.
SLOT_GENERATION_RETRIES = _env_int("SLOT_GENERATION_RETRIES", 2)
DEFAULT_MATCH_DURATION = _env_int("DEFAULT_MATCH_DURATION", 60)

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]
