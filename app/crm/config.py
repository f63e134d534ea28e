import os
from dataclasses import dataclass
from datetime import timedelta

DEFAULT_SECRET_KEY = "change-me"
DEFAULT_DATABASE_URL = "sqlite:///avmoto_crm.db"


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    log_level: str
    session_hours: int

    @property
    def is_production(self) -> bool:
        return self.env in ("prod", "production")


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _normalize_database_url(url: str) -> str:
    # Some hosts still hand out the deprecated postgres:// scheme.
    if url.startswith("postgres://"):
        return "postgresql://" + url[len("postgres://"):]
    return url


def _getenv_int(name: str, default: int) -> int:
    try:
        return int(_getenv(name, str(default)))
    except ValueError:
        return default


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", DEFAULT_SECRET_KEY),
        env=_getenv("ENV", "development").lower(),
        database_url=_normalize_database_url(_getenv("DATABASE_URL", DEFAULT_DATABASE_URL)),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        session_hours=_getenv_int("SESSION_HOURS", 8),
    )


def check_production_settings(s: Settings) -> None:
    """Fail fast with a clear message instead of serving production off SQLite or a default key."""
    if not s.is_production:
        return
    raw_url = _getenv("DATABASE_URL")
    if not raw_url:
        raise RuntimeError("DATABASE_URL is required in production.")
    if s.database_url.startswith("sqlite"):
        raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
    if not s.secret_key or s.secret_key == DEFAULT_SECRET_KEY:
        raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")


def load_config() -> dict:
    s = load_settings()
    check_production_settings(s)
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "LOG_LEVEL": s.log_level,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": s.is_production,
        "PERMANENT_SESSION_LIFETIME": timedelta(hours=s.session_hours),
        "SESSION_REFRESH_EACH_REQUEST": True,
        # form posts only, no uploads
        "MAX_CONTENT_LENGTH": 1 * 1024 * 1024,
    }
