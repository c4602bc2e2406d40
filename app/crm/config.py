import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    log_level: str

    token_max_age_seconds: int
    min_password_length: int
    default_page_limit: int
    max_page_limit: int
    report_default_days: int


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).")


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///crm.db"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        token_max_age_seconds=_getenv_int("TOKEN_MAX_AGE_SECONDS", 8 * 60 * 60),
        min_password_length=_getenv_int("MIN_PASSWORD_LENGTH", 6),
        default_page_limit=_getenv_int("DEFAULT_PAGE_LIMIT", 50),
        max_page_limit=_getenv_int("MAX_PAGE_LIMIT", 500),
        report_default_days=_getenv_int("REPORT_DEFAULT_DAYS", 30),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "LOG_LEVEL": s.log_level,
        "TOKEN_MAX_AGE_SECONDS": s.token_max_age_seconds,
        "MIN_PASSWORD_LENGTH": s.min_password_length,
        "DEFAULT_PAGE_LIMIT": s.default_page_limit,
        "MAX_PAGE_LIMIT": s.max_page_limit,
        "REPORT_DEFAULT_DAYS": s.report_default_days,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        # JSON bodies only; nothing here needs large uploads
        "MAX_CONTENT_LENGTH": 1 * 1024 * 1024,
    }
