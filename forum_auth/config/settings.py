"""Environment-backed application settings with strict validation."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping

logger = logging.getLogger(__name__)

REQUIRED_ENV_VARS = (
    "DATABASE_URL",
    "JWT_SECRET",
)

_TRUTHY = ("1", "true", "yes", "on")


def _read_env_var(name: str, env: Mapping[str, str | None]) -> str:
    value = env.get(name)
    if value is None or str(value).strip() == "":
        raise RuntimeError(f"Missing required environment variable: {name}")
    return str(value)


def _read_optional(name: str, env: Mapping[str, str | None], default: str | None = None) -> str | None:
    value = env.get(name)
    if value is None or str(value).strip() == "":
        return default
    return str(value).strip()


def _read_int(name: str, env: Mapping[str, str | None], default: int) -> int:
    raw = _read_optional(name, env)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise RuntimeError(f"Environment variable {name} must be an integer") from exc
    if value <= 0:
        raise RuntimeError(f"Environment variable {name} must be positive")
    return value


def _read_bool(name: str, env: Mapping[str, str | None], default: bool) -> bool:
    raw = _read_optional(name, env)
    if raw is None:
        return default
    return raw.lower() in _TRUTHY


@dataclass(frozen=True)
class Settings:
    database_url: str
    jwt_secret: str
    app_env: str = "development"
    otp_issuer_name: str = "GameForum"
    frontend_url: str = "http://localhost:3001"
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = True
    email_from: str = "noreply@gameforum.com"
    max_failed_login_attempts: int = 5
    lockout_minutes: int = 30
    password_max_age_days: int = 90
    password_history_size: int = 5
    session_ttl_hours: int = 24
    login_rate_limit: int = 5
    login_rate_window_seconds: int = 900


def load_settings(env: Mapping[str, str | None] | None = None) -> Settings:
    """Load and validate environment variables into a Settings object."""
    source_env = os.environ if env is None else env

    missing = [key for key in REQUIRED_ENV_VARS if not str(source_env.get(key) or "").strip()]
    if missing:
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")

    app_env = str(source_env.get("APP_ENV", "development")).strip() or "development"

    settings = Settings(
        database_url=_read_env_var("DATABASE_URL", source_env),
        jwt_secret=_read_env_var("JWT_SECRET", source_env),
        app_env=app_env,
        otp_issuer_name=_read_optional("OTP_ISSUER_NAME", source_env, "GameForum"),
        frontend_url=_read_optional("FRONTEND_URL", source_env, "http://localhost:3001"),
        smtp_host=_read_optional("SMTP_HOST", source_env),
        smtp_port=_read_int("SMTP_PORT", source_env, 587),
        smtp_user=_read_optional("SMTP_USER", source_env),
        smtp_password=_read_optional("SMTP_PASSWORD", source_env),
        smtp_use_tls=_read_bool("SMTP_USE_TLS", source_env, True),
        email_from=_read_optional("EMAIL_FROM", source_env, "noreply@gameforum.com"),
        max_failed_login_attempts=_read_int("MAX_FAILED_LOGIN_ATTEMPTS", source_env, 5),
        lockout_minutes=_read_int("LOCKOUT_MINUTES", source_env, 30),
        password_max_age_days=_read_int("PASSWORD_MAX_AGE_DAYS", source_env, 90),
        password_history_size=_read_int("PASSWORD_HISTORY_SIZE", source_env, 5),
        session_ttl_hours=_read_int("SESSION_TTL_HOURS", source_env, 24),
        login_rate_limit=_read_int("LOGIN_RATE_LIMIT", source_env, 5),
        login_rate_window_seconds=_read_int("LOGIN_RATE_WINDOW_SECONDS", source_env, 900),
    )

    logger.info("Loaded application settings for env=%s", settings.app_env)
    return settings
