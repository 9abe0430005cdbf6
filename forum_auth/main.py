from __future__ import annotations

from flask import Flask
from sqlalchemy import text
from sqlalchemy.orm import sessionmaker

from forum_auth.api import create_api_app
from forum_auth.auth import AuthService, LockoutPolicy, RateLimiter, TokenIssuer
from forum_auth.config import Settings, load_settings
from forum_auth.logging import AuditLogger
from forum_auth.mail import SmtpEmailSender
from forum_auth.models import Base
from forum_auth.storage import SqlAccountStore, create_session_factory


def build_auth_service(settings: Settings, session_factory: sessionmaker) -> AuthService:
    mailer = SmtpEmailSender(
        smtp_host=settings.smtp_host,
        smtp_port=settings.smtp_port,
        smtp_user=settings.smtp_user,
        smtp_password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
        from_email=settings.email_from,
    )
    return AuthService(
        store=SqlAccountStore(session_factory),
        mailer=mailer,
        tokens=TokenIssuer(
            settings.jwt_secret,
            identity_ttl_hours=settings.session_ttl_hours,
            session_ttl_hours=settings.session_ttl_hours,
        ),
        policy=LockoutPolicy(
            max_failed_attempts=settings.max_failed_login_attempts,
            lockout_minutes=settings.lockout_minutes,
        ),
        audit=AuditLogger(session_factory),
        password_max_age_days=settings.password_max_age_days,
        password_history_size=settings.password_history_size,
        frontend_url=settings.frontend_url,
        otp_issuer_name=settings.otp_issuer_name,
    )


def create_app(settings: Settings | None = None) -> Flask:
    settings = settings or load_settings()
    session_factory = create_session_factory(settings.database_url)
    engine = session_factory.kw["bind"]
    if settings.app_env != "production":
        Base.metadata.create_all(engine)

    def ping_database() -> None:
        with engine.connect() as connection:
            connection.execute(text("select 1"))

    app = create_api_app(
        build_auth_service(settings, session_factory),
        login_limiter=RateLimiter(settings.login_rate_limit, settings.login_rate_window_seconds),
        register_limiter=RateLimiter(settings.login_rate_limit, settings.login_rate_window_seconds),
        health_check=ping_database,
    )
    app.config["SETTINGS"] = settings
    return app


if __name__ == "__main__":
    create_app().run()
