from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from functools import wraps
from typing import Any, Callable, Mapping

from flask import Flask, g, jsonify, request

from forum_auth.auth import AuthError, AuthService, LockoutError, RateLimiter
from forum_auth.auth import outcomes
from forum_auth.logging import get_logger
from forum_auth.utils.timeutil import utcnow

logger = get_logger("api")

OUTCOME_STATUS: Mapping[type, int] = {
    outcomes.Authenticated: 200,
    outcomes.MFARequired: 200,
    outcomes.InvalidCredentials: 401,
    outcomes.AccountLocked: 423,
    outcomes.PasswordExpired: 403,
    outcomes.AccountBanned: 403,
    outcomes.InvalidCode: 401,
    outcomes.ChallengeExpired: 410,
    outcomes.RegistrationAccepted: 201,
    outcomes.RegistrationInvalid: 400,
    outcomes.UsernameTaken: 409,
    outcomes.PasswordChanged: 200,
    outcomes.CurrentPasswordWrong: 401,
    outcomes.PasswordReused: 400,
    outcomes.PasswordTooWeak: 400,
    outcomes.PasswordMismatch: 400,
    outcomes.InvalidResetToken: 400,
    outcomes.ResetRequested: 200,
    outcomes.MFAEnableRequested: 200,
    outcomes.MFAAlreadyEnabled: 409,
    outcomes.MFAEnabled: 200,
    outcomes.TotpSetup: 200,
    outcomes.MFADisabled: 200,
}


def _serialize(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [_serialize(item) for item in value]
    return value


def outcome_response(outcome: outcomes.Outcome):
    payload = {key: _serialize(value) for key, value in asdict(outcome).items()}
    if outcome.ok:
        payload["status"] = outcome.code
    else:
        payload["error"] = outcome.code
    return jsonify(payload), OUTCOME_STATUS.get(type(outcome), 400)


def _json_body() -> dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _text(data: Mapping[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
    return None


def create_api_app(
    service: AuthService,
    login_limiter: RateLimiter | None = None,
    register_limiter: RateLimiter | None = None,
    health_check: Callable[[], None] | None = None,
) -> Flask:
    app = Flask(__name__)
    app.extensions["auth_service"] = service

    def client_ip() -> str:
        return request.remote_addr or "unknown"

    def rate_limited(limiter: RateLimiter | None, scope: str) -> bool:
        if limiter is None:
            return False
        return not limiter.allow(f"{scope}:{client_ip()}", utcnow())

    def clear_login_limit(outcome: outcomes.Outcome) -> None:
        if login_limiter is not None and isinstance(outcome, outcomes.Authenticated):
            login_limiter.reset(f"login:{client_ip()}")

    def require_auth(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            g.account = service.authenticate_request(request.headers.get("Authorization"))
            return fn(*args, **kwargs)

        return wrapper

    @app.errorhandler(AuthError)
    def handle_auth_error(exc: AuthError):
        payload: dict[str, Any] = {"error": exc.code}
        if isinstance(exc, LockoutError):
            payload["minutes_remaining"] = exc.minutes_remaining
        if exc.status_code >= 500:
            logger.error("Request failed path=%s error=%s", request.path, exc.code)
        return jsonify(payload), exc.status_code

    @app.after_request
    def after_request(response):
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Cache-Control"] = "no-store"
        return response

    @app.route("/health")
    def health():
        if health_check is not None:
            try:
                health_check()
            except Exception:
                logger.exception("Health check failed")
                return jsonify({"status": "unavailable"}), 503
        return jsonify({"status": "ok"})

    @app.route("/api/users/register", methods=["POST"])
    def register():
        if rate_limited(register_limiter, "register"):
            return jsonify({"error": "rate_limited"}), 429
        data = _json_body()
        outcome = service.register(
            _text(data, "username"),
            _text(data, "email"),
            _text(data, "password"),
            _text(data, "confirmPassword", "confirm_password"),
        )
        return outcome_response(outcome)

    @app.route("/api/users/login", methods=["POST"])
    def login():
        if rate_limited(login_limiter, "login"):
            return jsonify({"error": "rate_limited"}), 429
        data = _json_body()
        outcome = service.authenticate(_text(data, "email"), _text(data, "password"), ip=client_ip())
        clear_login_limit(outcome)
        return outcome_response(outcome)

    @app.route("/api/users/mfa/verify", methods=["POST"])
    def mfa_verify():
        data = _json_body()
        outcome = service.verify_mfa(
            _text(data, "challengeId", "challenge_id"),
            code=_text(data, "code"),
            recovery_code=_text(data, "recoveryCode", "recovery_code"),
            ip=client_ip(),
        )
        clear_login_limit(outcome)
        return outcome_response(outcome)

    @app.route("/api/users/mfa/enable", methods=["POST"])
    @require_auth
    def mfa_enable():
        return outcome_response(service.request_mfa_enable(g.account.id))

    @app.route("/api/users/mfa/enable/confirm", methods=["POST"])
    @require_auth
    def mfa_enable_confirm():
        data = _json_body()
        return outcome_response(service.confirm_mfa_enable(g.account.id, _text(data, "code")))

    @app.route("/api/users/mfa/totp/setup", methods=["POST"])
    @require_auth
    def totp_setup():
        return outcome_response(service.begin_totp_setup(g.account.id))

    @app.route("/api/users/mfa/totp/confirm", methods=["POST"])
    @require_auth
    def totp_confirm():
        data = _json_body()
        return outcome_response(service.confirm_totp_enable(g.account.id, _text(data, "code")))

    @app.route("/api/users/mfa/disable", methods=["POST"])
    @require_auth
    def mfa_disable():
        return outcome_response(service.disable_mfa(g.account.id))

    @app.route("/api/users/password/change", methods=["POST"])
    @require_auth
    def password_change():
        data = _json_body()
        outcome = service.change_password(
            g.account.id,
            _text(data, "currentPassword", "current_password"),
            _text(data, "newPassword", "new_password"),
            _text(data, "confirmPassword", "confirm_password"),
        )
        return outcome_response(outcome)

    @app.route("/api/users/password/reset", methods=["POST"])
    def password_reset():
        data = _json_body()
        return outcome_response(service.request_password_reset(_text(data, "email")))

    @app.route("/api/users/password/reset-confirm", methods=["POST"])
    def password_reset_confirm():
        data = _json_body()
        outcome = service.reset_password(_text(data, "token"), _text(data, "newPassword", "new_password"))
        return outcome_response(outcome)

    @app.route("/api/users/password/reset-code", methods=["POST"])
    def password_reset_code():
        data = _json_body()
        return outcome_response(service.request_password_reset_code(_text(data, "email")))

    @app.route("/api/users/password/reset-code/confirm", methods=["POST"])
    def password_reset_code_confirm():
        data = _json_body()
        outcome = service.reset_password_with_code(
            _text(data, "email"),
            _text(data, "code"),
            _text(data, "newPassword", "new_password"),
        )
        return outcome_response(outcome)

    @app.route("/api/users/profile")
    @require_auth
    def profile():
        return jsonify(g.account.to_public_dict())

    @app.route("/api/admin/users/<int:user_id>/ban", methods=["POST"])
    @require_auth
    def ban_user(user_id: int):
        data = _json_body()
        updated = service.ban_account(g.account, user_id, reason=_text(data, "reason"))
        return jsonify({"user": updated.to_public_dict()})

    @app.route("/api/admin/users/<int:user_id>/unban", methods=["POST"])
    @require_auth
    def unban_user(user_id: int):
        updated = service.unban_account(g.account, user_id)
        return jsonify({"user": updated.to_public_dict()})

    @app.route("/api/admin/users/<int:user_id>/role", methods=["POST"])
    @require_auth
    def change_role(user_id: int):
        data = _json_body()
        updated = service.set_role(g.account, user_id, _text(data, "role") or "")
        return jsonify({"user": updated.to_public_dict()})

    @app.route("/api/admin/users/<int:user_id>/lock", methods=["POST"])
    @require_auth
    def lock_user(user_id: int):
        updated = service.lock_account(g.account, user_id)
        return jsonify({"user": updated.to_public_dict()})

    @app.route("/api/admin/users/<int:user_id>/unlock", methods=["POST"])
    @require_auth
    def unlock_user(user_id: int):
        updated = service.unlock_account(g.account, user_id)
        return jsonify({"user": updated.to_public_dict()})

    return app
