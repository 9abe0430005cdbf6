from __future__ import annotations


class AuthError(Exception):
    status_code = 400

    def __init__(self, code: str, message: str | None = None) -> None:
        super().__init__(code if message is None else message)
        self.code = code


class ValidationError(AuthError):
    status_code = 400


class AuthenticationError(AuthError):
    """Bad credentials or a tampered/expired token. Never says which factor failed."""

    status_code = 401

    def __init__(self, code: str = "unauthenticated", message: str | None = None) -> None:
        super().__init__(code, message)


class LockoutError(AuthError):
    status_code = 423

    def __init__(self, code: str = "account_locked", minutes_remaining: int = 0) -> None:
        super().__init__(code)
        self.minutes_remaining = minutes_remaining


class ExpiryError(AuthError):
    status_code = 403


class ReuseError(AuthError):
    status_code = 400

    def __init__(self, code: str = "password_reused", message: str | None = None) -> None:
        super().__init__(code, message)


class AuthorizationError(AuthError):
    status_code = 403

    def __init__(self, code: str = "forbidden", message: str | None = None) -> None:
        super().__init__(code, message)


class NotFoundError(AuthError):
    status_code = 404

    def __init__(self, code: str = "not_found", message: str | None = None) -> None:
        super().__init__(code, message)


class DependencyError(AuthError):
    """Storage or email collaborator failure; callers only see the generic code."""

    status_code = 503

    def __init__(self, code: str = "service_unavailable", message: str | None = None) -> None:
        super().__init__(code, message)
