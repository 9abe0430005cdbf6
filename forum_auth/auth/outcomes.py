"""Typed results returned by AuthService operations.

Each outcome carries an ``ok`` flag and a stable snake_case ``code`` so the
HTTP layer can map it without isinstance chains.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import ClassVar, Sequence


@dataclass(frozen=True)
class Outcome:
    ok: ClassVar[bool] = False
    code: ClassVar[str] = "error"


# login / MFA verification


@dataclass(frozen=True)
class Authenticated(Outcome):
    ok: ClassVar[bool] = True
    code: ClassVar[str] = "authenticated"

    identity_token: str
    session_token: str
    session_expires_at: datetime
    account_id: int


@dataclass(frozen=True)
class MFARequired(Outcome):
    ok: ClassVar[bool] = True
    code: ClassVar[str] = "mfa_required"

    challenge_id: str
    expires_at: datetime
    method: str
    delivered: bool = True


@dataclass(frozen=True)
class InvalidCredentials(Outcome):
    code: ClassVar[str] = "invalid_credentials"


@dataclass(frozen=True)
class AccountLocked(Outcome):
    code: ClassVar[str] = "account_locked"

    minutes_remaining: int = 0


@dataclass(frozen=True)
class PasswordExpired(Outcome):
    code: ClassVar[str] = "password_expired"


@dataclass(frozen=True)
class AccountBanned(Outcome):
    code: ClassVar[str] = "account_banned"

    reason: str | None = None


@dataclass(frozen=True)
class InvalidCode(Outcome):
    code: ClassVar[str] = "invalid_code"


@dataclass(frozen=True)
class ChallengeExpired(Outcome):
    code: ClassVar[str] = "challenge_expired"


# registration


@dataclass(frozen=True)
class RegistrationAccepted(Outcome):
    ok: ClassVar[bool] = True
    code: ClassVar[str] = "registered"


@dataclass(frozen=True)
class RegistrationInvalid(Outcome):
    code: ClassVar[str] = "validation_failed"

    errors: Sequence[str] = field(default_factory=tuple)


@dataclass(frozen=True)
class UsernameTaken(Outcome):
    code: ClassVar[str] = "username_taken"


# password lifecycle


@dataclass(frozen=True)
class PasswordChanged(Outcome):
    ok: ClassVar[bool] = True
    code: ClassVar[str] = "password_changed"

    expires_at: datetime | None = None


@dataclass(frozen=True)
class CurrentPasswordWrong(Outcome):
    code: ClassVar[str] = "current_password_wrong"


@dataclass(frozen=True)
class PasswordReused(Outcome):
    code: ClassVar[str] = "password_reused"


@dataclass(frozen=True)
class PasswordTooWeak(Outcome):
    code: ClassVar[str] = "password_too_weak"


@dataclass(frozen=True)
class PasswordMismatch(Outcome):
    code: ClassVar[str] = "password_mismatch"


@dataclass(frozen=True)
class InvalidResetToken(Outcome):
    code: ClassVar[str] = "invalid_reset_token"


@dataclass(frozen=True)
class ResetRequested(Outcome):
    ok: ClassVar[bool] = True
    code: ClassVar[str] = "reset_requested"


# MFA management


@dataclass(frozen=True)
class MFAEnableRequested(Outcome):
    ok: ClassVar[bool] = True
    code: ClassVar[str] = "mfa_enable_requested"

    expires_at: datetime
    delivered: bool = True


@dataclass(frozen=True)
class MFAAlreadyEnabled(Outcome):
    code: ClassVar[str] = "mfa_already_enabled"


@dataclass(frozen=True)
class MFAEnabled(Outcome):
    ok: ClassVar[bool] = True
    code: ClassVar[str] = "mfa_enabled"

    method: str
    backup_codes: Sequence[str] = field(default_factory=tuple)


@dataclass(frozen=True)
class TotpSetup(Outcome):
    ok: ClassVar[bool] = True
    code: ClassVar[str] = "totp_setup"

    secret: str
    provisioning_uri: str


@dataclass(frozen=True)
class MFADisabled(Outcome):
    ok: ClassVar[bool] = True
    code: ClassVar[str] = "mfa_disabled"
