from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt

from forum_auth.auth.errors import AuthenticationError
from forum_auth.utils.timeutil import utcnow

IDENTITY_TOKEN_TTL_HOURS = 24
SESSION_TOKEN_TTL_HOURS = 24
RESET_TOKEN_TTL_HOURS = 1
TOKEN_BYTES = 32


@dataclass(frozen=True)
class IdentityClaims:
    account_id: int
    role: str
    email: str
    expires_at: datetime


@dataclass(frozen=True)
class ResetToken:
    token: str
    token_hash: str
    expires_at: datetime


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class TokenIssuer:
    algorithm = "HS256"

    def __init__(
        self,
        secret: str,
        identity_ttl_hours: int = IDENTITY_TOKEN_TTL_HOURS,
        session_ttl_hours: int = SESSION_TOKEN_TTL_HOURS,
        reset_ttl_hours: int = RESET_TOKEN_TTL_HOURS,
    ) -> None:
        if not secret:
            raise ValueError("A signing secret is required")
        self.secret = secret
        self.identity_ttl = timedelta(hours=identity_ttl_hours)
        self.session_ttl = timedelta(hours=session_ttl_hours)
        self.reset_ttl = timedelta(hours=reset_ttl_hours)

    def issue_identity_token(
        self,
        account_id: int,
        role: str,
        email: str,
        now: datetime | None = None,
    ) -> str:
        moment = now or utcnow()
        payload = {
            "sub": str(account_id),
            "role": role,
            "email": email,
            "iat": moment,
            "exp": moment + self.identity_ttl,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def decode_identity_token(self, token: str, now: datetime | None = None) -> IdentityClaims:
        """Verify signature and claims; ``exp`` is checked against ``now``."""
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["sub", "exp", "iat"], "verify_exp": False, "verify_iat": False},
            )
        except jwt.InvalidTokenError as exc:
            raise AuthenticationError("invalid_token") from exc
        try:
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError) as exc:
            raise AuthenticationError("invalid_token") from exc
        if (now or utcnow()) >= expires_at:
            raise AuthenticationError("token_expired")
        try:
            account_id = int(payload["sub"])
        except (TypeError, ValueError) as exc:
            raise AuthenticationError("invalid_token") from exc
        role = payload.get("role")
        email = payload.get("email")
        if not isinstance(role, str) or not isinstance(email, str):
            raise AuthenticationError("invalid_token")
        return IdentityClaims(
            account_id=account_id,
            role=role,
            email=email,
            expires_at=expires_at,
        )

    def issue_opaque_session_token(self, now: datetime | None = None) -> tuple[str, datetime]:
        moment = now or utcnow()
        return secrets.token_hex(TOKEN_BYTES), moment + self.session_ttl

    def issue_reset_token(self, now: datetime | None = None) -> ResetToken:
        moment = now or utcnow()
        token = secrets.token_hex(TOKEN_BYTES)
        return ResetToken(token=token, token_hash=hash_token(token), expires_at=moment + self.reset_ttl)
