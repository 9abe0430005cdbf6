from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Mapping, Sequence

from passlib.hash import argon2

from forum_auth.logging import get_logger
from forum_auth.utils.timeutil import normalize_time

if TYPE_CHECKING:
    from forum_auth.models import Account

logger = get_logger("auth.passwords")

PASSWORD_MAX_AGE_DAYS = 90
PASSWORD_HISTORY_SIZE = 5


class PasswordHasher:
    def __init__(self, handler: Any = None) -> None:
        self.handler = handler or argon2

    def hash(self, value: str) -> str:
        return self.handler.hash(value)

    def verify(self, value: str, stored_hash: str | None) -> bool:
        if not stored_hash:
            return False
        try:
            return bool(self.handler.verify(value, stored_hash))
        except (ValueError, TypeError):
            logger.warning("Unreadable password hash skipped during verification")
            return False


def compute_expiry(now: datetime, max_age_days: int = PASSWORD_MAX_AGE_DAYS) -> datetime:
    return now + timedelta(days=max_age_days)


def is_expired(account: "Account", now: datetime) -> bool:
    expires_at = normalize_time(account.password_expires_at)
    if expires_at is None:
        return False
    return now > expires_at


def check_reuse(
    candidate: str,
    history: Sequence[Mapping[str, Any]] | None,
    hasher: PasswordHasher,
    depth: int = PASSWORD_HISTORY_SIZE,
) -> bool:
    """True if the candidate matches one of the ``depth`` most recent hashes."""
    if not history:
        return False
    for entry in list(history)[:depth]:
        if hasher.verify(candidate, entry.get("hash")):
            return True
    return False


def push_history(
    history: Sequence[Mapping[str, Any]] | None,
    new_hash: str,
    now: datetime,
    depth: int = PASSWORD_HISTORY_SIZE,
) -> list[dict[str, Any]]:
    entries = [{"hash": new_hash, "changed_at": now.isoformat()}]
    entries.extend(dict(entry) for entry in (history or []))
    return entries[:depth]
