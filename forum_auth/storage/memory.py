from __future__ import annotations

import copy
import threading
from datetime import datetime
from typing import Any, TypeVar

from forum_auth.auth.errors import ValidationError
from forum_auth.auth.lockout import LockoutPolicy, LoginOutcome, register_failure
from forum_auth.models import Account, OneTimeChallenge
from forum_auth.storage.base import check_fields
from forum_auth.utils.timeutil import utcnow

T = TypeVar("T", Account, OneTimeChallenge)


def _clone(obj: T) -> T:
    cls = type(obj)
    values = {column.key: copy.deepcopy(getattr(obj, column.key)) for column in cls.__table__.columns}
    return cls(**values)


class InMemoryAccountStore:
    """Thread-safe dict-backed store; callers always receive copies."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._accounts: dict[int, Account] = {}
        self._challenges: dict[str, OneTimeChallenge] = {}
        self._next_id = 1

    def get_by_id(self, account_id: int) -> Account | None:
        with self._lock:
            account = self._accounts.get(account_id)
            return _clone(account) if account else None

    def get_by_email(self, email: str) -> Account | None:
        return self._find(lambda a: a.email == email)

    def get_by_username(self, username: str) -> Account | None:
        return self._find(lambda a: a.username == username)

    def get_by_reset_token_hash(self, token_hash: str) -> Account | None:
        return self._find(lambda a: a.reset_token_hash is not None and a.reset_token_hash == token_hash)

    def create(self, account: Account) -> Account:
        with self._lock:
            for existing in self._accounts.values():
                if existing.email == account.email or existing.username == account.username:
                    raise ValidationError("account_exists")
            stored = _clone(account)
            stored.id = self._next_id
            self._next_id += 1
            now = utcnow()
            stored.role = stored.role or "User"
            stored.failed_login_attempts = stored.failed_login_attempts or 0
            stored.mfa_enabled = bool(stored.mfa_enabled)
            stored.is_banned = bool(stored.is_banned)
            stored.mfa_backup_codes = stored.mfa_backup_codes or []
            stored.password_history = stored.password_history or []
            stored.created_at = stored.created_at or now
            stored.updated_at = now
            self._accounts[stored.id] = stored
            return _clone(stored)

    def update(self, account_id: int, **fields: Any) -> Account | None:
        check_fields(fields)
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                return None
            for key, value in fields.items():
                setattr(account, key, copy.deepcopy(value))
            account.updated_at = utcnow()
            return _clone(account)

    def record_login_outcome(
        self,
        account_id: int,
        outcome: LoginOutcome,
        policy: LockoutPolicy,
        now: datetime,
        ip: str | None = None,
    ) -> Account | None:
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                return None
            if outcome == LoginOutcome.FAILURE:
                attempts, lock_until = register_failure(
                    account.failed_login_attempts, account.lock_until, now, policy
                )
                account.failed_login_attempts = attempts
                account.lock_until = lock_until
            else:
                account.failed_login_attempts = 0
                account.lock_until = None
                account.last_login = now
                if ip is not None:
                    account.last_login_ip = ip
            account.updated_at = utcnow()
            return _clone(account)

    def save_challenge(self, challenge: OneTimeChallenge) -> OneTimeChallenge:
        with self._lock:
            self._drop_challenges(challenge.account_id, challenge.purpose)
            stored = _clone(challenge)
            stored.created_at = stored.created_at or utcnow()
            self._challenges[stored.id] = stored
            return _clone(stored)

    def get_challenge(self, challenge_id: str) -> OneTimeChallenge | None:
        with self._lock:
            challenge = self._challenges.get(challenge_id)
            return _clone(challenge) if challenge else None

    def find_challenge(self, account_id: int, purpose: str) -> OneTimeChallenge | None:
        with self._lock:
            for challenge in self._challenges.values():
                if challenge.account_id == account_id and challenge.purpose == purpose:
                    return _clone(challenge)
            return None

    def consume_challenge(self, challenge_id: str) -> bool:
        with self._lock:
            return self._challenges.pop(challenge_id, None) is not None

    def delete_challenges(self, account_id: int, purpose: str | None = None) -> int:
        with self._lock:
            return self._drop_challenges(account_id, purpose)

    def _drop_challenges(self, account_id: int, purpose: str | None) -> int:
        doomed = [
            key
            for key, challenge in self._challenges.items()
            if challenge.account_id == account_id and (purpose is None or challenge.purpose == purpose)
        ]
        for key in doomed:
            del self._challenges[key]
        return len(doomed)

    def _find(self, predicate) -> Account | None:
        with self._lock:
            for account in self._accounts.values():
                if predicate(account):
                    return _clone(account)
            return None
