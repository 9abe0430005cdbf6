from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from forum_auth.auth.lockout import LockoutPolicy, LoginOutcome
from forum_auth.models import Account, OneTimeChallenge


class AccountStore(Protocol):
    """Persistence boundary for accounts and their pending challenges.

    Implementations must apply ``record_login_outcome`` and
    ``consume_challenge`` atomically per account/challenge.
    """

    def get_by_id(self, account_id: int) -> Account | None:
        ...

    def get_by_email(self, email: str) -> Account | None:
        ...

    def get_by_username(self, username: str) -> Account | None:
        ...

    def get_by_reset_token_hash(self, token_hash: str) -> Account | None:
        ...

    def create(self, account: Account) -> Account:
        ...

    def update(self, account_id: int, **fields: Any) -> Account | None:
        ...

    def record_login_outcome(
        self,
        account_id: int,
        outcome: LoginOutcome,
        policy: LockoutPolicy,
        now: datetime,
        ip: str | None = None,
    ) -> Account | None:
        ...

    def save_challenge(self, challenge: OneTimeChallenge) -> OneTimeChallenge:
        ...

    def get_challenge(self, challenge_id: str) -> OneTimeChallenge | None:
        ...

    def find_challenge(self, account_id: int, purpose: str) -> OneTimeChallenge | None:
        ...

    def consume_challenge(self, challenge_id: str) -> bool:
        ...

    def delete_challenges(self, account_id: int, purpose: str | None = None) -> int:
        ...


ACCOUNT_FIELDS = frozenset(column.key for column in Account.__table__.columns)


def check_fields(fields: dict[str, Any]) -> None:
    unknown = set(fields) - ACCOUNT_FIELDS
    if unknown:
        raise ValueError(f"Unknown account fields: {', '.join(sorted(unknown))}")
    if "id" in fields:
        raise ValueError("Account id cannot be updated")
