from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING

from forum_auth.utils.timeutil import normalize_time

if TYPE_CHECKING:
    from forum_auth.models import Account


class LoginOutcome(str, Enum):
    FAILURE = "failure"
    SUCCESS = "success"


@dataclass(frozen=True)
class LockoutPolicy:
    max_failed_attempts: int = 5
    lockout_minutes: int = 30

    @property
    def window(self) -> timedelta:
        return timedelta(minutes=self.lockout_minutes)


def is_locked(account: "Account", now: datetime) -> bool:
    lock_until = normalize_time(account.lock_until)
    return lock_until is not None and now < lock_until


def minutes_remaining(account: "Account", now: datetime) -> int:
    lock_until = normalize_time(account.lock_until)
    if lock_until is None or now >= lock_until:
        return 0
    return math.ceil((lock_until - now).total_seconds() / 60)


def register_failure(
    attempts: int | None,
    lock_until: datetime | None,
    now: datetime,
    policy: LockoutPolicy,
) -> tuple[int, datetime | None]:
    """Counter and lock state after one more failed attempt.

    A lock that has already run out restarts the count, so the threshold
    always applies to failures since the last lock.
    """
    current_lock = normalize_time(lock_until)
    count = attempts or 0
    if current_lock is not None and current_lock <= now:
        count = 0
        current_lock = None
    count += 1
    if count >= policy.max_failed_attempts:
        current_lock = now + policy.window
    return count, current_lock
