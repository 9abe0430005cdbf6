from __future__ import annotations

import hashlib
import hmac
import random
import secrets
from datetime import datetime, timedelta
from enum import Enum

OTP_LENGTH = 6
OTP_DIGITS = "0123456789"


class ChallengePurpose(str, Enum):
    LOGIN = "login_mfa"
    ENABLE_MFA = "mfa_enable"
    PASSWORD_RESET = "password_reset"

    @property
    def ttl(self) -> timedelta:
        return timedelta(minutes=CHALLENGE_TTL_MINUTES[self])


CHALLENGE_TTL_MINUTES = {
    ChallengePurpose.LOGIN: 10,
    ChallengePurpose.ENABLE_MFA: 10,
    ChallengePurpose.PASSWORD_RESET: 30,
}


def generate_otp(rng: random.Random | None = None, length: int = OTP_LENGTH) -> str:
    source = rng or secrets.SystemRandom()
    return "".join(source.choice(OTP_DIGITS) for _ in range(length))


def otp_expiry(purpose: ChallengePurpose, now: datetime) -> datetime:
    return now + purpose.ttl


def hash_code(code: str) -> str:
    return hashlib.sha256(code.encode("utf-8")).hexdigest()


def code_matches(code: str | None, code_hash: str | None) -> bool:
    if not code or not code_hash:
        return False
    return hmac.compare_digest(hash_code(str(code)), code_hash)
