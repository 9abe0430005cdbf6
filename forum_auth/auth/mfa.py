from __future__ import annotations

import hmac
import random
import secrets
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

import pyotp

from forum_auth.auth.otp import ChallengePurpose, code_matches, generate_otp, hash_code, otp_expiry
from forum_auth.auth.passwords import PasswordHasher
from forum_auth.logging import get_logger, redact_email
from forum_auth.mail.messages import otp_message
from forum_auth.models import Account, OneTimeChallenge
from forum_auth.utils.timeutil import normalize_time, utcnow

if TYPE_CHECKING:
    from forum_auth.mail import EmailSender
    from forum_auth.storage import AccountStore

logger = get_logger("auth.mfa")

BACKUP_CODE_COUNT = 5
MFA_METHOD_EMAIL = "email"
MFA_METHOD_TOTP = "totp"


class ChallengeStatus(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    EXPIRED = "expired"


@dataclass(frozen=True)
class IssuedChallenge:
    challenge_id: str
    expires_at: datetime
    delivered: bool


@dataclass(frozen=True)
class ChallengeCheck:
    status: ChallengeStatus
    account_id: int | None = None
    challenge_id: str | None = None

    @property
    def valid(self) -> bool:
        return self.status == ChallengeStatus.VALID


class MFAController:
    """Issues and verifies one-time challenges for every purpose.

    A challenge is looked up either by its opaque id (login) or by
    ``(account_id, purpose)`` (enable and reset flows). Either way it is only
    ever compared against the purpose it was issued for, so a login code can
    never satisfy a password reset and vice versa.
    """

    def __init__(
        self,
        store: "AccountStore",
        mailer: "EmailSender",
        hasher: PasswordHasher,
        rng: random.Random | None = None,
        issuer_name: str = "GameForum",
    ) -> None:
        self.store = store
        self.mailer = mailer
        self.hasher = hasher
        self.rng = rng or secrets.SystemRandom()
        self.issuer_name = issuer_name

    def issue(self, account: Account, purpose: ChallengePurpose, now: datetime | None = None) -> IssuedChallenge:
        moment = now or utcnow()
        expires_at = otp_expiry(purpose, moment)
        code = None
        if not (purpose == ChallengePurpose.LOGIN and account.mfa_method == MFA_METHOD_TOTP):
            code = generate_otp(self.rng)
        challenge = OneTimeChallenge(
            id=secrets.token_urlsafe(24),
            account_id=account.id,
            purpose=purpose.value,
            code_hash=hash_code(code) if code else None,
            expires_at=expires_at,
            created_at=moment,
        )
        self.store.save_challenge(challenge)
        delivered = True
        if code is not None:
            delivered = self._deliver(account, purpose, code)
        return IssuedChallenge(challenge_id=challenge.id, expires_at=expires_at, delivered=delivered)

    def check(
        self,
        purpose: ChallengePurpose,
        code: str | None,
        now: datetime | None = None,
        challenge_id: str | None = None,
        account_id: int | None = None,
        consume: bool = True,
    ) -> ChallengeCheck:
        moment = now or utcnow()
        if challenge_id is not None:
            challenge = self.store.get_challenge(challenge_id)
        elif account_id is not None:
            challenge = self.store.find_challenge(account_id, purpose.value)
        else:
            raise ValueError("challenge_id or account_id is required")

        if challenge is None or challenge.purpose != purpose.value:
            return ChallengeCheck(ChallengeStatus.EXPIRED)

        if moment >= normalize_time(challenge.expires_at):
            self.store.consume_challenge(challenge.id)
            return ChallengeCheck(ChallengeStatus.EXPIRED, challenge.account_id, challenge.id)

        if challenge.code_hash is None:
            matched = self._verify_totp(challenge.account_id, code, moment)
        else:
            matched = code_matches(code, challenge.code_hash)
        if not matched:
            return ChallengeCheck(ChallengeStatus.INVALID, challenge.account_id, challenge.id)

        if consume and not self.store.consume_challenge(challenge.id):
            # lost a race with a concurrent verification of the same code
            return ChallengeCheck(ChallengeStatus.EXPIRED, challenge.account_id, challenge.id)
        return ChallengeCheck(ChallengeStatus.VALID, challenge.account_id, challenge.id)

    def consume(self, challenge_id: str) -> bool:
        return self.store.consume_challenge(challenge_id)

    def request_enable(self, account: Account, now: datetime | None = None) -> IssuedChallenge:
        return self.issue(account, ChallengePurpose.ENABLE_MFA, now)

    def confirm_enable(self, account: Account, code: str, now: datetime | None = None) -> tuple[ChallengeCheck, list[str]]:
        result = self.check(ChallengePurpose.ENABLE_MFA, code, now, account_id=account.id)
        if not result.valid:
            return result, []
        backup_codes = self._activate(account, MFA_METHOD_EMAIL, secret=None)
        return result, backup_codes

    def begin_totp_setup(self, account: Account) -> tuple[str, str]:
        secret = pyotp.random_base32()
        self.store.update(account.id, mfa_secret=secret, mfa_totp_last_step=None)
        uri = pyotp.TOTP(secret).provisioning_uri(name=account.email, issuer_name=self.issuer_name)
        return secret, uri

    def confirm_totp_enable(self, account: Account, code: str, now: datetime | None = None) -> list[str] | None:
        if not account.mfa_secret or not code:
            return None
        step = self._match_totp_step(account.mfa_secret, code, now or utcnow(), account.mfa_totp_last_step)
        if step is None:
            return None
        return self._activate(account, MFA_METHOD_TOTP, secret=account.mfa_secret, totp_step=step)

    def disable(self, account: Account) -> Account | None:
        updated = self.store.update(
            account.id,
            mfa_enabled=False,
            mfa_method=None,
            mfa_secret=None,
            mfa_totp_last_step=None,
            mfa_backup_codes=[],
        )
        self.store.delete_challenges(account.id, ChallengePurpose.LOGIN.value)
        self.store.delete_challenges(account.id, ChallengePurpose.ENABLE_MFA.value)
        return updated

    def consume_backup_code(self, account: Account, code: str) -> bool:
        remaining: list[str] = []
        matched = False
        for stored in account.mfa_backup_codes or []:
            if not matched and self.hasher.verify(code, stored):
                matched = True
                continue
            remaining.append(stored)
        if matched:
            self.store.update(account.id, mfa_backup_codes=remaining)
        return matched

    def _activate(self, account: Account, method: str, secret: str | None, totp_step: int | None = None) -> list[str]:
        backup_codes = self._generate_backup_codes()
        self.store.update(
            account.id,
            mfa_enabled=True,
            mfa_method=method,
            mfa_secret=secret,
            mfa_totp_last_step=totp_step,
            mfa_backup_codes=[self.hasher.hash(code) for code in backup_codes],
        )
        return backup_codes

    def _verify_totp(self, account_id: int, code: str | None, moment: datetime) -> bool:
        if not code:
            return False
        account = self.store.get_by_id(account_id)
        if account is None or not account.mfa_secret:
            return False
        step = self._match_totp_step(account.mfa_secret, code, moment, account.mfa_totp_last_step)
        if step is None:
            return False
        self.store.update(account.id, mfa_totp_last_step=step)
        return True

    def _match_totp_step(self, secret: str, code: str, moment: datetime, last_step: int | None) -> int | None:
        """Time step the code belongs to, within one step of drift.

        A step at or below the last accepted one is refused, so each code works once.
        """
        totp = pyotp.TOTP(secret)
        current = totp.timecode(moment)
        for step in (current - 1, current, current + 1):
            if last_step is not None and step <= last_step:
                continue
            if hmac.compare_digest(totp.generate_otp(step).encode(), str(code).encode("utf-8")):
                return step
        return None

    def _deliver(self, account: Account, purpose: ChallengePurpose, code: str) -> bool:
        minutes = int(purpose.ttl.total_seconds() // 60)
        message = otp_message(purpose.value, code, account.username, minutes)
        result = self.mailer.send(account.email, message.subject, message.html_body, message.text_body)
        if not result.success:
            logger.warning(
                "One-time code delivery failed purpose=%s to=%s", purpose.value, redact_email(account.email)
            )
        return result.success

    def _generate_backup_codes(self, count: int = BACKUP_CODE_COUNT) -> list[str]:
        return [secrets.token_hex(4) for _ in range(count)]
