from __future__ import annotations

import random
import re
import unittest
from datetime import datetime, timedelta, timezone

import pyotp
from sqlalchemy.pool import StaticPool

from forum_auth.auth import ChallengePurpose, MFAController, PasswordHasher
from forum_auth.auth.mfa import ChallengeStatus
from forum_auth.auth.otp import generate_otp, hash_code
from forum_auth.mail import EmailResult
from forum_auth.models import Account, Base
from forum_auth.storage import InMemoryAccountStore, SqlAccountStore, create_session_factory


class RecordingMailer:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.fail = False

    def send(self, to: str, subject: str, html_body: str, text_body: str | None = None) -> EmailResult:
        self.sent.append((to, subject, text_body or html_body))
        return EmailResult(success=not self.fail, error="SMTPException" if self.fail else None)

    def last_code(self) -> str:
        return re.search(r"\b(\d{6})\b", self.sent[-1][2]).group(1)


class MFAControllerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryAccountStore()
        self.mailer = RecordingMailer()
        self.mfa = MFAController(self.store, self.mailer, PasswordHasher(), rng=random.Random(11))
        self.account = self.store.create(
            Account(username="player_one", email="player@gameforum.net", password_hash="x")
        )
        self.now = datetime.now(timezone.utc)

    def test_otp_is_six_digits(self) -> None:
        for _ in range(50):
            self.assertRegex(generate_otp(), r"^\d{6}$")
        self.assertEqual(generate_otp(random.Random(5)), generate_otp(random.Random(5)))

    def test_challenge_lifetimes(self) -> None:
        self.assertEqual(ChallengePurpose.LOGIN.ttl, timedelta(minutes=10))
        self.assertEqual(ChallengePurpose.ENABLE_MFA.ttl, timedelta(minutes=10))
        self.assertEqual(ChallengePurpose.PASSWORD_RESET.ttl, timedelta(minutes=30))

    def test_issue_stores_only_a_hash(self) -> None:
        issued = self.mfa.issue(self.account, ChallengePurpose.LOGIN, self.now)
        self.assertTrue(issued.delivered)
        self.assertEqual(issued.expires_at, self.now + timedelta(minutes=10))
        code = self.mailer.last_code()
        stored = self.store.get_challenge(issued.challenge_id)
        self.assertEqual(stored.code_hash, hash_code(code))
        self.assertNotEqual(stored.code_hash, code)
        self.assertEqual(self.mailer.sent[-1][0], "player@gameforum.net")

    def test_valid_code_is_consumed(self) -> None:
        issued = self.mfa.issue(self.account, ChallengePurpose.LOGIN, self.now)
        code = self.mailer.last_code()
        first = self.mfa.check(ChallengePurpose.LOGIN, code, self.now, challenge_id=issued.challenge_id)
        self.assertTrue(first.valid)
        self.assertEqual(first.account_id, self.account.id)
        second = self.mfa.check(ChallengePurpose.LOGIN, code, self.now, challenge_id=issued.challenge_id)
        self.assertEqual(second.status, ChallengeStatus.EXPIRED)

    def test_wrong_code_leaves_challenge_pending(self) -> None:
        issued = self.mfa.issue(self.account, ChallengePurpose.LOGIN, self.now)
        code = self.mailer.last_code()
        wrong = "000000" if code != "000000" else "999999"
        result = self.mfa.check(ChallengePurpose.LOGIN, wrong, self.now, challenge_id=issued.challenge_id)
        self.assertEqual(result.status, ChallengeStatus.INVALID)
        self.assertIsNotNone(self.store.get_challenge(issued.challenge_id))
        self.assertEqual(self.mfa.check(ChallengePurpose.LOGIN, None, self.now, challenge_id=issued.challenge_id).status, ChallengeStatus.INVALID)

    def test_expiry_boundary(self) -> None:
        issued = self.mfa.issue(self.account, ChallengePurpose.LOGIN, self.now)
        code = self.mailer.last_code()
        almost = self.now + timedelta(minutes=10) - timedelta(seconds=1)
        peek = self.mfa.check(ChallengePurpose.LOGIN, code, almost, challenge_id=issued.challenge_id, consume=False)
        self.assertTrue(peek.valid)
        late = self.mfa.check(
            ChallengePurpose.LOGIN, code, self.now + timedelta(minutes=10), challenge_id=issued.challenge_id
        )
        self.assertEqual(late.status, ChallengeStatus.EXPIRED)
        self.assertIsNone(self.store.get_challenge(issued.challenge_id))

    def test_purposes_never_cross(self) -> None:
        issued = self.mfa.issue(self.account, ChallengePurpose.LOGIN, self.now)
        code = self.mailer.last_code()
        by_id = self.mfa.check(ChallengePurpose.PASSWORD_RESET, code, self.now, challenge_id=issued.challenge_id)
        by_account = self.mfa.check(ChallengePurpose.PASSWORD_RESET, code, self.now, account_id=self.account.id)
        self.assertEqual(by_id.status, ChallengeStatus.EXPIRED)
        self.assertEqual(by_account.status, ChallengeStatus.EXPIRED)
        self.assertIsNotNone(self.store.get_challenge(issued.challenge_id))

    def test_reissue_replaces_previous_code(self) -> None:
        first = self.mfa.issue(self.account, ChallengePurpose.PASSWORD_RESET, self.now)
        self.mfa.issue(self.account, ChallengePurpose.PASSWORD_RESET, self.now)
        self.assertIsNone(self.store.get_challenge(first.challenge_id))
        latest = self.mailer.last_code()
        result = self.mfa.check(ChallengePurpose.PASSWORD_RESET, latest, self.now, account_id=self.account.id)
        self.assertTrue(result.valid)

    def test_failed_delivery_is_reported(self) -> None:
        self.mailer.fail = True
        issued = self.mfa.issue(self.account, ChallengePurpose.ENABLE_MFA, self.now)
        self.assertFalse(issued.delivered)

    def test_confirm_enable_activates_email_mfa(self) -> None:
        self.mfa.request_enable(self.account, self.now)
        result, backup_codes = self.mfa.confirm_enable(self.account, self.mailer.last_code(), self.now)
        self.assertTrue(result.valid)
        self.assertEqual(len(backup_codes), 5)
        stored = self.store.get_by_id(self.account.id)
        self.assertTrue(stored.mfa_enabled)
        self.assertEqual(stored.mfa_method, "email")
        self.assertTrue(self.mfa.consume_backup_code(stored, backup_codes[2]))
        stored = self.store.get_by_id(self.account.id)
        self.assertFalse(self.mfa.consume_backup_code(stored, backup_codes[2]))
        self.assertEqual(len(stored.mfa_backup_codes), 4)

    def test_totp_login_challenge_sends_no_email(self) -> None:
        secret, uri = self.mfa.begin_totp_setup(self.account)
        self.assertIn("GameForum", uri)
        totp = pyotp.TOTP(secret)
        account = self.store.get_by_id(self.account.id)
        self.assertIsNotNone(self.mfa.confirm_totp_enable(account, totp.at(self.now), self.now))
        account = self.store.get_by_id(self.account.id)

        issued = self.mfa.issue(account, ChallengePurpose.LOGIN, self.now)
        self.assertEqual(self.mailer.sent, [])
        self.assertIsNone(self.store.get_challenge(issued.challenge_id).code_hash)
        later = self.now + timedelta(seconds=30)
        result = self.mfa.check(ChallengePurpose.LOGIN, totp.at(later), later, challenge_id=issued.challenge_id)
        self.assertTrue(result.valid)

    def test_totp_code_is_accepted_once(self) -> None:
        secret, _ = self.mfa.begin_totp_setup(self.account)
        totp = pyotp.TOTP(secret)
        account = self.store.get_by_id(self.account.id)
        enrolled_at = self.now - timedelta(seconds=60)
        self.mfa.confirm_totp_enable(account, totp.at(enrolled_at), enrolled_at)
        account = self.store.get_by_id(self.account.id)

        code = totp.at(self.now)
        first = self.mfa.issue(account, ChallengePurpose.LOGIN, self.now)
        self.assertTrue(self.mfa.check(ChallengePurpose.LOGIN, code, self.now, challenge_id=first.challenge_id).valid)
        self.assertEqual(self.store.get_by_id(self.account.id).mfa_totp_last_step, totp.timecode(self.now))

        second = self.mfa.issue(account, ChallengePurpose.LOGIN, self.now)
        for offset in (0, 20, 45):
            moment = self.now + timedelta(seconds=offset)
            result = self.mfa.check(ChallengePurpose.LOGIN, code, moment, challenge_id=second.challenge_id)
            self.assertEqual(result.status, ChallengeStatus.INVALID)
        # an earlier code inside the drift window is refused as well
        earlier = totp.at(self.now - timedelta(seconds=30))
        result = self.mfa.check(ChallengePurpose.LOGIN, earlier, self.now, challenge_id=second.challenge_id)
        self.assertEqual(result.status, ChallengeStatus.INVALID)

        next_code = totp.at(self.now + timedelta(seconds=30))
        result = self.mfa.check(ChallengePurpose.LOGIN, next_code, self.now, challenge_id=second.challenge_id)
        self.assertTrue(result.valid)

    def test_issue_reports_an_aware_expiry_from_sql_storage(self) -> None:
        session_factory = create_session_factory(
            "sqlite+pysqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        engine = session_factory.kw["bind"]
        self.addCleanup(engine.dispose)
        Base.metadata.create_all(engine)
        store = SqlAccountStore(session_factory)
        mfa = MFAController(store, self.mailer, PasswordHasher(), rng=random.Random(11))
        account = store.create(
            Account(username="player_two", email="second@gameforum.net", password_hash="x")
        )

        issued = mfa.issue(account, ChallengePurpose.LOGIN, self.now)
        self.assertIsNotNone(issued.expires_at.tzinfo)
        self.assertEqual(issued.expires_at, self.now + timedelta(minutes=10))

    def test_disable_clears_state_and_pending_challenges(self) -> None:
        self.mfa.request_enable(self.account, self.now)
        self.mfa.confirm_enable(self.account, self.mailer.last_code(), self.now)
        account = self.store.get_by_id(self.account.id)
        issued = self.mfa.issue(account, ChallengePurpose.LOGIN, self.now)
        self.mfa.disable(account)
        stored = self.store.get_by_id(self.account.id)
        self.assertFalse(stored.mfa_enabled)
        self.assertIsNone(stored.mfa_secret)
        self.assertEqual(stored.mfa_backup_codes, [])
        self.assertIsNone(self.store.get_challenge(issued.challenge_id))


if __name__ == "__main__":
    unittest.main()
