from __future__ import annotations

import random
import secrets
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Protocol

from forum_auth.auth.errors import (
    AuthenticationError,
    AuthorizationError,
    DependencyError,
    ExpiryError,
    LockoutError,
    NotFoundError,
    ReuseError,
    ValidationError,
)
from forum_auth.auth.lockout import LockoutPolicy, LoginOutcome, is_locked, minutes_remaining
from forum_auth.auth.mfa import MFA_METHOD_EMAIL, MFA_METHOD_TOTP, ChallengeStatus, MFAController
from forum_auth.auth.otp import ChallengePurpose
from forum_auth.auth.outcomes import (
    AccountBanned,
    AccountLocked,
    Authenticated,
    ChallengeExpired,
    CurrentPasswordWrong,
    InvalidCode,
    InvalidCredentials,
    InvalidResetToken,
    MFAAlreadyEnabled,
    MFADisabled,
    MFAEnabled,
    MFAEnableRequested,
    MFARequired,
    Outcome,
    PasswordChanged,
    PasswordExpired,
    PasswordMismatch,
    PasswordReused,
    PasswordTooWeak,
    RegistrationAccepted,
    RegistrationInvalid,
    ResetRequested,
    TotpSetup,
    UsernameTaken,
)
from forum_auth.auth.passwords import (
    PASSWORD_HISTORY_SIZE,
    PASSWORD_MAX_AGE_DAYS,
    PasswordHasher,
    check_reuse,
    compute_expiry,
    is_expired,
    push_history,
)
from forum_auth.auth.tokens import TokenIssuer, hash_token
from forum_auth.logging import get_logger, log_security_event
from forum_auth.mail import messages
from forum_auth.models import ROLES, Account
from forum_auth.utils.timeutil import normalize_time, utcnow
from forum_auth.utils.validation import (
    is_strong_password,
    is_valid_email,
    normalize_email,
    validate_registration,
)

if TYPE_CHECKING:
    from forum_auth.mail import EmailSender
    from forum_auth.storage import AccountStore

logger = get_logger("auth.service")

ADMIN_LOCK_DAYS = 7
BAN_ROLES = ("Admin", "Moderator")
ADMIN_ROLES = ("Admin",)


class AuditSink(Protocol):
    def record(
        self,
        action: str,
        account_id: int | None = None,
        actor_id: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> Any:
        ...


class AuthService:
    def __init__(
        self,
        store: "AccountStore",
        mailer: "EmailSender",
        tokens: TokenIssuer,
        hasher: PasswordHasher | None = None,
        policy: LockoutPolicy | None = None,
        mfa: MFAController | None = None,
        audit: AuditSink | None = None,
        rng: random.Random | None = None,
        password_max_age_days: int = PASSWORD_MAX_AGE_DAYS,
        password_history_size: int = PASSWORD_HISTORY_SIZE,
        frontend_url: str = "http://localhost:3001",
        otp_issuer_name: str = "GameForum",
    ) -> None:
        self.store = store
        self.mailer = mailer
        self.tokens = tokens
        self.hasher = hasher or PasswordHasher()
        self.policy = policy or LockoutPolicy()
        self.mfa = mfa or MFAController(store, mailer, self.hasher, rng=rng, issuer_name=otp_issuer_name)
        self.audit = audit
        self.password_max_age_days = password_max_age_days
        self.password_history_size = password_history_size
        self.frontend_url = frontend_url.rstrip("/")
        # verified against when the email is unknown so both paths cost one hash check
        self._dummy_hash = self.hasher.hash(secrets.token_hex(16))

    # registration and login

    def register(
        self,
        username: str,
        email: str,
        password: str,
        confirm_password: str | None = None,
        now: datetime | None = None,
    ) -> Outcome:
        moment = now or utcnow()
        result = validate_registration(username, email, password, confirm_password)
        if not result.passed:
            return RegistrationInvalid(errors=result.errors)
        normalized_email = normalize_email(email)
        if self.store.get_by_username(username):
            return UsernameTaken()
        existing = self.store.get_by_email(normalized_email)
        if existing:
            self._notify(existing, messages.duplicate_registration_message(existing.username))
            self._audit("REGISTRATION_DUPLICATE_EMAIL", existing.id)
            return RegistrationAccepted()

        password_hash = self.hasher.hash(password)
        account = Account(
            username=username,
            email=normalized_email,
            password_hash=password_hash,
            role="User",
            failed_login_attempts=0,
            mfa_enabled=False,
            mfa_backup_codes=[],
            is_banned=False,
            password_history=push_history([], password_hash, moment, self.password_history_size),
            password_expires_at=compute_expiry(moment, self.password_max_age_days),
            last_password_change=moment,
        )
        try:
            created = self.store.create(account)
        except ValidationError:
            # lost a uniqueness race; answer like any other duplicate
            return RegistrationAccepted()
        self._notify(created, messages.welcome_message(created.username))
        self._audit("REGISTERED", created.id)
        return RegistrationAccepted()

    def authenticate(
        self,
        email: str,
        password: str,
        ip: str | None = None,
        now: datetime | None = None,
    ) -> Outcome:
        moment = now or utcnow()
        if not is_valid_email(email) or not password or not isinstance(password, str):
            return InvalidCredentials()
        account = self.store.get_by_email(normalize_email(email))
        if account is None:
            self.hasher.verify(password, self._dummy_hash)
            return InvalidCredentials()

        if is_locked(account, moment):
            return AccountLocked(minutes_remaining=minutes_remaining(account, moment))

        if not self.hasher.verify(password, account.password_hash):
            self._record_failure(account, moment, ip=ip, factor="password")
            return InvalidCredentials()

        if account.is_banned:
            return AccountBanned(reason=account.ban_reason)

        if is_expired(account, moment):
            return PasswordExpired()

        if account.mfa_enabled:
            # counters stay until the second factor is proven
            issued = self.mfa.issue(account, ChallengePurpose.LOGIN, moment)
            self._audit("MFA_CHALLENGE_ISSUED", account.id, delivered=issued.delivered)
            return MFARequired(
                challenge_id=issued.challenge_id,
                expires_at=issued.expires_at,
                method=account.mfa_method or MFA_METHOD_EMAIL,
                delivered=issued.delivered,
            )

        return self._complete_login(account, moment, ip)

    def verify_mfa(
        self,
        challenge_id: str,
        code: str | None = None,
        recovery_code: str | None = None,
        ip: str | None = None,
        now: datetime | None = None,
    ) -> Outcome:
        moment = now or utcnow()
        challenge = self.store.get_challenge(challenge_id) if challenge_id else None
        if challenge is None or challenge.purpose != ChallengePurpose.LOGIN.value:
            return ChallengeExpired()
        account = self.store.get_by_id(challenge.account_id)
        if account is None or not account.mfa_enabled:
            self.mfa.consume(challenge.id)
            return ChallengeExpired()
        if is_locked(account, moment):
            return AccountLocked(minutes_remaining=minutes_remaining(account, moment))
        if account.is_banned:
            return AccountBanned(reason=account.ban_reason)

        if recovery_code:
            if moment >= normalize_time(challenge.expires_at):
                self.mfa.consume(challenge.id)
                return ChallengeExpired()
            if not self.mfa.consume_backup_code(account, recovery_code):
                self._record_failure(account, moment, ip=ip, factor="recovery_code")
                return InvalidCode()
            if not self.mfa.consume(challenge.id):
                return ChallengeExpired()
        else:
            result = self.mfa.check(ChallengePurpose.LOGIN, code, moment, challenge_id=challenge.id)
            if result.status == ChallengeStatus.EXPIRED:
                return ChallengeExpired()
            if result.status == ChallengeStatus.INVALID:
                self._record_failure(account, moment, ip=ip, factor="mfa_code")
                return InvalidCode()

        self._audit("MFA_VERIFIED", account.id, recovery_code=bool(recovery_code))
        return self._complete_login(account, moment, ip)

    def authenticate_request(self, authorization: str | None, now: datetime | None = None) -> Account:
        """Resolve an ``Authorization: Bearer`` header to a fresh account record."""
        moment = now or utcnow()
        if not authorization or not authorization.startswith("Bearer "):
            raise AuthenticationError()
        token = authorization[len("Bearer "):].strip()
        if not token:
            raise AuthenticationError()
        try:
            claims = self.tokens.decode_identity_token(token, moment)
        except AuthenticationError as exc:
            raise AuthenticationError() from exc
        account = self.store.get_by_id(claims.account_id)
        if account is None:
            raise AuthenticationError()
        if account.is_banned:
            raise AuthorizationError("account_banned")
        if is_locked(account, moment):
            raise LockoutError(minutes_remaining=minutes_remaining(account, moment))
        if is_expired(account, moment):
            raise ExpiryError("password_expired")
        return account

    # password lifecycle

    def change_password(
        self,
        account_id: int,
        current_password: str,
        new_password: str,
        confirm_password: str | None = None,
        now: datetime | None = None,
    ) -> Outcome:
        moment = now or utcnow()
        account = self._require_account(account_id)
        if not current_password or not self.hasher.verify(current_password, account.password_hash):
            self._audit("PASSWORD_CHANGE_REJECTED", account.id)
            return CurrentPasswordWrong()
        if confirm_password is not None and confirm_password != new_password:
            return PasswordMismatch()
        try:
            self._ensure_acceptable(account, new_password)
        except ReuseError:
            return PasswordReused()
        except ValidationError:
            return PasswordTooWeak()
        expires_at = self._store_password(account, new_password, moment)
        self._notify(account, messages.password_changed_message(account.username))
        self._audit("PASSWORD_CHANGED", account.id)
        return PasswordChanged(expires_at=expires_at)

    def request_password_reset(self, email: str, now: datetime | None = None) -> Outcome:
        moment = now or utcnow()
        account = self._find_for_reset(email)
        if account is not None:
            reset = self.tokens.issue_reset_token(moment)
            self.store.update(
                account.id,
                reset_token_hash=reset.token_hash,
                reset_token_expires_at=reset.expires_at,
            )
            reset_url = f"{self.frontend_url}/password-reset?token={reset.token}"
            self._notify(account, messages.password_reset_message(reset_url, account.username))
            self._audit("PASSWORD_RESET_REQUESTED", account.id, method="link")
        return ResetRequested()

    def reset_password(self, token: str, new_password: str, now: datetime | None = None) -> Outcome:
        moment = now or utcnow()
        if not is_strong_password(new_password):
            return PasswordTooWeak()
        if not token or not isinstance(token, str):
            return InvalidResetToken()
        account = self.store.get_by_reset_token_hash(hash_token(token))
        if account is None:
            return InvalidResetToken()
        expires_at = normalize_time(account.reset_token_expires_at)
        if expires_at is None or moment >= expires_at:
            self.store.update(account.id, reset_token_hash=None, reset_token_expires_at=None)
            return InvalidResetToken()
        try:
            self._ensure_acceptable(account, new_password)
        except ReuseError:
            return PasswordReused()
        password_expires_at = self._store_password(
            account,
            new_password,
            moment,
            reset_token_hash=None,
            reset_token_expires_at=None,
            failed_login_attempts=0,
            lock_until=None,
        )
        self._audit("PASSWORD_RESET_COMPLETED", account.id, method="link")
        return PasswordChanged(expires_at=password_expires_at)

    def request_password_reset_code(self, email: str, now: datetime | None = None) -> Outcome:
        moment = now or utcnow()
        account = self._find_for_reset(email)
        if account is not None:
            issued = self.mfa.issue(account, ChallengePurpose.PASSWORD_RESET, moment)
            self._audit("PASSWORD_RESET_REQUESTED", account.id, method="code", delivered=issued.delivered)
        return ResetRequested()

    def reset_password_with_code(
        self,
        email: str,
        code: str,
        new_password: str,
        now: datetime | None = None,
    ) -> Outcome:
        moment = now or utcnow()
        if not is_strong_password(new_password):
            return PasswordTooWeak()
        account = self._find_for_reset(email)
        if account is None:
            return ChallengeExpired()
        result = self.mfa.check(
            ChallengePurpose.PASSWORD_RESET, code, moment, account_id=account.id, consume=False
        )
        if result.status == ChallengeStatus.EXPIRED:
            return ChallengeExpired()
        if result.status == ChallengeStatus.INVALID:
            self._record_failure(account, moment, factor="reset_code", purpose=ChallengePurpose.PASSWORD_RESET)
            return InvalidCode()
        # reuse is only reported once the code is proven
        try:
            self._ensure_acceptable(account, new_password)
        except ReuseError:
            return PasswordReused()
        if not self.mfa.consume(result.challenge_id):
            return ChallengeExpired()
        password_expires_at = self._store_password(
            account,
            new_password,
            moment,
            failed_login_attempts=0,
            lock_until=None,
        )
        self._audit("PASSWORD_RESET_COMPLETED", account.id, method="code")
        return PasswordChanged(expires_at=password_expires_at)

    # MFA management

    def request_mfa_enable(self, account_id: int, now: datetime | None = None) -> Outcome:
        account = self._require_account(account_id)
        if account.mfa_enabled:
            return MFAAlreadyEnabled()
        issued = self.mfa.request_enable(account, now or utcnow())
        self._audit("MFA_ENABLE_REQUESTED", account.id, delivered=issued.delivered)
        return MFAEnableRequested(expires_at=issued.expires_at, delivered=issued.delivered)

    def confirm_mfa_enable(self, account_id: int, code: str, now: datetime | None = None) -> Outcome:
        account = self._require_account(account_id)
        if account.mfa_enabled:
            return MFAAlreadyEnabled()
        result, backup_codes = self.mfa.confirm_enable(account, code, now or utcnow())
        if result.status == ChallengeStatus.EXPIRED:
            return ChallengeExpired()
        if result.status == ChallengeStatus.INVALID:
            return InvalidCode()
        self._audit("MFA_ENABLED", account.id, method=MFA_METHOD_EMAIL)
        return MFAEnabled(method=MFA_METHOD_EMAIL, backup_codes=tuple(backup_codes))

    def begin_totp_setup(self, account_id: int) -> Outcome:
        account = self._require_account(account_id)
        if account.mfa_enabled:
            return MFAAlreadyEnabled()
        secret, uri = self.mfa.begin_totp_setup(account)
        return TotpSetup(secret=secret, provisioning_uri=uri)

    def confirm_totp_enable(self, account_id: int, code: str, now: datetime | None = None) -> Outcome:
        account = self._require_account(account_id)
        if account.mfa_enabled:
            return MFAAlreadyEnabled()
        backup_codes = self.mfa.confirm_totp_enable(account, code, now or utcnow())
        if backup_codes is None:
            return InvalidCode()
        self._audit("MFA_ENABLED", account.id, method=MFA_METHOD_TOTP)
        return MFAEnabled(method=MFA_METHOD_TOTP, backup_codes=tuple(backup_codes))

    def disable_mfa(self, account_id: int) -> Outcome:
        account = self._require_account(account_id)
        self.mfa.disable(account)
        self._audit("MFA_DISABLED", account.id)
        return MFADisabled()

    # administration

    def ban_account(self, actor: Account, target_id: int, reason: str | None = None, now: datetime | None = None) -> Account:
        moment = now or utcnow()
        self._require_role(actor, BAN_ROLES)
        target = self._require_account(target_id)
        if target.id == actor.id:
            raise ValidationError("cannot_ban_self")
        if target.role == "Admin" and actor.role != "Admin":
            raise AuthorizationError()
        updated = self.store.update(
            target.id,
            is_banned=True,
            ban_reason=reason,
            banned_at=moment,
            banned_by=actor.id,
            session_token=None,
            session_expires_at=None,
        )
        self.store.delete_challenges(target.id)
        self._audit("USER_BANNED", target.id, actor_id=actor.id, reason=reason)
        return updated

    def unban_account(self, actor: Account, target_id: int) -> Account:
        self._require_role(actor, BAN_ROLES)
        target = self._require_account(target_id)
        updated = self.store.update(
            target.id,
            is_banned=False,
            ban_reason=None,
            banned_at=None,
            banned_by=None,
            failed_login_attempts=0,
            lock_until=None,
        )
        self._audit("USER_UNBANNED", target.id, actor_id=actor.id)
        return updated

    def set_role(self, actor: Account, target_id: int, role: str) -> Account:
        self._require_role(actor, ADMIN_ROLES)
        if role not in ROLES:
            raise ValidationError("invalid_role")
        target = self._require_account(target_id)
        updated = self.store.update(target.id, role=role)
        self._audit("USER_ROLE_CHANGED", target.id, actor_id=actor.id, role=role)
        return updated

    def lock_account(
        self,
        actor: Account,
        target_id: int,
        days: int = ADMIN_LOCK_DAYS,
        now: datetime | None = None,
    ) -> Account:
        moment = now or utcnow()
        self._require_role(actor, ADMIN_ROLES)
        if days <= 0:
            raise ValidationError("invalid_lock_duration")
        target = self._require_account(target_id)
        updated = self.store.update(target.id, lock_until=moment + timedelta(days=days))
        self._audit("ADMIN_LOCKED_USER", target.id, actor_id=actor.id, days=days)
        return updated

    def unlock_account(self, actor: Account, target_id: int) -> Account:
        self._require_role(actor, ADMIN_ROLES)
        target = self._require_account(target_id)
        updated = self.store.update(target.id, failed_login_attempts=0, lock_until=None)
        self._audit("ADMIN_UNLOCKED_USER", target.id, actor_id=actor.id)
        return updated

    # internals

    def _complete_login(self, account: Account, moment: datetime, ip: str | None) -> Authenticated:
        self.store.record_login_outcome(account.id, LoginOutcome.SUCCESS, self.policy, moment, ip=ip)
        session_token, session_expires_at = self.tokens.issue_opaque_session_token(moment)
        self.store.update(account.id, session_token=session_token, session_expires_at=session_expires_at)
        identity_token = self.tokens.issue_identity_token(account.id, account.role, account.email, moment)
        self._audit("LOGIN", account.id, ip=ip)
        return Authenticated(
            identity_token=identity_token,
            session_token=session_token,
            session_expires_at=session_expires_at,
            account_id=account.id,
        )

    def _record_failure(
        self,
        account: Account,
        moment: datetime,
        ip: str | None = None,
        factor: str = "password",
        purpose: ChallengePurpose = ChallengePurpose.LOGIN,
    ) -> None:
        updated = self.store.record_login_outcome(account.id, LoginOutcome.FAILURE, self.policy, moment)
        self._audit("LOGIN_FAILED", account.id, ip=ip, factor=factor)
        if updated is not None and is_locked(updated, moment):
            self.store.delete_challenges(account.id, purpose.value)
            if not is_locked(account, moment):
                self._audit(
                    "ACCOUNT_LOCKED",
                    account.id,
                    attempts=updated.failed_login_attempts,
                    minutes=self.policy.lockout_minutes,
                )

    def _ensure_acceptable(self, account: Account, new_password: str) -> None:
        if not is_strong_password(new_password):
            raise ValidationError("password_too_weak")
        if check_reuse(new_password, account.password_history, self.hasher, self.password_history_size):
            raise ReuseError()

    def _store_password(self, account: Account, new_password: str, moment: datetime, **extra: Any) -> datetime:
        new_hash = self.hasher.hash(new_password)
        expires_at = compute_expiry(moment, self.password_max_age_days)
        self.store.update(
            account.id,
            password_hash=new_hash,
            password_history=push_history(account.password_history, new_hash, moment, self.password_history_size),
            last_password_change=moment,
            password_expires_at=expires_at,
            **extra,
        )
        return expires_at

    def _find_for_reset(self, email: str) -> Account | None:
        if not is_valid_email(email):
            return None
        account = self.store.get_by_email(normalize_email(email))
        if account is None or account.is_banned:
            return None
        return account

    def _require_account(self, account_id: int) -> Account:
        account = self.store.get_by_id(account_id)
        if account is None:
            raise NotFoundError("account_not_found")
        return account

    def _require_role(self, actor: Account, roles: tuple[str, ...]) -> None:
        if actor is None or actor.role not in roles:
            raise AuthorizationError()

    def _notify(self, account: Account, message: messages.EmailMessage) -> None:
        result = self.mailer.send(account.email, message.subject, message.html_body, message.text_body)
        if not result.success:
            logger.warning("Notification email not delivered account_id=%s subject=%s", account.id, message.subject)

    def _audit(self, action: str, account_id: int | None, actor_id: int | None = None, **context: Any) -> None:
        log_security_event(action, account_id, actor_id, **context)
        if self.audit is None:
            return
        try:
            self.audit.record(action, account_id=account_id, actor_id=actor_id, context=context)
        except DependencyError:
            logger.error("Audit trail write failed action=%s account_id=%s", action, account_id)
