from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator

from sqlalchemy import and_, case, create_engine, delete, func, literal, null, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from forum_auth.auth.errors import DependencyError, ValidationError
from forum_auth.auth.lockout import LockoutPolicy, LoginOutcome
from forum_auth.logging import get_logger
from forum_auth.models import Account, OneTimeChallenge
from forum_auth.storage.base import check_fields

logger = get_logger("storage.sql")


def create_session_factory(database_url: str, **engine_kwargs: Any) -> sessionmaker:
    engine = create_engine(database_url, future=True, pool_pre_ping=True, **engine_kwargs)
    return sessionmaker(bind=engine, expire_on_commit=False, future=True)


class SqlAccountStore:
    def __init__(self, session_factory: sessionmaker) -> None:
        self.session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self.session_factory()
        try:
            yield session
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("Account storage failure: %s", exc.__class__.__name__)
            raise DependencyError() from exc
        finally:
            session.close()

    def get_by_id(self, account_id: int) -> Account | None:
        with self._session() as session:
            return session.get(Account, account_id)

    def get_by_email(self, email: str) -> Account | None:
        with self._session() as session:
            return session.query(Account).filter_by(email=email).first()

    def get_by_username(self, username: str) -> Account | None:
        with self._session() as session:
            return session.query(Account).filter_by(username=username).first()

    def get_by_reset_token_hash(self, token_hash: str) -> Account | None:
        with self._session() as session:
            return session.query(Account).filter_by(reset_token_hash=token_hash).first()

    def create(self, account: Account) -> Account:
        with self._session() as session:
            session.add(account)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ValidationError("account_exists") from exc
            session.refresh(account)
            return account

    def update(self, account_id: int, **fields: Any) -> Account | None:
        check_fields(fields)
        with self._session() as session:
            result = session.execute(update(Account).where(Account.id == account_id).values(**fields))
            session.commit()
            if result.rowcount == 0:
                return None
            return session.get(Account, account_id)

    def record_login_outcome(
        self,
        account_id: int,
        outcome: LoginOutcome,
        policy: LockoutPolicy,
        now: datetime,
        ip: str | None = None,
    ) -> Account | None:
        if outcome == LoginOutcome.FAILURE:
            values = self._failure_values(policy, now)
        else:
            values = {"failed_login_attempts": 0, "lock_until": None, "last_login": now}
            if ip is not None:
                values["last_login_ip"] = ip
        with self._session() as session:
            result = session.execute(update(Account).where(Account.id == account_id).values(**values))
            session.commit()
            if result.rowcount == 0:
                return None
            return session.get(Account, account_id)

    def _failure_values(self, policy: LockoutPolicy, now: datetime) -> dict[str, Any]:
        # single UPDATE; every column reference reads the pre-update row
        stale_lock = and_(Account.lock_until.is_not(None), Account.lock_until <= now)
        attempts = case((stale_lock, 0), else_=func.coalesce(Account.failed_login_attempts, 0)) + 1
        lock_value = literal(now + policy.window, type_=Account.lock_until.type)
        lock_until = case(
            (attempts >= policy.max_failed_attempts, lock_value),
            (stale_lock, null()),
            else_=Account.lock_until,
        )
        return {"failed_login_attempts": attempts, "lock_until": lock_until}

    def save_challenge(self, challenge: OneTimeChallenge) -> OneTimeChallenge:
        with self._session() as session:
            session.execute(
                delete(OneTimeChallenge).where(
                    OneTimeChallenge.account_id == challenge.account_id,
                    OneTimeChallenge.purpose == challenge.purpose,
                )
            )
            session.add(challenge)
            session.commit()
            session.refresh(challenge)
            return challenge

    def get_challenge(self, challenge_id: str) -> OneTimeChallenge | None:
        with self._session() as session:
            return session.get(OneTimeChallenge, challenge_id)

    def find_challenge(self, account_id: int, purpose: str) -> OneTimeChallenge | None:
        with self._session() as session:
            return session.query(OneTimeChallenge).filter_by(account_id=account_id, purpose=purpose).first()

    def consume_challenge(self, challenge_id: str) -> bool:
        with self._session() as session:
            result = session.execute(delete(OneTimeChallenge).where(OneTimeChallenge.id == challenge_id))
            session.commit()
            return result.rowcount == 1

    def delete_challenges(self, account_id: int, purpose: str | None = None) -> int:
        with self._session() as session:
            stmt = delete(OneTimeChallenge).where(OneTimeChallenge.account_id == account_id)
            if purpose is not None:
                stmt = stmt.where(OneTimeChallenge.purpose == purpose)
            result = session.execute(stmt)
            session.commit()
            return result.rowcount
