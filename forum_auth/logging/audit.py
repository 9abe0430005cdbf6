from __future__ import annotations

import json
import logging
from typing import Any, Callable, Mapping

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from forum_auth.auth.errors import DependencyError
from forum_auth.models import SecurityEvent


class AuditLogger:
    def __init__(self, session_factory: Callable[[], Session], logger: logging.Logger | None = None) -> None:
        self.session_factory = session_factory
        self.logger = logger or logging.getLogger("forum_auth.audit")

    def record(
        self,
        action: str,
        account_id: int | None = None,
        actor_id: int | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> SecurityEvent:
        entry = SecurityEvent(
            account_id=account_id,
            actor_id=actor_id,
            action=action,
            context=dict(context) if context else {},
        )
        self._persist(entry)
        return entry

    def _persist(self, entry: SecurityEvent) -> None:
        session = self.session_factory()
        try:
            session.add(entry)
            try:
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise DependencyError() from exc
            session.refresh(entry)
            session.expunge(entry)
        finally:
            session.close()
        self._log_entry(entry)

    def _log_entry(self, entry: SecurityEvent) -> None:
        payload = {"category": "security_event"}
        for column in entry.__table__.columns:
            payload[column.name] = getattr(entry, column.name)
        self.logger.info(json.dumps(payload, default=str))
