from __future__ import annotations

from sqlalchemy import JSON, Column, DateTime, Integer, String, event, func

from .db import Base


class ImmutableLogMixin:
    @classmethod
    def __declare_last__(cls) -> None:
        event.listen(cls, "before_update", cls._deny_mutation)
        event.listen(cls, "before_delete", cls._deny_mutation)

    @staticmethod
    def _deny_mutation(mapper, connection, target) -> None:
        raise ValueError("Log entries are immutable")


class SecurityEvent(ImmutableLogMixin, Base):
    __tablename__ = "security_events"

    id = Column(Integer, primary_key=True)
    account_id = Column(Integer)
    actor_id = Column(Integer)
    action = Column(String(64), nullable=False)
    context = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
