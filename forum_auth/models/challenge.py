from __future__ import annotations

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, func

from .db import Base


class OneTimeChallenge(Base):
    __tablename__ = "one_time_challenges"
    __table_args__ = (UniqueConstraint("account_id", "purpose", name="uq_challenges_account_purpose"),)

    id = Column(String(64), primary_key=True)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    purpose = Column(String(32), nullable=False)
    code_hash = Column(String(64))
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
