from __future__ import annotations

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, UniqueConstraint, func

from .db import Base

ROLES = ("User", "Moderator", "Admin")


class Account(Base):
    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("email", name="uq_accounts_email"),
        UniqueConstraint("username", name="uq_accounts_username"),
    )

    id = Column(Integer, primary_key=True)
    username = Column(String(30), nullable=False)
    email = Column(String(255), nullable=False)
    password_hash = Column(String, nullable=False)
    role = Column(String(16), nullable=False, default="User")

    failed_login_attempts = Column(Integer, nullable=False, default=0)
    lock_until = Column(DateTime(timezone=True))

    mfa_enabled = Column(Boolean, nullable=False, default=False)
    mfa_method = Column(String(16))
    mfa_secret = Column(String(64))
    mfa_totp_last_step = Column(Integer)
    mfa_backup_codes = Column(JSON, nullable=False, default=list)

    # most recent first: [{"hash": ..., "changed_at": iso8601}]
    password_history = Column(JSON, nullable=False, default=list)
    password_expires_at = Column(DateTime(timezone=True))
    last_password_change = Column(DateTime(timezone=True))

    reset_token_hash = Column(String(64), index=True)
    reset_token_expires_at = Column(DateTime(timezone=True))

    session_token = Column(String(64))
    session_expires_at = Column(DateTime(timezone=True))

    is_banned = Column(Boolean, nullable=False, default=False)
    ban_reason = Column(String)
    banned_at = Column(DateTime(timezone=True))
    banned_by = Column(Integer)

    last_login = Column(DateTime(timezone=True))
    last_login_ip = Column(String(64))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def to_public_dict(self) -> dict:
        """Profile view without hashes, secrets or tokens."""
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "role": self.role,
            "mfa_enabled": bool(self.mfa_enabled),
            "mfa_method": self.mfa_method if self.mfa_enabled else None,
            "is_banned": bool(self.is_banned),
            "password_expires_at": self.password_expires_at.isoformat() if self.password_expires_at else None,
            "last_login": self.last_login.isoformat() if self.last_login else None,
        }
