"""
UserSession model: one row per (account, device) association issued by a login.

A session carries two independent thresholds:
- expires_at: access-token lifetime
- quick_login_expires_at: how long the device may skip password entry
plus an idle limit measured from last_activity_at, checked by quick_login_status().
"""
from datetime import datetime, timedelta
from enum import Enum

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, JSON, String
from sqlalchemy.orm import relationship

from models.base_model import Base, BaseModel, _uuid_str


class QuickLoginStatus(str, Enum):
    ELIGIBLE = "eligible"
    UNAVAILABLE = "unavailable"
    STALE = "stale"


class UserSession(BaseModel, Base):
    __tablename__ = "sessions"

    session_id = Column(String(36), nullable=False, unique=True, default=_uuid_str, index=True)
    account_id = Column(String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    device_id = Column(String(128), nullable=True)
    device_info = Column(JSON, nullable=True)

    access_token_jti = Column(String(64), nullable=True)
    expires_at = Column(DateTime, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    quick_login_enabled = Column(Boolean, nullable=False, default=True)
    quick_login_expires_at = Column(DateTime, nullable=True)

    last_activity_at = Column(DateTime, nullable=True)

    account = relationship("Account", back_populates="sessions")
    refresh_tokens = relationship(
        "RefreshToken",
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint(
            "(NOT quick_login_enabled) OR (quick_login_expires_at > created_at)",
            name="ck_sessions_quick_login_window",
        ),
        Index("ix_sessions_account_device", "account_id", "device_id"),
    )

    def access_valid(self, now: datetime) -> bool:
        return bool(self.is_active) and self.expires_at > now

    def quick_login_status(self, now: datetime, idle_limit: timedelta) -> QuickLoginStatus:
        """Classify whether this device may skip password entry at `now`.

        Exactly `idle_limit` of inactivity is still eligible; one second more is stale.
        """
        if not self.is_active or not self.quick_login_enabled:
            return QuickLoginStatus.UNAVAILABLE
        if self.quick_login_expires_at is None or self.quick_login_expires_at <= now:
            return QuickLoginStatus.STALE
        last_activity = self.last_activity_at or self.created_at
        if now - last_activity > idle_limit:
            return QuickLoginStatus.STALE
        return QuickLoginStatus.ELIGIBLE

    def has_quick_access(self, now: datetime) -> bool:
        return (
            bool(self.is_active)
            and bool(self.quick_login_enabled)
            and self.quick_login_expires_at is not None
            and self.quick_login_expires_at > now
        )

    def __repr__(self):
        return f"<UserSession {self.session_id} account={self.account_id} device={self.device_id}>"
