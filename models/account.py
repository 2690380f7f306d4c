from enum import Enum

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

from models.base_model import Base, BaseModel


class RegistrationState(str, Enum):
    UNREGISTERED = "unregistered"
    PENDING_VERIFICATION = "pending_verification"
    PENDING_PASSWORD = "pending_password"
    ACTIVE = "active"
    LOGGED_OUT = "logged_out"


class Account(BaseModel, Base):
    """One row per employee identity, keyed by the employer-assigned external id."""

    __tablename__ = "accounts"

    external_id = Column(String(64), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    username = Column(String(128), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=True)
    phone = Column(String(32), nullable=True)

    email_verified = Column(Boolean, nullable=False, default=False)
    password_verified = Column(Boolean, nullable=False, default=False)
    is_registered = Column(Boolean, nullable=False, default=False)

    is_active = Column(Boolean, nullable=False, default=True)
    is_logged_out = Column(Boolean, nullable=False, default=False)

    password_hash = Column(String(255), nullable=True)

    # single-use; cleared on success or once the attempt limit is reached
    email_verification_code = Column(String(6), nullable=True)
    email_verification_expiry = Column(DateTime, nullable=True)
    email_verification_attempts = Column(Integer, nullable=False, default=0)

    last_login_at = Column(DateTime, nullable=True)
    last_logout_at = Column(DateTime, nullable=True)
    last_password_check = Column(DateTime, nullable=True)

    sessions = relationship(
        "UserSession",
        back_populates="account",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("(NOT password_verified) OR email_verified", name="ck_accounts_password_requires_email"),
        CheckConstraint("(NOT is_registered) OR password_verified", name="ck_accounts_registered_requires_password"),
    )

    @property
    def password(self):
        raise AttributeError("Password: Write-only field")

    @property
    def registration_state(self) -> RegistrationState:
        if self.is_logged_out:
            return RegistrationState.LOGGED_OUT
        if self.is_registered:
            return RegistrationState.ACTIVE
        if self.email_verified:
            return RegistrationState.PENDING_PASSWORD
        if self.email_verification_code is not None:
            return RegistrationState.PENDING_VERIFICATION
        return RegistrationState.UNREGISTERED

    def __repr__(self):
        return f"<Account {self.external_id} state={self.registration_state.value}>"
