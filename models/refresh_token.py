"""
RefreshToken model: stores issued refresh tokens so we can revoke and rotate them
Fields:
- jti (unique) - JWT id of the refresh token
- token - the encoded refresh token as handed to the client
- session_id (String(36)) - FK to sessions.session_id
- account_id (String(36)) - FK to accounts.id
- is_active (bool)
- created_at, expires_at
"""
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from models.base_model import Base, BaseModel


class RefreshToken(BaseModel, Base):
    __tablename__ = "refresh_tokens"

    jti = Column(String(64), nullable=False, unique=True, index=True)
    token = Column(Text, nullable=False)
    session_id = Column(String(36), ForeignKey("sessions.session_id", ondelete="CASCADE"), nullable=False, index=True)
    account_id = Column(String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    expires_at = Column(DateTime, nullable=False)

    session = relationship("UserSession", back_populates="refresh_tokens")

    def __repr__(self):
        return f"<RefreshToken jti={self.jti} session={self.session_id}>"
