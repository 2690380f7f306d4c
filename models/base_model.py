"""
Declarative base and the columns every table of the auth store shares.

Timestamps are naive UTC throughout (see utcnow()). SQLite drops tzinfo on the
way in, so keeping everything naive makes comparisons behave the same on SQLite
and PostgreSQL.
"""
from __future__ import annotations

from datetime import datetime, timezone
import uuid

from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

ISO_FMT = "%Y-%m-%dT%H:%M:%S.%f"

# never rendered by to_dict() unless explicitly asked for
SECRET_FIELDS = ("password_hash", "email_verification_code", "token", "access_token_jti")

Base = declarative_base()


def _uuid_str() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class BaseModel:
    """
    Mixin for persistent models: string UUID key plus created_at / updated_at.

    created_at is filled on the Python side so services can pass an explicit
    `now` and read it back before the first flush.
    """

    id = Column(String(36), primary_key=True, default=_uuid_str, nullable=False)
    created_at = Column(DateTime, default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False)

    def __init__(self, *args, **kwargs):
        for key, value in kwargs.items():
            setattr(self, key, value)
        if self.id is None:
            self.id = _uuid_str()
        if self.created_at is None:
            self.created_at = utcnow()

    def to_dict(self, save_fs=None) -> dict:
        """
        Plain dict of the loaded column values, for logs and debugging.

        Datetimes are rendered as ISO strings. Secrets are left out unless
        save_fs is set.
        """
        out = {"__class__": type(self).__name__}
        for key, value in vars(self).items():
            if key.startswith("_sa_"):
                continue
            if save_fs is None and key in SECRET_FIELDS:
                continue
            out[key] = value.strftime(ISO_FMT) if isinstance(value, datetime) else value
        return out
