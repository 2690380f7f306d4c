"""
Storage hygiene. Nothing here is needed for correctness: every expiry is
checked at use time. This only keeps the session tables from growing forever.
"""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import and_, delete, or_, update

from models import storage
from models.account import Account
from models.base_model import utcnow
from models.refresh_token import RefreshToken
from models.user_session import UserSession

logger = logging.getLogger(__name__)


def purge_expired(now: datetime | None = None) -> dict:
    now = now or utcnow()
    with storage.transaction() as s:
        tokens = s.execute(
            delete(RefreshToken)
            .where(or_(RefreshToken.is_active.is_(False), RefreshToken.expires_at <= now))
            .execution_options(synchronize_session=False)
        ).rowcount
        sessions = s.execute(
            delete(UserSession)
            .where(
                or_(
                    UserSession.is_active.is_(False),
                    and_(
                        UserSession.expires_at <= now,
                        or_(
                            UserSession.quick_login_expires_at.is_(None),
                            UserSession.quick_login_expires_at <= now,
                        ),
                    ),
                )
            )
            .execution_options(synchronize_session=False)
        ).rowcount
        codes = s.execute(
            update(Account)
            .where(Account.email_verification_expiry.isnot(None), Account.email_verification_expiry < now)
            .values(email_verification_code=None, email_verification_expiry=None, email_verification_attempts=0)
            .execution_options(synchronize_session=False)
        ).rowcount
    storage.get_session().expire_all()
    counts = {"refresh_tokens": tokens, "sessions": sessions, "verification_codes": codes}
    logger.info("Purged expired rows: %s", counts)
    return counts
