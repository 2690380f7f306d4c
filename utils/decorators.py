from __future__ import annotations
from functools import wraps
from flask import request, g, abort
from sqlalchemy import update

from models import storage
from models.account import Account
from models.base_model import utcnow
from models.user_session import UserSession
from utils.security import TokenError, decode_token


def jwt_required():
    """
    Bearer access-token boundary.

    Rejects (401) missing or malformed headers, bad/expired/refresh tokens, tokens
    whose session was logged out or expired, and inactive accounts. On success sets
    g.current_account, g.current_session and g.token_claims, and records activity
    on the session.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            auth = request.headers.get("Authorization", "")
            if not auth.startswith("Bearer "):
                abort(401, description="Missing or invalid Authorization header")
            token = auth.split(" ", 1)[1].strip()
            try:
                decoded = decode_token(token, expected_type="access")
            except TokenError as e:
                abort(401, description=str(e))

            now = utcnow()
            session = storage.get_session()
            user_session = (
                session.query(UserSession)
                .populate_existing()
                .filter(UserSession.session_id == decoded["sid"])
                .first()
            )
            if (
                user_session is None
                or user_session.account_id != decoded.get("sub")
                or user_session.access_token_jti != decoded.get("jti")
                or not user_session.access_valid(now)
            ):
                abort(401, description="Session expired or logged out")

            account = session.get(Account, user_session.account_id, populate_existing=True)
            if account is None or not account.is_active:
                abort(401, description="Inactive or missing account")

            with storage.transaction() as s:
                s.execute(
                    update(UserSession)
                    .where(UserSession.id == user_session.id)
                    .values(last_activity_at=now)
                    .execution_options(synchronize_session=False)
                )
            session.refresh(user_session)

            g.current_account = account
            g.current_session = user_session
            g.token_claims = decoded
            return fn(*args, **kwargs)

        return wrapper

    return decorator
