"""
security helpers:
- Argon2 password hashing via argon2-cffi
- JWT creation/verification via PyJWT (access + refresh tokens bound to a session)
- JTI generation for token identifiers
- Verification code generation
"""
from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, NamedTuple

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from flask import current_app

from models.base_model import utcnow

ph = PasswordHasher()


class TokenError(Exception):
    """Raised when a JWT is malformed, expired, or of the wrong type."""


class IssuedToken(NamedTuple):
    token: str
    jti: str
    expires_at: datetime


def hash_password(password: str) -> str:
    """Hash a plaintext password using Argon2
    """
    return ph.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    """ Verify a plaintext password using argon2
    """
    if not password_hash:
        return False
    try:
        return ph.verify(password_hash, password)
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False


def generate_jti() -> str:
    """Generate a unique JTI (JWT ID).
    """
    return str(uuid.uuid4())


def generate_verification_code() -> str:
    """Six-digit numeric code, never starting with 0."""
    return str(100000 + secrets.randbelow(900000))


def _encode(claims: Dict[str, Any], lifetime: timedelta, token_type: str, now: datetime | None = None) -> IssuedToken:
    now = now or utcnow()
    jti = generate_jti()
    exp = now + lifetime
    payload = {
        "iss": current_app.config.get("JWT_ISSUER", "workforce-auth-api"),
        "iat": int(now.replace(tzinfo=timezone.utc).timestamp()),
        "exp": int(exp.replace(tzinfo=timezone.utc).timestamp()),
        "type": token_type,
        "jti": jti,
        **claims,
    }
    token = jwt.encode(payload, current_app.config["JWT_SECRET"], algorithm=current_app.config["JWT_ALGORITHM"])
    return IssuedToken(token=token, jti=jti, expires_at=exp)


def create_access_token(account, session_id: str, now: datetime | None = None) -> IssuedToken:
    """Sign a short-lived access token for `account` bound to `session_id`."""
    claims = {
        "sub": str(account.id),
        "sid": session_id,
        "username": account.username,
        "email": account.email,
    }
    return _encode(claims, current_app.config["ACCESS_TOKEN_EXPIRES"], "access", now)


def create_refresh_token(account_id: str, session_id: str, now: datetime | None = None) -> IssuedToken:
    claims = {"sub": str(account_id), "sid": session_id}
    return _encode(claims, current_app.config["REFRESH_TOKEN_EXPIRES"], "refresh", now)


def decode_token(token: str, expected_type: str = "access") -> Dict[str, Any]:
    """
    Decode and validate a JWT. Raises TokenError on invalid signature/expired jwt
    expected type must be "access" or "refresh".
    """
    try:
        decoded = jwt.decode(
            token,
            current_app.config["JWT_SECRET"],
            algorithms=[current_app.config["JWT_ALGORITHM"]],
            issuer=current_app.config.get("JWT_ISSUER", "workforce-auth-api"),
            options={"require": ["exp", "iat", "sub", "jti"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise TokenError("Token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise TokenError(f"Invalid token: {exc}") from exc

    if decoded.get("type") != expected_type:
        raise TokenError("Wrong token type")
    if not decoded.get("sid"):
        raise TokenError("Token is not bound to a session")
    return decoded
