"""Password hashing, token issuing and the model invariants around them."""
import time
from datetime import timedelta

import jwt
import pytest
from sqlalchemy.exc import IntegrityError

from models import storage
from models.account import Account, RegistrationState
from models.base_model import utcnow
from models.user_session import QuickLoginStatus, UserSession
from utils.security import (
    TokenError,
    create_access_token,
    create_refresh_token,
    decode_token,
    generate_verification_code,
    hash_password,
    verify_password,
)

IDLE = timedelta(hours=24)


def test_password_hash_round_trip():
    hashed = hash_password("P@ss1!")
    assert hashed.startswith("$argon2")
    assert verify_password("P@ss1!", hashed)
    assert not verify_password("p@ss1!", hashed)
    assert not verify_password("P@ss1!", None)
    assert not verify_password("P@ss1!", "not-a-hash")


def test_verification_codes_are_six_digits():
    codes = {generate_verification_code() for _ in range(50)}
    assert all(len(code) == 6 and code.isdigit() for code in codes)


def test_access_token_claims(app, registered):
    issued = create_access_token(registered, "sid-1")
    claims = decode_token(issued.token, "access")
    assert claims["sub"] == registered.id
    assert claims["sid"] == "sid-1"
    assert claims["jti"] == issued.jti
    assert claims["iss"] == app.config["JWT_ISSUER"]


def test_token_expiry_follows_given_now(app, registered):
    now = utcnow() - timedelta(minutes=5)
    access = create_access_token(registered, "sid-1", now=now)
    refresh = create_refresh_token(registered.id, "sid-1", now=now)

    assert access.expires_at == now + app.config["ACCESS_TOKEN_EXPIRES"]
    assert refresh.expires_at == now + app.config["REFRESH_TOKEN_EXPIRES"]
    claims = decode_token(access.token, "access")
    assert claims["exp"] - claims["iat"] == int(app.config["ACCESS_TOKEN_EXPIRES"].total_seconds())


def test_token_type_is_enforced(app, registered):
    refresh = create_refresh_token(registered.id, "sid-1")
    with pytest.raises(TokenError, match="Wrong token type"):
        decode_token(refresh.token, "access")


def test_tampered_token_is_rejected(app, registered):
    token = create_access_token(registered, "sid-1").token
    head, body, sig = token.split(".")
    with pytest.raises(TokenError):
        decode_token(f"{head}.{body}.{sig[:-2]}xx", "access")


def test_expired_token_is_rejected(app):
    past = int(time.time()) - 7200
    token = jwt.encode(
        {"sub": "a", "sid": "s", "jti": "j", "type": "access", "iat": past, "exp": past + 60, "iss": app.config["JWT_ISSUER"]},
        app.config["JWT_SECRET"],
        algorithm=app.config["JWT_ALGORITHM"],
    )
    with pytest.raises(TokenError, match="expired"):
        decode_token(token, "access")


def test_token_signed_with_other_secret(app, registered):
    app.config["JWT_SECRET"] = "rotated"
    token = create_access_token(registered, "sid-1").token
    app.config["JWT_SECRET"] = "test-secret"
    with pytest.raises(TokenError):
        decode_token(token, "access")


def test_to_dict_hides_secrets(app, registered):
    data = registered.to_dict()
    assert "password_hash" not in data
    assert "email_verification_code" not in data
    assert data["__class__"] == "Account"
    assert "password_hash" in registered.to_dict(save_fs=True)


def test_password_is_write_only():
    with pytest.raises(AttributeError):
        Account().password


@pytest.mark.parametrize(
    "flags,state",
    [
        ({}, RegistrationState.UNREGISTERED),
        ({"email_verification_code": "123456"}, RegistrationState.PENDING_VERIFICATION),
        ({"email_verified": True}, RegistrationState.PENDING_PASSWORD),
        ({"email_verified": True, "password_verified": True, "is_registered": True}, RegistrationState.ACTIVE),
        ({"email_verified": True, "password_verified": True, "is_registered": True, "is_logged_out": True}, RegistrationState.LOGGED_OUT),
    ],
)
def test_registration_state_from_flags(flags, state):
    values = {"email_verified": False, "password_verified": False, "is_registered": False, "is_logged_out": False}
    values.update(flags)
    assert Account(**values).registration_state is state


def test_store_refuses_registered_without_password(app):
    with pytest.raises(IntegrityError):
        with storage.transaction() as s:
            s.add(
                Account(
                    external_id="E9",
                    email="e9@example.com",
                    username="e9",
                    email_verified=True,
                    password_verified=False,
                    is_registered=True,
                )
            )


def test_store_refuses_password_without_email(app):
    with pytest.raises(IntegrityError):
        with storage.transaction() as s:
            s.add(Account(external_id="E9", email="e9@example.com", username="e9", password_verified=True))


def _session(now, **values):
    fields = {
        "is_active": True,
        "quick_login_enabled": True,
        "quick_login_expires_at": now + timedelta(days=30),
        "last_activity_at": now,
        "expires_at": now + timedelta(hours=24),
        "created_at": now,
    }
    fields.update(values)
    return UserSession(**fields)


def test_quick_login_status_boundaries():
    now = utcnow()
    s = _session(now)
    assert s.quick_login_status(now + IDLE, IDLE) is QuickLoginStatus.ELIGIBLE
    assert s.quick_login_status(now + IDLE + timedelta(seconds=1), IDLE) is QuickLoginStatus.STALE


def test_quick_login_status_window_closed():
    now = utcnow()
    s = _session(now - timedelta(days=30), last_activity_at=now - timedelta(hours=1))
    assert s.quick_login_status(now, IDLE) is QuickLoginStatus.STALE
    assert s.has_quick_access(now) is False


def test_quick_login_status_disabled():
    now = utcnow()
    assert _session(now, is_active=False).quick_login_status(now, IDLE) is QuickLoginStatus.UNAVAILABLE
    assert _session(now, quick_login_enabled=False).quick_login_status(now, IDLE) is QuickLoginStatus.UNAVAILABLE
