"""Full login, quick login, refresh, logout and saved accounts."""
from datetime import timedelta

import pytest
from sqlalchemy import update

from conftest import register
from models import storage
from models.account import Account
from models.base_model import utcnow
from models.refresh_token import RefreshToken
from models.user_session import UserSession
from services import registration, sessions
from services.errors import (
    InvalidCredentials,
    InvalidRefreshToken,
    QuickLoginUnavailable,
    ReauthenticationRequired,
)
from services.qr import QRIdentity
from utils.security import decode_token

DEVICE = {"deviceId": "dev-1", "platform": "android"}


def test_login_by_username_issues_session_and_tokens(app, registered):
    now = utcnow()
    result = sessions.login("ada", "P@ss1!", DEVICE, now=now)

    assert result.account.id == registered.id
    assert result.account.last_login_at == now
    assert result.account.is_logged_out is False
    assert result.session.is_active is True
    assert result.session.device_id == "dev-1"
    assert result.session.quick_login_expires_at == now + app.config["QUICK_LOGIN_WINDOW"]
    assert result.session.expires_at == now + app.config["ACCESS_TOKEN_EXPIRES"]
    assert result.access.expires_at == result.session.expires_at

    claims = decode_token(result.access.token, "access")
    assert claims["sub"] == registered.id
    assert claims["sid"] == result.session.session_id
    assert claims["jti"] == result.session.access_token_jti
    assert decode_token(result.refresh.token, "refresh")["sid"] == result.session.session_id


def test_login_by_email_is_case_insensitive(app, registered):
    assert sessions.login("Ada@Example.com", "P@ss1!").account.id == registered.id


@pytest.mark.parametrize("identifier,password", [("ada", "wrong!!"), ("nobody", "P@ss1!"), ("", "P@ss1!")])
def test_login_rejects_bad_credentials(app, registered, identifier, password):
    with pytest.raises(InvalidCredentials):
        sessions.login(identifier, password)


def test_login_requires_completed_registration(app, notifier, identity):
    registration.scan_qr(identity)
    with pytest.raises(InvalidCredentials):
        sessions.login("ada", "P@ss1!")


def test_login_refused_for_inactive_account(app, registered):
    with storage.transaction() as s:
        s.execute(update(Account).where(Account.id == registered.id).values(is_active=False))
    with pytest.raises(InvalidCredentials):
        sessions.login("ada", "P@ss1!")


def test_new_login_retires_earlier_session_on_same_device(app, registered):
    first = sessions.login("ada", "P@ss1!", DEVICE)
    second = sessions.login("ada", "P@ss1!", DEVICE)

    storage.get_session().refresh(first.session)
    assert first.session.is_active is False
    assert second.session.is_active is True
    with pytest.raises(InvalidRefreshToken):
        sessions.refresh_tokens(first.refresh.token)


def test_quick_login_within_idle_limit(app, registered):
    start = utcnow()
    sessions.login("ada", "P@ss1!", DEVICE, now=start)

    later = start + timedelta(hours=23)
    result = sessions.quick_login(registered.id, DEVICE, now=later)

    assert result.account.last_login_at == later
    assert result.session.last_activity_at == later
    # quick login does not move the window
    assert result.session.quick_login_expires_at == start + app.config["QUICK_LOGIN_WINDOW"]


def test_quick_login_at_exact_idle_limit_is_allowed(app, registered):
    start = utcnow()
    sessions.login("ada", "P@ss1!", DEVICE, now=start)
    sessions.quick_login(registered.id, DEVICE, now=start + timedelta(hours=24))


def test_quick_login_after_idle_limit_requires_password(app, registered):
    start = utcnow()
    sessions.login("ada", "P@ss1!", DEVICE, now=start)

    with pytest.raises(ReauthenticationRequired) as exc:
        sessions.quick_login(registered.id, DEVICE, now=start + timedelta(hours=24, seconds=1))
    assert exc.value.extra["action"] == "login_required"


def test_daily_use_keeps_quick_login_until_window_closes(app, registered):
    start = utcnow()
    sessions.login("ada", "P@ss1!", DEVICE, now=start)
    for day in range(1, 30):
        sessions.quick_login(registered.id, DEVICE, now=start + timedelta(days=day))

    with pytest.raises(ReauthenticationRequired):
        sessions.quick_login(registered.id, DEVICE, now=start + timedelta(days=30))


def test_quick_login_for_unknown_account_needs_registration(app, notifier):
    with pytest.raises(QuickLoginUnavailable) as exc:
        sessions.quick_login("no-such-account")
    assert exc.value.extra["action"] == "qr_registration_required"


def test_quick_login_without_session_on_device(app, registered):
    sessions.login("ada", "P@ss1!", DEVICE)
    with pytest.raises(QuickLoginUnavailable) as exc:
        sessions.quick_login(registered.id, {"deviceId": "other-phone"})
    assert exc.value.extra["action"] == "login_required"


def test_quick_login_after_logout_fails(app, registered):
    result = sessions.login("ada", "P@ss1!", DEVICE)
    sessions.logout(result.account, result.session)

    with pytest.raises(QuickLoginUnavailable) as exc:
        sessions.quick_login(registered.id, DEVICE)
    assert exc.value.extra["action"] == "login_required"


def test_refresh_rotates_tokens(app, registered):
    result = sessions.login("ada", "P@ss1!", DEVICE)

    rotated = sessions.refresh_tokens(result.refresh.token)

    assert rotated.session.session_id == result.session.session_id
    assert rotated.refresh.jti != result.refresh.jti
    assert rotated.session.access_token_jti == rotated.access.jti
    with pytest.raises(InvalidRefreshToken):
        sessions.refresh_tokens(result.refresh.token)
    active = storage.get_session().query(RefreshToken).filter(RefreshToken.is_active.is_(True)).all()
    assert [row.jti for row in active] == [rotated.refresh.jti]


def test_refresh_rejects_access_token(app, registered):
    result = sessions.login("ada", "P@ss1!", DEVICE)
    with pytest.raises(InvalidRefreshToken):
        sessions.refresh_tokens(result.access.token)


def test_refresh_after_logout_fails(app, registered):
    result = sessions.login("ada", "P@ss1!", DEVICE)
    sessions.logout(result.account, result.session)
    with pytest.raises(InvalidRefreshToken):
        sessions.refresh_tokens(result.refresh.token)


def test_logout_marks_account_and_session(app, registered):
    now = utcnow()
    result = sessions.login("ada", "P@ss1!", DEVICE, now=now)

    sessions.logout(result.account, result.session, now=now + timedelta(minutes=5))

    assert result.account.is_logged_out is True
    assert result.account.last_logout_at == now + timedelta(minutes=5)
    assert result.session.is_active is False
    assert storage.get_session().query(RefreshToken).filter(RefreshToken.is_active.is_(True)).count() == 0


def test_login_after_logout_clears_flag(app, registered):
    result = sessions.login("ada", "P@ss1!", DEVICE)
    sessions.logout(result.account, result.session)

    again = sessions.login("ada", "P@ss1!", DEVICE)

    assert again.account.is_logged_out is False


def _second_account(now=None):
    grace = QRIdentity(external_id="E200", email="grace@example.com", username="grace", name="Grace Hopper")
    return register(grace, now=now)


def test_saved_accounts_lists_device_accounts_newest_first(app, registered):
    start = utcnow()
    sessions.login("ada", "P@ss1!", DEVICE, now=start)
    grace = _second_account()
    sessions.login("grace", "P@ss1!", DEVICE, now=start + timedelta(hours=1))

    listing = sessions.saved_accounts("dev-1", now=start + timedelta(hours=2))

    assert [item["username"] for item in listing] == ["grace", "ada"]
    assert listing[0]["id"] == grace.id
    assert all(item["hasQuickAccess"] for item in listing)
    assert sessions.saved_accounts("other-phone") == []


def test_saved_accounts_leave_out_logged_out_accounts(app, registered):
    result = sessions.login("ada", "P@ss1!", DEVICE)
    _second_account()
    sessions.login("grace", "P@ss1!", DEVICE)
    sessions.logout(result.account, result.session)

    assert [item["username"] for item in sessions.saved_accounts("dev-1")] == ["grace"]


def test_saved_account_loses_quick_access_when_window_closes(app, registered):
    start = utcnow()
    sessions.login("ada", "P@ss1!", DEVICE, now=start)

    listing = sessions.saved_accounts("dev-1", now=start + timedelta(days=31))

    assert listing[0]["hasQuickAccess"] is False


def test_forget_device_removes_saved_account(app, registered):
    sessions.login("ada", "P@ss1!", DEVICE)
    sessions.login("ada", "P@ss1!", {"deviceId": "tablet"})

    removed = sessions.forget_device(registered, "dev-1")

    assert removed == 1
    assert sessions.saved_accounts("dev-1") == []
    assert [item["id"] for item in sessions.saved_accounts("tablet")] == [registered.id]
    assert storage.count(UserSession) == 1


def test_devices_for_account_keeps_latest_session_per_device(app, registered):
    start = utcnow()
    sessions.login("ada", "P@ss1!", DEVICE, now=start)
    latest = sessions.login("ada", "P@ss1!", DEVICE, now=start + timedelta(hours=1))
    sessions.login("ada", "P@ss1!", {"deviceId": "tablet"}, now=start + timedelta(hours=2))
    sessions.login("ada", "P@ss1!", None, now=start + timedelta(hours=3))

    devices = sessions.devices_for_account(registered, now=start + timedelta(hours=4))

    assert [device["deviceId"] for device in devices] == ["tablet", "dev-1"]
    phone = devices[1]
    assert phone["sessionId"] == latest.session.session_id
    assert phone["isActive"] is True
    assert phone["hasQuickAccess"] is True
    assert phone["lastLoginAt"] == start + timedelta(hours=1)


def test_clear_device_drops_every_account_on_it(app, registered):
    sessions.login("ada", "P@ss1!", DEVICE)
    _second_account()
    sessions.login("grace", "P@ss1!", DEVICE)
    sessions.login("grace", "P@ss1!", {"deviceId": "tablet"})

    assert sessions.clear_device("dev-1") == 2

    assert sessions.saved_accounts("dev-1") == []
    assert [item["username"] for item in sessions.saved_accounts("tablet")] == ["grace"]
    assert storage.count(UserSession) == 1
    assert sessions.clear_device("dev-1") == 0
