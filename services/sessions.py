"""
Session manager: full login, quick login, token refresh, logout, saved accounts.

Sessions are never deleted by these flows, only retired (is_active=False).
Deleting rows is left to services.housekeeping and to removing a saved account.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from flask import current_app
from sqlalchemy import or_, update

from models import storage
from models.account import Account
from models.base_model import utcnow
from models.refresh_token import RefreshToken
from models.user_session import QuickLoginStatus, UserSession
from services.errors import (
    InvalidCredentials,
    InvalidRefreshToken,
    QuickLoginUnavailable,
    ReauthenticationRequired,
)
from services.recovery import RecoveryAction, action_for_account
from utils.security import (
    IssuedToken,
    TokenError,
    create_access_token,
    create_refresh_token,
    decode_token,
    verify_password,
)

logger = logging.getLogger(__name__)


@dataclass
class LoginResult:
    account: Account
    session: UserSession
    access: IssuedToken
    refresh: IssuedToken


def _device_id(device_info: dict | None) -> str | None:
    return (device_info or {}).get("deviceId") or None


def _issue_tokens(s, account: Account, user_session: UserSession, now: datetime) -> tuple[IssuedToken, IssuedToken]:
    """Mint a token pair for the session; the session keeps one live refresh token."""
    access = create_access_token(account, user_session.session_id, now=now)
    refresh = create_refresh_token(account.id, user_session.session_id, now=now)

    user_session.access_token_jti = access.jti
    user_session.expires_at = now + current_app.config["ACCESS_TOKEN_EXPIRES"]
    user_session.last_activity_at = now

    s.execute(
        update(RefreshToken)
        .where(RefreshToken.session_id == user_session.session_id, RefreshToken.is_active.is_(True))
        .values(is_active=False)
        .execution_options(synchronize_session=False)
    )
    s.add(
        RefreshToken(
            jti=refresh.jti,
            token=refresh.token,
            session_id=user_session.session_id,
            account_id=account.id,
            is_active=True,
            expires_at=now + current_app.config["REFRESH_TOKEN_EXPIRES"],
            created_at=now,
        )
    )
    return access, refresh


def _mark_logged_in(s, account: Account, now: datetime, full_login: bool) -> None:
    values = {"is_logged_out": False, "last_login_at": now, "updated_at": now}
    if full_login:
        values["last_password_check"] = now
    s.execute(update(Account).where(Account.id == account.id).values(**values).execution_options(synchronize_session=False))


def login(identifier: str, password: str, device_info: dict | None = None, now: datetime | None = None) -> LoginResult:
    now = now or utcnow()
    session = storage.get_session()
    identifier = (identifier or "").strip()
    account = (
        session.query(Account)
        .populate_existing()
        .filter(or_(Account.username == identifier, Account.email == identifier.lower()))
        .first()
    )
    if (
        account is None
        or not account.is_active
        or not account.is_registered
        or not verify_password(password, account.password_hash)
    ):
        logger.warning("Failed login for %s", identifier)
        raise InvalidCredentials()

    device_id = _device_id(device_info)
    with storage.transaction() as s:
        if device_id:
            # the device gets a fresh session; earlier ones on it are retired
            retired = [
                row.session_id
                for row in s.query(UserSession).filter(
                    UserSession.account_id == account.id,
                    UserSession.device_id == device_id,
                    UserSession.is_active.is_(True),
                )
            ]
            if retired:
                s.execute(
                    update(UserSession)
                    .where(UserSession.session_id.in_(retired))
                    .values(is_active=False)
                    .execution_options(synchronize_session="fetch")
                )
                s.execute(
                    update(RefreshToken)
                    .where(RefreshToken.session_id.in_(retired))
                    .values(is_active=False)
                    .execution_options(synchronize_session=False)
                )

        user_session = UserSession(
            account_id=account.id,
            device_id=device_id,
            device_info=device_info or None,
            expires_at=now + current_app.config["ACCESS_TOKEN_EXPIRES"],
            is_active=True,
            quick_login_enabled=True,
            quick_login_expires_at=now + current_app.config["QUICK_LOGIN_WINDOW"],
            last_activity_at=now,
            created_at=now,
        )
        s.add(user_session)
        s.flush()
        access, refresh = _issue_tokens(s, account, user_session, now)
        _mark_logged_in(s, account, now, full_login=True)
    session.refresh(account)

    logger.info("Login for %s on device %s", account.external_id, device_id or "-")
    return LoginResult(account, user_session, access, refresh)


def latest_session(session, account_id: str, device_id: str | None = None) -> UserSession | None:
    query = session.query(UserSession).populate_existing().filter(UserSession.account_id == account_id)
    if device_id:
        query = query.filter(UserSession.device_id == device_id)
    return query.order_by(UserSession.created_at.desc()).first()


def quick_login(account_id: str, device_info: dict | None = None, now: datetime | None = None) -> LoginResult:
    now = now or utcnow()
    session = storage.get_session()
    account = session.get(Account, account_id, populate_existing=True)

    action = action_for_account(account)
    if action is RecoveryAction.QR_REGISTRATION_REQUIRED:
        logger.warning("Quick login for unknown or unusable account %s", account_id)
        raise QuickLoginUnavailable("Quick login not available - QR registration required", action=action.value)

    device_id = _device_id(device_info)
    user_session = latest_session(session, account.id, device_id)
    if user_session is None:
        raise QuickLoginUnavailable(action=RecoveryAction.LOGIN_REQUIRED.value)

    status = user_session.quick_login_status(now, current_app.config["QUICK_LOGIN_IDLE_LIMIT"])
    if status is QuickLoginStatus.UNAVAILABLE:
        raise QuickLoginUnavailable(action=RecoveryAction.LOGIN_REQUIRED.value)
    if status is QuickLoginStatus.STALE:
        logger.info("Quick login for %s needs re-authentication", account.external_id)
        raise ReauthenticationRequired(action=RecoveryAction.LOGIN_REQUIRED.value)

    with storage.transaction() as s:
        # a logout committed since our read wins
        claimed = s.execute(
            update(UserSession)
            .where(
                UserSession.id == user_session.id,
                UserSession.is_active.is_(True),
                UserSession.quick_login_enabled.is_(True),
            )
            .values(last_activity_at=now)
            .execution_options(synchronize_session=False)
        ).rowcount
        if claimed != 1:
            raise QuickLoginUnavailable(action=RecoveryAction.LOGIN_REQUIRED.value)
        if device_info:
            user_session.device_info = device_info
        access, refresh = _issue_tokens(s, account, user_session, now)
        _mark_logged_in(s, account, now, full_login=False)
    session.refresh(account)

    logger.info("Quick login for %s on device %s", account.external_id, user_session.device_id or "-")
    return LoginResult(account, user_session, access, refresh)


def refresh_tokens(token: str, now: datetime | None = None) -> LoginResult:
    now = now or utcnow()
    try:
        claims = decode_token(token, expected_type="refresh")
    except TokenError as exc:
        raise InvalidRefreshToken(str(exc)) from exc

    session = storage.get_session()
    row = session.query(RefreshToken).populate_existing().filter(RefreshToken.jti == claims["jti"]).first()
    if row is None or not row.is_active or row.expires_at <= now or row.token != token:
        raise InvalidRefreshToken()
    user_session = session.query(UserSession).populate_existing().filter(UserSession.session_id == row.session_id).first()
    if user_session is None or not user_session.is_active:
        raise InvalidRefreshToken("Session has ended")
    account = session.get(Account, row.account_id, populate_existing=True)
    if account is None or not account.is_active:
        raise InvalidRefreshToken("Account is not active")

    with storage.transaction() as s:
        # rotation: a refresh token is spent exactly once
        spent = s.execute(
            update(RefreshToken)
            .where(RefreshToken.id == row.id, RefreshToken.is_active.is_(True))
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        ).rowcount
        if spent != 1:
            raise InvalidRefreshToken()
        access, refresh = _issue_tokens(s, account, user_session, now)
    return LoginResult(account, user_session, access, refresh)


def logout(account: Account, user_session: UserSession, now: datetime | None = None) -> None:
    now = now or utcnow()
    session = storage.get_session()
    with storage.transaction() as s:
        s.execute(
            update(Account)
            .where(Account.id == account.id)
            .values(is_logged_out=True, last_logout_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        s.execute(
            update(UserSession)
            .where(UserSession.session_id == user_session.session_id)
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        s.execute(
            update(RefreshToken)
            .where(RefreshToken.session_id == user_session.session_id)
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
    session.refresh(account)
    session.refresh(user_session)
    logger.info("Logout for %s, session %s", account.external_id, user_session.session_id)


def saved_accounts(device_id: str, now: datetime | None = None) -> list[dict]:
    """Accounts known on this device, most recent login first.

    Logged-out accounts are left out even though their rows persist.
    """
    now = now or utcnow()
    session = storage.get_session()
    rows = (
        session.query(UserSession, Account)
        .join(Account, UserSession.account_id == Account.id)
        .filter(
            UserSession.device_id == device_id,
            Account.is_active.is_(True),
            Account.is_registered.is_(True),
            Account.is_logged_out.is_(False),
        )
        .order_by(UserSession.created_at.desc())
        .all()
    )

    latest = {}
    for user_session, account in rows:
        latest.setdefault(account.id, (user_session, account))

    listing = [
        {
            "id": account.id,
            "username": account.username,
            "email": account.email,
            "name": account.name,
            "hasQuickAccess": user_session.has_quick_access(now) and not account.is_logged_out,
            "lastLoginAt": account.last_login_at,
        }
        for user_session, account in latest.values()
    ]
    listing.sort(key=lambda item: item["lastLoginAt"] or datetime.min, reverse=True)
    return listing


def forget_device(account: Account, device_id: str) -> int:
    """Remove the account from a device's saved list by deleting its sessions there."""
    with storage.transaction() as s:
        rows = s.query(UserSession).filter(UserSession.account_id == account.id, UserSession.device_id == device_id).all()
        for row in rows:
            s.delete(row)
    logger.info("Removed %s from device %s (%d sessions)", account.external_id, device_id, len(rows))
    return len(rows)


def devices_for_account(account: Account, now: datetime | None = None) -> list[dict]:
    """Devices the account has signed in on, latest session per device, newest first."""
    now = now or utcnow()
    session = storage.get_session()
    rows = (
        session.query(UserSession)
        .filter(UserSession.account_id == account.id, UserSession.device_id.isnot(None))
        .order_by(UserSession.created_at.desc())
        .all()
    )

    latest = {}
    for user_session in rows:
        latest.setdefault(user_session.device_id, user_session)

    return [
        {
            "deviceId": device_id,
            "deviceInfo": user_session.device_info,
            "sessionId": user_session.session_id,
            "isActive": bool(user_session.is_active),
            "hasQuickAccess": user_session.has_quick_access(now) and not account.is_logged_out,
            "lastLoginAt": user_session.created_at,
            "lastActivityAt": user_session.last_activity_at,
        }
        for device_id, user_session in latest.items()
    ]


def clear_device(device_id: str) -> int:
    """Drop every saved account on a device. Returns the number of sessions deleted."""
    with storage.transaction() as s:
        rows = s.query(UserSession).filter(UserSession.device_id == device_id).all()
        for row in rows:
            s.delete(row)
    logger.info("Cleared device %s (%d sessions)", device_id, len(rows))
    return len(rows)
