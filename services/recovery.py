"""
Recovery advisor.

When quick login fails the client only knows an account id it stored earlier.
This tells it whether the identity is gone (scan the QR code again) or only the
session is stale (enter the password), which the session manager alone cannot tell.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from flask import current_app

from models import storage
from models.account import Account
from models.base_model import utcnow
from models.user_session import QuickLoginStatus, UserSession


class RecoveryAction(str, Enum):
    QR_REGISTRATION_REQUIRED = "qr_registration_required"
    LOGIN_REQUIRED = "login_required"
    RETRY_QUICK_LOGIN = "retry_quick_login"


MESSAGES = {
    RecoveryAction.QR_REGISTRATION_REQUIRED: "Account is no longer available. Please scan your QR code to register.",
    RecoveryAction.LOGIN_REQUIRED: "Session expired. Please log in with your password.",
    RecoveryAction.RETRY_QUICK_LOGIN: "Session is still valid. Quick login can be retried.",
}


@dataclass
class Advice:
    action: RecoveryAction
    account_id: str | None = None

    @property
    def message(self) -> str:
        return MESSAGES[self.action]


def action_for_account(account: Account | None) -> RecoveryAction:
    """Identity-level verdict: is there still a usable account behind this id?"""
    if account is None or not account.is_active or not account.is_registered:
        return RecoveryAction.QR_REGISTRATION_REQUIRED
    return RecoveryAction.LOGIN_REQUIRED


def advise(
    account_id: str | None = None,
    email: str | None = None,
    device_id: str | None = None,
    now: datetime | None = None,
) -> Advice:
    now = now or utcnow()
    session = storage.get_session()
    account = None
    if account_id:
        account = session.get(Account, account_id, populate_existing=True)
    if account is None and email:
        account = session.query(Account).populate_existing().filter(Account.email == email.strip().lower()).first()

    action = action_for_account(account)
    if action is RecoveryAction.QR_REGISTRATION_REQUIRED:
        return Advice(action)
    if account.is_logged_out:
        return Advice(RecoveryAction.LOGIN_REQUIRED, account.id)

    query = session.query(UserSession).populate_existing().filter(UserSession.account_id == account.id)
    if device_id:
        query = query.filter(UserSession.device_id == device_id)
    latest = query.order_by(UserSession.created_at.desc()).first()
    idle_limit = current_app.config["QUICK_LOGIN_IDLE_LIMIT"]
    if latest is not None and latest.quick_login_status(now, idle_limit) is QuickLoginStatus.ELIGIBLE:
        return Advice(RecoveryAction.RETRY_QUICK_LOGIN, account.id)
    return Advice(RecoveryAction.LOGIN_REQUIRED, account.id)
