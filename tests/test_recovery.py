"""Recovery advisor: re-register, log in, or retry quick login."""
from datetime import timedelta

from sqlalchemy import update

from models import storage
from models.account import Account
from models.base_model import utcnow
from services import recovery, registration, sessions
from services.recovery import RecoveryAction

DEVICE = {"deviceId": "dev-1"}


def test_unknown_account_needs_qr_registration(app, notifier):
    advice = recovery.advise(account_id="gone")
    assert advice.action is RecoveryAction.QR_REGISTRATION_REQUIRED
    assert advice.account_id is None
    assert "scan your QR code" in advice.message


def test_deactivated_account_needs_qr_registration(app, registered):
    with storage.transaction() as s:
        s.execute(update(Account).where(Account.id == registered.id).values(is_active=False))
    assert recovery.advise(account_id=registered.id).action is RecoveryAction.QR_REGISTRATION_REQUIRED


def test_half_registered_account_needs_qr_registration(app, notifier, identity):
    scanned = registration.scan_qr(identity)
    assert recovery.advise(account_id=scanned.account.id).action is RecoveryAction.QR_REGISTRATION_REQUIRED


def test_logged_out_account_needs_login(app, registered):
    result = sessions.login("ada", "P@ss1!", DEVICE)
    sessions.logout(result.account, result.session)

    advice = recovery.advise(account_id=registered.id, device_id="dev-1")

    assert advice.action is RecoveryAction.LOGIN_REQUIRED
    assert advice.account_id == registered.id


def test_stale_session_needs_login(app, registered):
    start = utcnow() - timedelta(days=2)
    sessions.login("ada", "P@ss1!", DEVICE, now=start)
    assert recovery.advise(account_id=registered.id, device_id="dev-1").action is RecoveryAction.LOGIN_REQUIRED


def test_eligible_session_can_retry_quick_login(app, registered):
    sessions.login("ada", "P@ss1!", DEVICE)
    advice = recovery.advise(account_id=registered.id, device_id="dev-1")
    assert advice.action is RecoveryAction.RETRY_QUICK_LOGIN


def test_lookup_by_email_when_id_is_stale(app, registered):
    advice = recovery.advise(account_id="old-id", email="ADA@example.com")
    assert advice.account_id == registered.id
    assert advice.action is RecoveryAction.LOGIN_REQUIRED
