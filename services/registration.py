"""
Registration state machine: QR scan -> started | resumed | rejected.

The decision is a table keyed by Account.registration_state. Every write is a
compare-and-swap UPDATE guarded by the flags the decision was based on, so two
concurrent scans for the same identity cannot both create or both reset a row;
the loser re-reads and decides again.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from flask import current_app
from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError

from models import storage
from models.account import Account, RegistrationState
from models.base_model import utcnow
from models.user_session import UserSession
from services.errors import StoreUnavailable
from services.notifier import deliver_code
from services.qr import QRIdentity
from utils.security import generate_verification_code

logger = logging.getLogger(__name__)

MAX_SCAN_ATTEMPTS = 3


class ScanOutcome(str, Enum):
    STARTED = "started"
    RESUMED = "resumed"
    REJECTED = "rejected"


SCAN_TRANSITIONS = {
    RegistrationState.UNREGISTERED: ScanOutcome.STARTED,
    RegistrationState.PENDING_VERIFICATION: ScanOutcome.STARTED,
    RegistrationState.PENDING_PASSWORD: ScanOutcome.STARTED,
    RegistrationState.ACTIVE: ScanOutcome.REJECTED,
    RegistrationState.LOGGED_OUT: ScanOutcome.RESUMED,
}


@dataclass
class ScanResult:
    outcome: ScanOutcome
    account: Account
    verification_code: str | None = None
    code_expires_at: datetime | None = None
    email_sent: bool = False
    skip_verification: bool = False

    @property
    def next_step(self) -> str:
        if self.outcome is ScanOutcome.REJECTED:
            return "login"
        if self.skip_verification:
            return "set_password"
        return "email_verification"


class _LostRace(Exception):
    """The flags changed between read and compare-and-swap."""


def find_account(session, external_id: str | None = None, email: str | None = None) -> Account | None:
    account = None
    if external_id:
        account = session.query(Account).populate_existing().filter(Account.external_id == external_id).first()
    if account is None and email:
        account = session.query(Account).populate_existing().filter(Account.email == email).first()
    return account


def decide(account: Account) -> ScanOutcome:
    # an administratively disabled account is re-enabled only by completing registration again
    if not account.is_active:
        return ScanOutcome.RESUMED
    return SCAN_TRANSITIONS[account.registration_state]


def issue_code(previous: str | None = None) -> str:
    code = generate_verification_code()
    while code == previous:
        code = generate_verification_code()
    return code


def scan_qr(identity: QRIdentity, now: datetime | None = None) -> ScanResult:
    """Run one QR scan through the state machine and deliver a code when one is issued."""
    now = now or utcnow()
    for attempt in range(1, MAX_SCAN_ATTEMPTS + 1):
        try:
            result = _scan_once(identity, now)
        except _LostRace:
            storage.rollback()
            logger.info("Scan for %s lost a race, re-reading (attempt %d)", identity.external_id, attempt)
            continue
        except IntegrityError:
            storage.rollback()
            if attempt == MAX_SCAN_ATTEMPTS:
                raise
            logger.info("Concurrent registration for %s, re-reading (attempt %d)", identity.external_id, attempt)
            continue
        break
    else:
        raise StoreUnavailable("Registration is busy, please retry")

    if result.verification_code:
        result.email_sent = deliver_code(result.account.email, result.verification_code, result.account.name)
    logger.info("QR scan for %s -> %s", identity.external_id, result.outcome.value)
    return result


def _scan_once(identity: QRIdentity, now: datetime) -> ScanResult:
    session = storage.get_session()
    account = find_account(session, identity.external_id, identity.email)
    expiry = now + current_app.config["VERIFICATION_CODE_TTL"]

    if account is None:
        code = issue_code()
        with storage.transaction() as s:
            account = Account(
                external_id=identity.external_id,
                email=identity.email,
                username=identity.username,
                name=identity.name,
                phone=identity.phone,
                email_verification_code=code,
                email_verification_expiry=expiry,
                email_verification_attempts=0,
                created_at=now,
            )
            s.add(account)
        return ScanResult(ScanOutcome.STARTED, account, code, expiry)

    outcome = decide(account)

    if outcome is ScanOutcome.REJECTED:
        logger.warning("QR scan rejected for %s: already registered and logged in", identity.external_id)
        return ScanResult(outcome, account)

    if outcome is ScanOutcome.STARTED and account.registration_state is RegistrationState.PENDING_PASSWORD:
        return ScanResult(outcome, account, skip_verification=True)

    code = issue_code(account.email_verification_code)
    values = {
        "email_verification_code": code,
        "email_verification_expiry": expiry,
        "email_verification_attempts": 0,
        "updated_at": now,
    }
    if identity.name:
        values["name"] = identity.name
    if identity.phone:
        values["phone"] = identity.phone

    stmt = update(Account).where(Account.id == account.id)
    if outcome is ScanOutcome.RESUMED:
        stmt = stmt.where(or_(Account.is_logged_out.is_(True), Account.is_active.is_(False)))
        values.update(email_verified=False, password_verified=False, is_registered=False)
    else:
        stmt = stmt.where(
            Account.is_active.is_(True),
            Account.is_logged_out.is_(False),
            Account.is_registered.is_(False),
            Account.email_verified.is_(False),
        )

    with storage.transaction() as s:
        swapped = s.execute(stmt.values(**values).execution_options(synchronize_session=False)).rowcount
        if swapped != 1:
            raise _LostRace(account.id)
        if outcome is ScanOutcome.RESUMED:
            s.execute(
                update(UserSession)
                .where(UserSession.account_id == account.id, UserSession.is_active.is_(True))
                .values(is_active=False, quick_login_enabled=False)
                .execution_options(synchronize_session=False)
            )
    session.refresh(account)
    return ScanResult(outcome, account, code, expiry)
