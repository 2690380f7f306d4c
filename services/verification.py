"""
Verification pipeline: email code check, code resend, and mobile password setup.

Each step is a guarded UPDATE, so a replayed request inside the validity window
either finds the flags already moved on and fails cleanly, or wins exactly once.
"""
from __future__ import annotations

import logging
from datetime import datetime

from flask import current_app
from sqlalchemy import update

from models import storage
from models.account import Account
from models.base_model import utcnow
from services.errors import (
    AccountNotFound,
    AlreadyRegistered,
    InvalidVerificationCode,
    NotEmailVerified,
    PasswordMismatch,
    StoreUnavailable,
)
from services.notifier import deliver_code
from services.registration import ScanOutcome, ScanResult, find_account, issue_code
from utils.security import hash_password

logger = logging.getLogger(__name__)


def verify_email(email: str, code: str, now: datetime | None = None) -> Account:
    now = now or utcnow()
    session = storage.get_session()
    account = find_account(session, email=email)
    if account is None or account.email_verification_code is None:
        logger.warning("Email verification for %s without a live code", email)
        raise InvalidVerificationCode()

    max_attempts = current_app.config["MAX_VERIFICATION_ATTEMPTS"]
    with storage.transaction() as s:
        swapped = s.execute(
            update(Account)
            .where(
                Account.id == account.id,
                Account.email_verification_code == code,
                Account.email_verification_expiry >= now,
                Account.email_verification_attempts < max_attempts,
            )
            .values(
                email_verified=True,
                email_verification_code=None,
                email_verification_expiry=None,
                email_verification_attempts=0,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        ).rowcount

    if swapped == 1:
        session.refresh(account)
        logger.info("Email verified for %s", account.external_id)
        return account

    with storage.transaction() as s:
        s.execute(
            update(Account)
            .where(Account.id == account.id, Account.email_verification_code.isnot(None))
            .values(email_verification_attempts=Account.email_verification_attempts + 1)
            .execution_options(synchronize_session=False)
        )
        burnt = s.execute(
            update(Account)
            .where(Account.id == account.id, Account.email_verification_attempts >= max_attempts)
            .values(email_verification_code=None, email_verification_expiry=None)
            .execution_options(synchronize_session=False)
        ).rowcount
    session.refresh(account)
    logger.warning("Invalid verification code for %s", account.external_id)
    if burnt:
        raise InvalidVerificationCode("Maximum verification attempts exceeded. Please request a new code.")
    raise InvalidVerificationCode()


def resend_code(email: str, now: datetime | None = None) -> ScanResult:
    now = now or utcnow()
    session = storage.get_session()
    account = find_account(session, email=email)
    if account is None:
        raise AccountNotFound()
    if account.is_registered:
        raise AlreadyRegistered("Account already registered. Log in, or log out and scan your QR code to register again.")
    if account.email_verified:
        return ScanResult(ScanOutcome.STARTED, account, skip_verification=True)

    code = issue_code(account.email_verification_code)
    expiry = now + current_app.config["VERIFICATION_CODE_TTL"]
    with storage.transaction() as s:
        swapped = s.execute(
            update(Account)
            .where(Account.id == account.id, Account.is_registered.is_(False), Account.email_verified.is_(False))
            .values(
                email_verification_code=code,
                email_verification_expiry=expiry,
                email_verification_attempts=0,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        ).rowcount
    session.refresh(account)
    if swapped != 1:
        raise StoreUnavailable("Registration changed while resending, please retry")

    result = ScanResult(ScanOutcome.STARTED, account, code, expiry)
    result.email_sent = deliver_code(account.email, code, account.name)
    logger.info("Verification code re-issued for %s", account.external_id)
    return result


def set_password(email: str, password: str, confirm_password: str, now: datetime | None = None) -> Account:
    if password != confirm_password:
        raise PasswordMismatch()
    now = now or utcnow()
    session = storage.get_session()
    account = find_account(session, email=email)
    if account is None:
        raise AccountNotFound()
    if account.is_registered:
        raise AlreadyRegistered("Mobile password already set for this account.")
    if not account.email_verified:
        raise NotEmailVerified()

    password_hash = hash_password(password)
    with storage.transaction() as s:
        swapped = s.execute(
            update(Account)
            .where(
                Account.id == account.id,
                Account.email_verified.is_(True),
                Account.is_registered.is_(False),
            )
            .values(
                password_hash=password_hash,
                password_verified=True,
                is_registered=True,
                is_logged_out=False,
                is_active=True,
                last_password_check=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        ).rowcount
    session.refresh(account)

    if swapped != 1:
        # someone else moved the flags between our read and the swap
        if account.is_registered:
            raise AlreadyRegistered("Mobile password already set for this account.")
        raise NotEmailVerified()

    logger.info("Registration completed for %s", account.external_id)
    return account
