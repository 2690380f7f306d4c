"""
Verification code delivery.

The registration core hands an (email, code) pair to a notifier and records
whether delivery succeeded; it never retries. The client can ask for a new
code through the resend endpoint instead.
"""
from __future__ import annotations

import logging

from flask import current_app
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail as SendGridMail

logger = logging.getLogger(__name__)

EXTENSION_KEY = "verification_notifier"


class VerificationNotifier:
    def send_code(self, email: str, code: str, name: str | None = None) -> bool:
        raise NotImplementedError


class LogNotifier(VerificationNotifier):
    """Development notifier: writes the code to the application log."""

    def send_code(self, email, code, name=None):
        logger.info("Verification code for %s: %s", email, code)
        return True


class SendGridNotifier(VerificationNotifier):
    def __init__(self, api_key: str, from_email: str, ttl_minutes: int = 10):
        self.client = SendGridAPIClient(api_key)
        self.from_email = from_email
        self.ttl_minutes = ttl_minutes

    def send_code(self, email, code, name=None):
        message = SendGridMail(
            from_email=self.from_email,
            to_emails=email,
            subject="Mobile App Email Verification",
            html_content=(
                f"<p>Hello {name or ''},</p>"
                f"<p>Your verification code is <strong>{code}</strong>.</p>"
                f"<p>It expires in {self.ttl_minutes} minutes.</p>"
            ),
        )
        response = self.client.send(message)
        return 200 <= response.status_code < 300


def build_notifier(config) -> VerificationNotifier:
    kind = (config.get("NOTIFIER") or "log").lower()
    if kind == "sendgrid":
        if not config.get("SENDGRID_API_KEY"):
            raise RuntimeError("NOTIFIER=sendgrid requires SENDGRID_API_KEY")
        ttl = int(config["VERIFICATION_CODE_TTL"].total_seconds() // 60)
        return SendGridNotifier(config["SENDGRID_API_KEY"], config["MAIL_FROM_EMAIL"], ttl)
    return LogNotifier()


def get_notifier() -> VerificationNotifier:
    return current_app.extensions[EXTENSION_KEY]


def deliver_code(email: str, code: str, name: str | None = None) -> bool:
    """Send a code through the configured notifier; a raising notifier counts as a failed send."""
    try:
        return bool(get_notifier().send_code(email, code, name))
    except Exception:
        logger.exception("Verification code delivery to %s failed", email)
        return False
