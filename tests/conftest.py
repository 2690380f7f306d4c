"""Test fixtures: an isolated app on in-memory SQLite and a recording notifier."""
import pytest

from api import create_app
from models import storage
from services import registration, verification
from services.notifier import EXTENSION_KEY, VerificationNotifier
from services.qr import QRIdentity, encode_qr_payload

PASSWORD = "P@ss1!"


class RecordingNotifier(VerificationNotifier):
    """Keeps every code it was asked to deliver."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def send_code(self, email, code, name=None):
        if self.fail:
            raise RuntimeError("mail relay down")
        self.sent.append((email, code))
        return True

    def last_code(self, email):
        codes = [code for to, code in self.sent if to == email]
        return codes[-1] if codes else None


@pytest.fixture
def app():
    """Create the application and a fresh schema for each test."""

    app = create_app("test")
    ctx = app.app_context()
    ctx.push()
    yield app
    storage.close()
    storage.drop_all()
    ctx.pop()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def notifier(app):
    recording = RecordingNotifier()
    app.extensions[EXTENSION_KEY] = recording
    return recording


@pytest.fixture
def identity():
    return QRIdentity(external_id="E100", email="ada@example.com", username="ada", name="Ada Lovelace", phone="5550100")


def employee(emp_id="E100", email="ada@example.com", uname="ada", **extra):
    record = {"emp_id": emp_id, "emp_uname": uname, "emp_email": email, "emp_mobile_no": "5550100"}
    record.update(extra)
    return record


def qr_for(emp_id="E100", email="ada@example.com", uname="ada", **extra):
    return encode_qr_payload(employee(emp_id, email, uname, **extra))


def register(identity, password=PASSWORD, now=None):
    """Drive an identity through scan, email verification and set password."""

    result = registration.scan_qr(identity, now=now)
    verification.verify_email(identity.email, result.verification_code, now=now)
    return verification.set_password(identity.email, password, password, now=now)


@pytest.fixture
def registered(app, notifier, identity):
    return register(identity)
