"""
QR payload decoding.

The employer QR code carries base64(json) with emp_id, emp_uname, emp_email and
emp_mobile_no. It is an identity hint only: emp_pwd, if present, is dropped.
Plain JSON (not base64 wrapped) is accepted as well, as older badge printers emit it.
"""
from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass

from marshmallow import ValidationError

from models.schemas.auth import QRPayloadSchema
from services.errors import InvalidQRPayload

qr_payload_schema = QRPayloadSchema()


@dataclass(frozen=True)
class QRIdentity:
    external_id: str
    email: str
    username: str
    name: str | None = None
    phone: str | None = None


def _to_json_text(raw: str) -> str:
    text = raw.strip()
    if text.startswith("{"):
        return text
    padded = text + "=" * (-len(text) % 4)
    try:
        return base64.b64decode(padded, altchars=b"-_" if ("-" in text or "_" in text) else None, validate=True).decode("utf-8")
    except (binascii.Error, ValueError) as exc:
        raise InvalidQRPayload("QR code is not valid base64") from exc


def decode_qr_payload(raw: str) -> QRIdentity:
    if not raw or not isinstance(raw, str):
        raise InvalidQRPayload("QR payload is empty")
    try:
        data = json.loads(_to_json_text(raw))
    except json.JSONDecodeError as exc:
        raise InvalidQRPayload("QR code does not contain JSON") from exc
    if not isinstance(data, dict):
        raise InvalidQRPayload("QR code does not contain an employee record")

    try:
        fields = qr_payload_schema.load(data)
    except ValidationError as exc:
        raise InvalidQRPayload("QR code is missing employee details", details=exc.messages) from exc

    return QRIdentity(
        external_id=fields["emp_id"],
        email=fields["emp_email"],
        username=fields.get("emp_uname") or fields["emp_id"],
        name=fields.get("emp_name"),
        phone=fields.get("emp_mobile_no"),
    )


def encode_qr_payload(employee: dict) -> str:
    """Inverse of decode_qr_payload, used by badge tooling and tests."""
    return base64.b64encode(json.dumps(employee).encode("utf-8")).decode("ascii")
