from flask import current_app
from marshmallow import EXCLUDE, Schema, fields, pre_load, validates, validates_schema, ValidationError, validate


def _norm_email(v):
    return v.strip().lower() if isinstance(v, str) else v


class RequestSchema(Schema):
    """Incoming bodies: unknown keys are ignored, emails are normalized."""

    class Meta:
        unknown = EXCLUDE

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data = dict(data)
            data["email"] = _norm_email(data["email"])
        return data


class QRPayloadSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    emp_id = fields.String(required=True, validate=validate.Length(min=1, max=64))
    emp_uname = fields.String(allow_none=True, validate=validate.Length(max=128))
    emp_email = fields.Email(required=True)
    emp_mobile_no = fields.String(allow_none=True)
    emp_name = fields.String(allow_none=True)

    @pre_load
    def normalize(self, data, **kwargs):
        if not isinstance(data, dict):
            return data
        data = dict(data)
        # badge printers emit numeric ids and phone numbers
        for key in ("emp_id", "emp_mobile_no"):
            if isinstance(data.get(key), int):
                data[key] = str(data[key])
        for key in ("emp_id", "emp_uname"):
            if isinstance(data.get(key), str):
                data[key] = data[key].strip()
        data["emp_email"] = _norm_email(data.get("emp_email"))
        data.pop("emp_pwd", None)
        return data


class DeviceInfoSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    deviceId = fields.String(allow_none=True, validate=validate.Length(max=128))
    platform = fields.String(allow_none=True)
    version = fields.String(allow_none=True)
    model = fields.String(allow_none=True)


class ScanQRSchema(RequestSchema):
    qrPayload = fields.String(required=True)
    deviceInfo = fields.Nested(DeviceInfoSchema, allow_none=True)

    @pre_load
    def accept_legacy_key(self, data, **kwargs):
        # older app builds post the payload as "qrData"
        if isinstance(data, dict) and "qrPayload" not in data and "qrData" in data:
            data = dict(data)
            data["qrPayload"] = data.pop("qrData")
        return data


class VerifyEmailSchema(RequestSchema):
    email = fields.Email(required=True)
    verificationCode = fields.String(
        required=True,
        validate=validate.Regexp(r"^\d{6}$", error="Verification code must be exactly 6 digits"),
    )


class ResendCodeSchema(RequestSchema):
    email = fields.Email(required=True)


class SetPasswordSchema(RequestSchema):
    email = fields.Email(required=True)
    mobilePassword = fields.String(required=True, load_only=True, validate=validate.Length(min=1))
    confirmPassword = fields.String(required=True, load_only=True)

    @validates("mobilePassword")
    def validate_password(self, value, **kwargs):
        min_length = current_app.config.get("MIN_PASSWORD_LENGTH", 6)
        if len(value) < min_length:
            raise ValidationError(f"Password must be at least {min_length} characters long.")


class LoginSchema(RequestSchema):
    username = fields.String()
    email = fields.String()
    password = fields.String(required=True, load_only=True)
    deviceInfo = fields.Nested(DeviceInfoSchema, allow_none=True)

    @validates_schema
    def require_identifier(self, data, **kwargs):
        if not data.get("username") and not data.get("email"):
            raise ValidationError("username or email is required", field_name="username")


class QuickLoginSchema(RequestSchema):
    userId = fields.String(required=True)
    deviceInfo = fields.Nested(DeviceInfoSchema, allow_none=True)


class RefreshSchema(RequestSchema):
    refreshToken = fields.String(required=True)


class LogoutSchema(RequestSchema):
    userId = fields.String(allow_none=True)


class RecoverSessionSchema(RequestSchema):
    userId = fields.String(allow_none=True)
    email = fields.String(allow_none=True)
    deviceId = fields.String(allow_none=True)

    @validates_schema
    def require_identifier(self, data, **kwargs):
        if not data.get("userId") and not data.get("email"):
            raise ValidationError("userId or email is required", field_name="userId")


class AccountOutSchema(Schema):
    id = fields.String()
    externalId = fields.String(attribute="external_id")
    username = fields.String()
    email = fields.String()
    name = fields.String(allow_none=True)
    phone = fields.String(allow_none=True)
    isRegistered = fields.Boolean(attribute="is_registered")
    lastLoginAt = fields.DateTime(attribute="last_login_at", allow_none=True)


class SessionOutSchema(Schema):
    sessionId = fields.String(attribute="session_id")
    deviceId = fields.String(attribute="device_id", allow_none=True)
    expiresAt = fields.DateTime(attribute="expires_at")
    quickLoginEnabled = fields.Boolean(attribute="quick_login_enabled")
    quickLoginExpiresAt = fields.DateTime(attribute="quick_login_expires_at", allow_none=True)


class SavedAccountOutSchema(Schema):
    id = fields.String()
    username = fields.String()
    email = fields.String()
    name = fields.String(allow_none=True)
    hasQuickAccess = fields.Boolean()
    lastLoginAt = fields.DateTime(allow_none=True)


class DeviceOutSchema(Schema):
    deviceId = fields.String()
    deviceInfo = fields.Dict(allow_none=True)
    sessionId = fields.String()
    isActive = fields.Boolean()
    hasQuickAccess = fields.Boolean()
    lastLoginAt = fields.DateTime(allow_none=True)
    lastActivityAt = fields.DateTime(allow_none=True)
