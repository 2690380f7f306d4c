"""
Error taxonomy for the registration and session core.

Every error carries a stable `code` so clients can branch without matching on
messages, the HTTP status it maps to, and optional extra response fields.
"""
from __future__ import annotations


class AuthError(Exception):
    code = "AUTH_ERROR"
    status = 400
    default_message = "Authentication error"

    def __init__(self, message: str | None = None, **extra):
        self.message = message or self.default_message
        self.extra = extra
        super().__init__(self.message)

    def to_dict(self) -> dict:
        payload = {
            "success": False,
            "error": self.code,
            "message": self.message,
            "status": self.status,
        }
        payload.update(self.extra)
        return payload


class AlreadyRegistered(AuthError):
    code = "ALREADY_REGISTERED"
    status = 409
    default_message = "Account already registered. Please log in instead."

    def __init__(self, message: str | None = None, **extra):
        extra.setdefault("alreadyRegistered", True)
        super().__init__(message, **extra)


class InvalidVerificationCode(AuthError):
    code = "INVALID_VERIFICATION_CODE"
    default_message = "Invalid or expired verification code"


class PasswordMismatch(AuthError):
    code = "PASSWORD_MISMATCH"
    default_message = "Passwords do not match"


class NotEmailVerified(AuthError):
    code = "NOT_EMAIL_VERIFIED"
    default_message = "Email address has not been verified"


class InvalidQRPayload(AuthError):
    code = "INVALID_QR_PAYLOAD"
    default_message = "QR code could not be read"


class InvalidCredentials(AuthError):
    code = "INVALID_CREDENTIALS"
    status = 401
    default_message = "Invalid credentials"


class QuickLoginUnavailable(AuthError):
    code = "QUICK_LOGIN_UNAVAILABLE"
    status = 401
    default_message = "Quick login not available"


class ReauthenticationRequired(AuthError):
    code = "REAUTHENTICATION_REQUIRED"
    status = 401
    default_message = "Re-authentication required - please log in with your password"


class InvalidRefreshToken(AuthError):
    code = "INVALID_REFRESH_TOKEN"
    status = 401
    default_message = "Invalid or expired refresh token"


class AccountNotFound(AuthError):
    code = "ACCOUNT_NOT_FOUND"
    status = 404
    default_message = "Account not found"


class StoreUnavailable(AuthError):
    code = "STORE_UNAVAILABLE"
    status = 503
    default_message = "Service temporarily unavailable, please retry"
