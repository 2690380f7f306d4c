"""
Authentication blueprint:
- POST /auth/scan-qr
- POST /auth/verify-email
- POST /auth/resend-code
- POST /auth/set-mobile-password
- POST /auth/login
- POST /auth/quick-login
- POST /auth/refresh
- POST /auth/logout
- GET  /auth/profile
- POST /auth/recover-session
- GET  /auth/health

The implementation:
- Registration is QR scan -> email code -> mobile password (services.registration / services.verification)
- Issues 24h access tokens and 7d refresh tokens bound to a server-side session (services.sessions)
- Quick login lets a trusted device skip the password while its session window is open
- Implement JWT validation without using flask-jwt-extended
"""
from __future__ import annotations

from datetime import datetime, timezone

from flask import Blueprint, request, jsonify, g, abort, current_app

from models.schemas.auth import (
    AccountOutSchema,
    LoginSchema,
    LogoutSchema,
    QuickLoginSchema,
    RecoverSessionSchema,
    RefreshSchema,
    ResendCodeSchema,
    ScanQRSchema,
    SessionOutSchema,
    SetPasswordSchema,
    VerifyEmailSchema,
)
from services import recovery, registration, sessions, verification
from services.errors import AlreadyRegistered
from services.qr import decode_qr_payload
from utils.decorators import jwt_required

bp = Blueprint("auth", __name__)

scan_qr_schema = ScanQRSchema()
verify_email_schema = VerifyEmailSchema()
resend_code_schema = ResendCodeSchema()
set_password_schema = SetPasswordSchema()
login_schema = LoginSchema()
quick_login_schema = QuickLoginSchema()
refresh_schema = RefreshSchema()
logout_schema = LogoutSchema()
recover_schema = RecoverSessionSchema()
account_out_schema = AccountOutSchema()
session_out_schema = SessionOutSchema()


def _verification_payload(result: registration.ScanResult) -> dict:
    account = result.account
    data = {
        "result": result.outcome.value,
        "userId": account.id,
        "email": account.email,
        "name": account.name,
        "username": account.username,
        "nextStep": result.next_step,
        "skipVerification": result.skip_verification,
        "emailSent": result.email_sent,
    }
    if result.code_expires_at:
        data["codeExpiresAt"] = result.code_expires_at.isoformat()
    if result.verification_code and current_app.config.get("EXPOSE_VERIFICATION_CODE"):
        data["verificationCode"] = result.verification_code
    return data


def _login_payload(result: sessions.LoginResult, message: str) -> dict:
    return {
        "success": True,
        "message": message,
        "data": {
            "user": account_out_schema.dump(result.account),
            "tokens": {
                "accessToken": result.access.token,
                "refreshToken": result.refresh.token,
                "tokenType": "bearer",
                "expiresIn": int(current_app.config["ACCESS_TOKEN_EXPIRES"].total_seconds()),
            },
            "session": session_out_schema.dump(result.session),
        },
    }


@bp.post("/scan-qr")
def scan_qr():
    """
    Scan an employer QR code and start (or resume) registration.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            qrPayload: { type: string, description: "base64(json) with emp_id, emp_uname, emp_email, emp_mobile_no" }
            deviceInfo: { type: object }
    responses:
      200:
        description: Registration started or resumed; a verification code was issued
      400:
        description: QR code could not be read
      409:
        description: Account already registered and logged in
    """
    data = scan_qr_schema.load(request.get_json(silent=True) or {})
    identity = decode_qr_payload(data["qrPayload"])
    result = registration.scan_qr(identity)

    if result.outcome is registration.ScanOutcome.REJECTED:
        raise AlreadyRegistered(nextStep=result.next_step)

    if result.skip_verification:
        message = "Email already verified. Please set your mobile password."
    elif result.outcome is registration.ScanOutcome.RESUMED:
        message = "Welcome back. A new verification code was sent to your email."
    else:
        message = "QR code scanned successfully. Verification code sent to email."
    return jsonify(
        {
            "success": True,
            "message": message,
            "nextStep": result.next_step,
            "skipVerification": result.skip_verification,
            "data": _verification_payload(result),
        }
    ), 200


@bp.post("/verify-email")
def verify_email():
    """
    Verify the email address with the 6-digit code.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            email: { type: string }
            verificationCode: { type: string }
    responses:
      200:
        description: Email verified
      400:
        description: Invalid or expired code
    """
    data = verify_email_schema.load(request.get_json(silent=True) or {})
    verification.verify_email(data["email"], data["verificationCode"])
    return jsonify(
        {
            "success": True,
            "message": "Email verified successfully",
            "nextStep": "set_password",
        }
    ), 200


@bp.post("/resend-code")
def resend_code():
    """
    Issue a fresh verification code.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            email: { type: string }
    responses:
      200:
        description: Code re-issued (or email already verified)
      404:
        description: Unknown email
      409:
        description: Already registered
    """
    data = resend_code_schema.load(request.get_json(silent=True) or {})
    result = verification.resend_code(data["email"])
    message = (
        "Email already verified. Please set your mobile password."
        if result.skip_verification
        else "A new verification code was sent to your email."
    )
    return jsonify(
        {
            "success": True,
            "message": message,
            "nextStep": result.next_step,
            "skipVerification": result.skip_verification,
            "data": _verification_payload(result),
        }
    ), 200


@bp.post("/set-mobile-password")
def set_mobile_password():
    """
    Set the mobile password and complete registration.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            email: { type: string }
            mobilePassword: { type: string }
            confirmPassword: { type: string }
    responses:
      201:
        description: Registration completed
      400:
        description: Passwords do not match or email not verified
      409:
        description: Account already registered
    """
    data = set_password_schema.load(request.get_json(silent=True) or {})
    account = verification.set_password(data["email"], data["mobilePassword"], data["confirmPassword"])
    return jsonify(
        {
            "success": True,
            "message": "Registration completed successfully! You can now login.",
            "nextStep": "login",
            "accountSummary": account_out_schema.dump(account),
        }
    ), 201


@bp.post("/login")
def login():
    """
    Login with username (or email) and mobile password
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             username: { type: string }
             email: { type: string }
             password: { type: string }
             deviceInfo: { type: object }
    responses:
      200:
        description: OK (returns tokens and session)
      401:
        description: Unauthorized
    """
    data = login_schema.load(request.get_json(silent=True) or {})
    identifier = data.get("username") or data.get("email")
    result = sessions.login(identifier, data["password"], data.get("deviceInfo"))
    return jsonify(_login_payload(result, "Login successful")), 200


@bp.post("/quick-login")
def quick_login():
    """
    Password-less login for a trusted device
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             userId: { type: string }
             deviceInfo: { type: object }
    responses:
      200:
        description: OK (returns tokens and session)
      401:
        description: Quick login unavailable; `action` says whether to log in or re-register
    """
    data = quick_login_schema.load(request.get_json(silent=True) or {})
    result = sessions.quick_login(data["userId"], data.get("deviceInfo"))
    return jsonify(_login_payload(result, "Quick login successful")), 200


@bp.post("/refresh")
def refresh():
    """
    Use refresh token to obtain new access and refresh tokens (rotation)
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             refreshToken: { type: string }
    responses:
      200:
        description: OK (returns tokens and session)
      401:
        description: Invalid, spent or expired refresh token
    """
    data = refresh_schema.load(request.get_json(silent=True) or {})
    result = sessions.refresh_tokens(data["refreshToken"])
    return jsonify(_login_payload(result, "Token refreshed")), 200


@bp.post("/logout")
@jwt_required()
def logout():
    """
    logout: ends the current session and marks the account logged out
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             userId: { type: string }
    responses:
      200:
        description: Logged out
      401:
        description: Unauthorized
      403:
        description: userId does not match the token
    """
    data = logout_schema.load(request.get_json(silent=True) or {})
    user_id = data.get("userId")
    if user_id and user_id != g.current_account.id:
        abort(403, description="Token does not belong to this account")
    sessions.logout(g.current_account, g.current_session)
    return jsonify({"success": True, "message": "Logged out successfully"}), 200


@bp.get("/profile")
@jwt_required()
def profile():
    """
    Get current account info.
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
    """
    return jsonify(
        {
            "success": True,
            "data": {
                **account_out_schema.dump(g.current_account),
                "sessionId": g.current_session.session_id,
            },
        }
    ), 200


@bp.post("/recover-session")
def recover_session():
    """
    Decide how a client with a stale account id should sign back in
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             userId: { type: string }
             email: { type: string }
             deviceId: { type: string }
    responses:
      200:
        description: "action is qr_registration_required, login_required or retry_quick_login"
    """
    data = recover_schema.load(request.get_json(silent=True) or {})
    advice = recovery.advise(data.get("userId"), data.get("email"), data.get("deviceId"))
    return jsonify(
        {
            "success": True,
            "message": advice.message,
            "data": {"action": advice.action.value, "userId": advice.account_id},
        }
    ), 200


@bp.get("/health")
def health():
    """
    Health check for the authentication service
    ---
    tags:
      - Auth
    responses:
      200:
        description: Service is running
    """
    return {
        "success": True,
        "message": "Authentication service is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "Mobile Workforce Authentication",
    }, 200
