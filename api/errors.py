"""
Global error handlers. Every failure leaves the API in one envelope:

    {"success": false, "error": <CODE>, "message": ..., "status": <http>, [details], [extra]}

`error` is the stable discriminator clients branch on.
"""
import logging

from flask import current_app, jsonify
from marshmallow import ValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from werkzeug.exceptions import HTTPException

from models import storage
from services.errors import AuthError, StoreUnavailable

logger = logging.getLogger(__name__)

HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    415: "UNSUPPORTED_MEDIA_TYPE",
    422: "VALIDATION_ERROR",
    429: "TOO_MANY_REQUESTS",
}

UNIQUE_MARKERS = ("unique constraint", "unique violation", "duplicate key")


def error_response(error: str, message: str, status: int, details: dict | None = None, **extra):
    body = {"success": False, "error": error, "message": message, "status": status}
    if details:
        body["details"] = details
    body.update(extra)
    return jsonify(body), status


def _debug() -> bool:
    return bool(current_app and current_app.debug)


def register_error_handlers(app):
    @app.errorhandler(AuthError)
    def handle_auth_error(err: AuthError):
        if err.status >= 500:
            logger.warning("Transient failure: %s", err.message)
        return jsonify(err.to_dict()), err.status

    # request bodies that fail their marshmallow schema
    @app.errorhandler(ValidationError)
    def handle_validation_error(err: ValidationError):
        return error_response("VALIDATION_ERROR", "Invalid input", 422, details=err.messages)

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(err: IntegrityError):
        storage.rollback()
        db_error = str(getattr(err, "orig", err))
        if _debug():
            logger.exception("Integrity error", exc_info=err)
        details = {"db_error": db_error} if _debug() else None
        if any(marker in db_error.lower() for marker in UNIQUE_MARKERS):
            return error_response("CONFLICT", "Identity already belongs to another account.", 409, details=details)
        return error_response("BAD_REQUEST", "Request conflicts with stored account state.", 400, details=details)

    # store unreachable or locked: transient, the client may retry
    @app.errorhandler(OperationalError)
    def handle_operational_error(err: OperationalError):
        storage.rollback()
        logger.exception("Store unavailable", exc_info=err)
        return jsonify(StoreUnavailable().to_dict()), StoreUnavailable.status

    # abort(...) and routing errors
    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException):
        status = err.code or 400
        return error_response(HTTP_ERROR_CODES.get(status, "BAD_REQUEST"), err.description, status)

    @app.errorhandler(Exception)
    def handle_unexpected(err: Exception):
        logger.exception("Unhandled exception", exc_info=err)
        details = {"type": type(err).__name__, "message": str(err)} if _debug() else None
        return error_response("INTERNAL_ERROR", "An unexpected error occurred", 500, details=details)
