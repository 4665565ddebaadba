"""Standardised API responses.

Usage
-----
    from procurement.utils.errors import api_error, api_ok, E

    return api_ok(role.to_dict(), status=201)
    return api_error(E.VALIDATION_ERROR, "name is required")
"""

from __future__ import annotations

import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException

from procurement.core.exceptions import ProcurementError
from procurement.models import db

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    CANNOT_APPROVE_OWN_REQUEST = "CANNOT_APPROVE_OWN_REQUEST"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    INVALID_REQUEST_STATUS = "INVALID_REQUEST_STATUS"
    REQUEST_ALREADY_PROCESSED = "REQUEST_ALREADY_PROCESSED"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    UNSUPPORTED_MEDIA_TYPE = "UNSUPPORTED_MEDIA_TYPE"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_ERROR: 400,
    E.UNAUTHORIZED: 401,
    E.FORBIDDEN: 403,
    E.INSUFFICIENT_PERMISSIONS: 403,
    E.CANNOT_APPROVE_OWN_REQUEST: 403,
    E.RESOURCE_NOT_FOUND: 404,
    E.METHOD_NOT_ALLOWED: 405,
    E.RESOURCE_CONFLICT: 409,
    E.INVALID_REQUEST_STATUS: 409,
    E.REQUEST_ALREADY_PROCESSED: 409,
    E.PAYLOAD_TOO_LARGE: 413,
    E.UNSUPPORTED_MEDIA_TYPE: 415,
    E.RATE_LIMITED: 429,
    E.INTERNAL_SERVER_ERROR: 500,
}

_HTTP_STATUS_CODES: dict[int, str] = {
    400: E.VALIDATION_ERROR,
    401: E.UNAUTHORIZED,
    403: E.FORBIDDEN,
    404: E.RESOURCE_NOT_FOUND,
    405: E.METHOD_NOT_ALLOWED,
    413: E.PAYLOAD_TOO_LARGE,
    415: E.UNSUPPORTED_MEDIA_TYPE,
    429: E.RATE_LIMITED,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (field errors, required permission, ...).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    error: dict = {"code": code, "message": message}
    if details:
        error["details"] = details

    return jsonify({"success": False, "error": error}), http_status


def api_ok(data=None, *, status: int = 200, **extra):
    """Return a standard JSON success response: ``{"success": true, "data": ...}``."""
    body = {"success": True, "data": data}
    body.update(extra)
    return jsonify(body), status


def register_error_handlers(app) -> None:
    """Map domain exceptions, HTTP errors and crashes to the error envelope."""

    @app.errorhandler(ProcurementError)
    def _handle_domain_error(e: ProcurementError):
        db.session.rollback()
        if e.status_code >= 500:
            logger.error("Domain error %s: %s", e.code, e.message)
        return api_error(e.code, e.message, status=e.status_code, details=e.details or None)

    @app.errorhandler(HTTPException)
    def _handle_http_error(e: HTTPException):
        code = _HTTP_STATUS_CODES.get(e.code, E.INTERNAL_SERVER_ERROR)
        return api_error(code, e.description or e.name, status=e.code)

    @app.errorhandler(Exception)
    def _handle_unexpected(e: Exception):
        db.session.rollback()
        logger.exception("Unhandled error: %s", e)
        return api_error(E.INTERNAL_SERVER_ERROR, "Internal server error", status=500)
