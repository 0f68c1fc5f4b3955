"""Response envelopes shared by the API and the auth middleware.

    return api_ok({"config": cfg.to_dict()})
    return api_error(E.VALIDATION_INVALID, "Validation failed", details={"dateFrom": "..."})

Success:  ``{"success": true, "data": ..., "message"?: "..."}``
Failure:  ``{"success": false, "error": {"message", "code", "details"?}}``
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Machine-readable error codes."""

    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    UNAUTHORIZED = "ERR_UNAUTHORIZED"
    FORBIDDEN = "ERR_FORBIDDEN"
    NOT_FOUND = "ERR_NOT_FOUND"
    UNSUPPORTED_MEDIA = "ERR_UNSUPPORTED_MEDIA_TYPE"
    INTERNAL = "ERR_INTERNAL"


_STATUS: dict[str, int] = {
    E.VALIDATION_INVALID: 400,
    E.UNAUTHORIZED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.UNSUPPORTED_MEDIA: 415,
    E.INTERNAL: 500,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """Build ``(response, status)`` for a failure.

    ``status`` defaults to the code's usual HTTP status, else 400. ``details``
    carries the field → message map of a validation failure.
    """
    error: dict = {"message": message, "code": code}
    if details:
        error["details"] = details
    return jsonify({"success": False, "error": error}), status or _STATUS.get(code, 400)


def api_ok(data, *, message: str | None = None, status: int = 200):
    body: dict = {"success": True, "data": data}
    if message:
        body["message"] = message
    return jsonify(body), status
