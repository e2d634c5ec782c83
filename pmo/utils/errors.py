"""Standardised API response envelopes.

Every response body has the shape::

    {"success": bool, "message": str, "data"?: ..., "count"?: int}

Usage
-----
    from pmo.utils.errors import api_ok, api_error, E

    return api_ok(project.to_dict(), "Project created", status=201)
    return api_error(E.NOT_FOUND, "Project not found")
"""

from __future__ import annotations

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants."""

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    DEPENDENCY_BLOCKED = "ERR_DEPENDENCY_BLOCKED"

    # Authentication – HTTP 401
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"

    # Permissions – HTTP 403
    FORBIDDEN = "ERR_FORBIDDEN"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"
    METHOD_NOT_ALLOWED = "ERR_METHOD_NOT_ALLOWED"

    # Conflict / duplicate – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"

    # Request shape
    PAYLOAD_TOO_LARGE = "ERR_PAYLOAD_TOO_LARGE"
    RATE_LIMITED = "ERR_RATE_LIMITED"

    # Server – HTTP 500
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.DEPENDENCY_BLOCKED: 400,
    E.UNAUTHENTICATED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.METHOD_NOT_ALLOWED: 405,
    E.CONFLICT_DUPLICATE: 409,
    E.PAYLOAD_TOO_LARGE: 413,
    E.RATE_LIMITED: 429,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}


def api_ok(data=None, message: str = "OK", *, status: int = 200, count: int | None = None):
    """Return a standard JSON success response.

    ``count`` is added for list payloads so clients need not re-count.
    """
    body: dict = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    if count is not None:
        body["count"] = count
    return jsonify(body), status


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Error envelope: ``{"success": false, "message", "code", **details}``.

    ``status`` defaults to the code's usual HTTP status (400 for unknown
    codes). ``details`` keys are merged at the top level so clients read
    ``required_roles`` or ``dependents`` without unwrapping.
    """
    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "success": False,
        "message": message,
        "code": code,
    }
    if details:
        body.update(details)

    return jsonify(body), http_status
