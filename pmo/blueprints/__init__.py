"""
PMO Portfolio API
Blueprint registry and shared request helpers.
"""

from flask import request

from pmo.core.exceptions import ValidationError
from pmo.utils.errors import api_ok


def json_body() -> dict:
    """The request's JSON object body; a non-object body is a validation error."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def arg_int(name: str, default=None):
    """Integer query parameter; a malformed value is a validation error."""
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer", details={name: "not an integer"}) from None


def updated(entity, rows: int, label: str):
    """Envelope for a partial update; ``count`` carries the affected rows."""
    message = f"{label} updated" if rows else "Nothing to update"
    return api_ok(entity.to_dict(), message, count=rows)
