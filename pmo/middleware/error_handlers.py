"""
App-level error handlers.

The single place mapping an exception kind to an HTTP status and the
JSON envelope ``{"success": false, "message": ..., "code": ...}``.
Services raise ``PMOError`` subclasses; store exceptions that escape a
service are translated here as a last resort. Internal exception text is
only exposed when ``EXPOSE_ERROR_DETAIL`` is on.
"""

import logging

from flask import current_app, g, request
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from werkzeug.exceptions import HTTPException

from pmo.core.exceptions import (
    AuthorizationError,
    ConflictError,
    DependencyError,
    NotFoundError,
    PMOError,
    StoreError,
    ValidationError,
)
from pmo.models import db
from pmo.services.audit_service import get_audit
from pmo.utils.errors import E, api_error

logger = logging.getLogger(__name__)

_HTTP_CODES = {
    400: E.VALIDATION_INVALID,
    401: E.UNAUTHENTICATED,
    403: E.FORBIDDEN,
    404: E.NOT_FOUND,
    405: E.METHOD_NOT_ALLOWED,
    409: E.CONFLICT_DUPLICATE,
    413: E.PAYLOAD_TOO_LARGE,
    429: E.RATE_LIMITED,
}


def _details(exc: PMOError) -> dict:
    if isinstance(exc, AuthorizationError):
        return {
            "required_permission": exc.required_permission,
            "user_role": exc.user_role,
            "required_roles": exc.required_roles,
        }
    if isinstance(exc, DependencyError):
        return {"dependents": exc.dependents}
    if isinstance(exc, ValidationError) and exc.details:
        return {"details": exc.details}
    if isinstance(exc, NotFoundError):
        return {"resource": exc.resource}
    if isinstance(exc, ConflictError):
        return {"field": exc.field}
    return {}


def _internal_detail(exc: Exception) -> dict:
    if current_app.config.get("EXPOSE_ERROR_DETAIL"):
        return {"detail": str(exc)}
    return {}


def register_error_handlers(app):
    """Attach the handlers to ``app``."""

    @app.errorhandler(PMOError)
    def _handle_pmo_error(exc: PMOError):
        db.session.rollback()
        if isinstance(exc, AuthorizationError):
            get_audit().denied(exc, getattr(g, "principal", None))
        elif isinstance(exc, StoreError):
            logger.error("Store error on %s %s: %s", request.method, request.path, exc.message,
                         extra={"error_code": exc.error_code,
                                "request_id": getattr(g, "request_id", None)})
        else:
            logger.info("%s on %s %s: %s", type(exc).__name__, request.method, request.path,
                        exc.message, extra={"error_code": exc.error_code})
        return api_error(exc.error_code, exc.message, status=exc.status_code, details=_details(exc))

    @app.errorhandler(IntegrityError)
    def _handle_integrity(exc: IntegrityError):
        db.session.rollback()
        logger.warning("Unhandled integrity error on %s %s: %s", request.method, request.path, exc.orig)
        return api_error(
            E.CONFLICT_DUPLICATE, "The change conflicts with existing data",
            status=409, details=_internal_detail(exc),
        )

    @app.errorhandler(OperationalError)
    @app.errorhandler(PoolTimeoutError)
    def _handle_store(exc):
        db.session.rollback()
        logger.exception("Store unavailable on %s %s", request.method, request.path)
        return api_error(E.DATABASE, StoreError().message, status=500, details=_internal_detail(exc))

    @app.errorhandler(HTTPException)
    def _handle_http(exc: HTTPException):
        code = _HTTP_CODES.get(exc.code, E.INTERNAL if exc.code >= 500 else E.VALIDATION_INVALID)
        details = {"path": request.path} if exc.code == 404 else None
        if exc.code == 429:
            details = {"retry_after": exc.description}
        return api_error(code, exc.description or exc.name, status=exc.code, details=details)

    @app.errorhandler(Exception)
    def _handle_unexpected(exc: Exception):
        db.session.rollback()
        logger.exception("Unhandled error on %s %s", request.method, request.path,
                         extra={"request_id": getattr(g, "request_id", None)})
        return api_error(E.INTERNAL, "Internal server error", status=500, details=_internal_detail(exc))
