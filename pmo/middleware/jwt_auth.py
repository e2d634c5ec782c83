"""
JWT Auth Middleware: every /api/v1 route requires a bearer token,
except login and health.

On success sets ``g.jwt_user_id`` and ``g.principal``. Missing, expired
or invalid tokens, and tokens of unknown or inactive users, raise
AuthenticationError (401).
"""

import jwt as pyjwt
from flask import g, request

from pmo.core.access import Principal
from pmo.core.exceptions import AuthenticationError
from pmo.services.auth_service import load_principal
from pmo.services.jwt_service import decode_access_token

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/auth/login",
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.jwt_user_id = None
        g.principal = None

        path = request.path
        if not path.startswith("/api/v1/") or request.method == "OPTIONS":
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            raise AuthenticationError("Access token required")

        token = auth_header[7:]  # Strip "Bearer "
        try:
            payload = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            raise AuthenticationError("Token expired") from None
        except pyjwt.InvalidTokenError:
            raise AuthenticationError("Invalid token") from None

        g.jwt_user_id = payload["sub"]
        g.principal = load_principal(payload["sub"])


def current_principal() -> Principal:
    """The authenticated caller of the current request."""
    principal = getattr(g, "principal", None)
    if principal is None:
        raise AuthenticationError("Access token required")
    return principal
