"""
Auth Blueprint: JWT authentication endpoints.

    POST /api/v1/auth/login  : Email + password → access token
    GET  /api/v1/auth/me     : Current user profile
    POST /api/v1/auth/logout : Acknowledge logout (tokens are stateless)
"""

from flask import Blueprint, current_app

from pmo import limiter
from pmo.blueprints import json_body
from pmo.middleware.jwt_auth import current_principal
from pmo.services import auth_service, user_service
from pmo.utils.errors import api_ok

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")


@auth_bp.route("/login", methods=["POST"])
@limiter.limit(lambda: current_app.config["LOGIN_RATE_LIMIT"])
def login():
    """
    Body: { "email": "...", "password": "..." }
    """
    data = json_body()
    result = auth_service.login(data.get("email"), data.get("password"))
    return api_ok(result, "Login successful")


@auth_bp.route("/me", methods=["GET"])
def me():
    user = user_service.get_profile(current_principal())
    return api_ok(user.to_dict())


@auth_bp.route("/logout", methods=["POST"])
def logout():
    auth_service.logout(current_principal())
    return api_ok(message="Logged out")
