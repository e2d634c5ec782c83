"""
Users blueprint: account administration (functional admin) and the
caller's own profile.

Endpoints:
    GET    /api/v1/users                  list (search, role, status, page, per_page)
    POST   /api/v1/users                  create
    GET    /api/v1/users/stats            counts by role and status
    GET    /api/v1/users/me/profile       the caller's own account
    GET    /api/v1/users/<id>
    PUT    /api/v1/users/<id>             partial update (PATCH alias)
    DELETE /api/v1/users/<id>             soft delete (status → inactive)
    PUT    /api/v1/users/<id>/password    change / reset password
"""

from flask import Blueprint, request

from pmo.blueprints import arg_int, json_body, updated
from pmo.middleware.jwt_auth import current_principal
from pmo.services import user_service
from pmo.utils.errors import api_ok

users_bp = Blueprint("users", __name__, url_prefix="/api/v1")


@users_bp.route("/users", methods=["GET"])
def list_users():
    page = user_service.list_users(
        current_principal(),
        search=request.args.get("search"),
        role=request.args.get("role"),
        status=request.args.get("status"),
        page=arg_int("page", 1),
        per_page=arg_int("per_page", user_service.DEFAULT_PER_PAGE),
    )
    return api_ok(page, count=page["total"])


@users_bp.route("/users", methods=["POST"])
def create_user():
    user = user_service.create_user(json_body(), current_principal())
    return api_ok(user.to_dict(), "User created", status=201)


@users_bp.route("/users/stats", methods=["GET"])
def user_stats():
    return api_ok(user_service.user_stats(current_principal()))


@users_bp.route("/users/me/profile", methods=["GET"])
def my_profile():
    return api_ok(user_service.get_profile(current_principal()).to_dict())


@users_bp.route("/users/<int:user_id>", methods=["GET"])
def get_user(user_id):
    return api_ok(user_service.get_user(user_id, current_principal()).to_dict())


@users_bp.route("/users/<int:user_id>", methods=["PUT", "PATCH"])
def update_user(user_id):
    user, rows = user_service.update_user(user_id, json_body(), current_principal())
    return updated(user, rows, "User")


@users_bp.route("/users/<int:user_id>", methods=["DELETE"])
def delete_user(user_id):
    user = user_service.delete_user(user_id, current_principal())
    return api_ok(user.to_dict(), "User deactivated")


@users_bp.route("/users/<int:user_id>/password", methods=["PUT"])
def change_password(user_id):
    user_service.change_password(user_id, json_body(), current_principal())
    return api_ok(message="Password updated")
