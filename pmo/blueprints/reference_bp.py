"""
Reference data blueprint: lookups for forms and filters.

    GET /api/v1/reference/all
    GET /api/v1/reference/directions
    GET /api/v1/reference/statuses
    GET /api/v1/reference/users        active users only
    GET /api/v1/reference/roles
    GET /api/v1/reference/priorities
    GET /api/v1/reference/provider-types
"""

from flask import Blueprint

from pmo.middleware.jwt_auth import current_principal
from pmo.services import reference_service
from pmo.utils.errors import api_ok

reference_bp = Blueprint("reference", __name__, url_prefix="/api/v1/reference")


def _listing(items):
    return api_ok(items, count=len(items))


@reference_bp.route("/all", methods=["GET"])
def all_reference():
    return api_ok(reference_service.all_reference_data(current_principal()))


@reference_bp.route("/directions", methods=["GET"])
def directions():
    return _listing(reference_service.list_directions(current_principal()))


@reference_bp.route("/statuses", methods=["GET"])
def statuses():
    return _listing(reference_service.list_statuses(current_principal()))


@reference_bp.route("/users", methods=["GET"])
def users():
    return _listing(reference_service.list_active_users(current_principal()))


@reference_bp.route("/roles", methods=["GET"])
def roles():
    return _listing(reference_service.list_roles(current_principal()))


@reference_bp.route("/priorities", methods=["GET"])
def priorities():
    return _listing(reference_service.list_priorities(current_principal()))


@reference_bp.route("/provider-types", methods=["GET"])
def provider_types():
    return _listing(reference_service.list_provider_types(current_principal()))
