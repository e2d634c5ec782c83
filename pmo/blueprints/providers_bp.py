"""
Providers blueprint: the portfolio's external suppliers.

Endpoints:
    GET    /api/v1/providers                     list (status, type, search)
    POST   /api/v1/providers                     create (admin/pmo)
    GET    /api/v1/providers/stats
    GET    /api/v1/providers/<id>
    PUT    /api/v1/providers/<id>                partial update (PATCH alias)
    DELETE /api/v1/providers/<id>                blocked while contracts exist
    PUT    /api/v1/providers/<id>/status         { "status": "active" | "inactive" }
    GET    /api/v1/providers/<id>/contracts
    GET    /api/v1/providers/<id>/projects
"""

from flask import Blueprint, request

from pmo.blueprints import json_body, updated
from pmo.middleware.jwt_auth import current_principal
from pmo.services import provider_service
from pmo.utils.errors import api_ok

providers_bp = Blueprint("providers", __name__, url_prefix="/api/v1")


@providers_bp.route("/providers", methods=["GET"])
def list_providers():
    providers = provider_service.list_providers(
        current_principal(),
        status=request.args.get("status"),
        provider_type=request.args.get("type"),
        search=request.args.get("search"),
    )
    items = [provider_service.provider_summary(p) for p in providers]
    return api_ok(items, count=len(items))


@providers_bp.route("/providers", methods=["POST"])
def create_provider():
    provider = provider_service.create_provider(json_body(), current_principal())
    return api_ok(provider.to_dict(), "Provider created", status=201)


@providers_bp.route("/providers/stats", methods=["GET"])
def provider_stats():
    return api_ok(provider_service.provider_stats(current_principal()))


@providers_bp.route("/providers/<int:provider_id>", methods=["GET"])
def get_provider(provider_id):
    provider = provider_service.get_provider(provider_id, current_principal())
    return api_ok(provider_service.provider_summary(provider))


@providers_bp.route("/providers/<int:provider_id>", methods=["PUT", "PATCH"])
def update_provider(provider_id):
    provider, rows = provider_service.update_provider(provider_id, json_body(), current_principal())
    return updated(provider, rows, "Provider")


@providers_bp.route("/providers/<int:provider_id>", methods=["DELETE"])
def delete_provider(provider_id):
    provider_service.delete_provider(provider_id, current_principal())
    return api_ok(message="Provider deleted")


@providers_bp.route("/providers/<int:provider_id>/status", methods=["PUT"])
def set_provider_status(provider_id):
    provider = provider_service.set_provider_status(
        provider_id, json_body().get("status"), current_principal(),
    )
    return api_ok(provider.to_dict(), f"Provider {provider.status}")


@providers_bp.route("/providers/<int:provider_id>/contracts", methods=["GET"])
def provider_contracts(provider_id):
    contracts = provider_service.provider_contracts(provider_id, current_principal())
    items = [c.to_dict() for c in contracts]
    return api_ok(items, count=len(items))


@providers_bp.route("/providers/<int:provider_id>/projects", methods=["GET"])
def provider_projects(provider_id):
    links = provider_service.provider_projects(provider_id, current_principal())
    items = [link.to_dict() for link in links]
    return api_ok(items, count=len(items))
