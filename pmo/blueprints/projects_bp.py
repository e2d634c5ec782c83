"""
PMO Portfolio API
Projects blueprint: projects and everything that lives under one.

Endpoints summary:
    PROJECT      /api/v1/projects                              GET, POST
                 /api/v1/projects/stats                        GET
                 /api/v1/projects/recent                       GET
                 /api/v1/projects/dashboard                    GET
                 /api/v1/projects/<id>                         GET, PUT, PATCH, DELETE
                 /api/v1/projects/<id>/details                 GET
                 /api/v1/projects/<id>/recompute-progress      POST

    PHASE        /api/v1/projects/<pid>/phases                 GET, POST
                 /api/v1/phases/<id>                           PUT, PATCH, DELETE
                 /api/v1/phases/<id>/recompute-progress        POST

    DELIVERABLE  /api/v1/projects/<pid>/deliverables           GET, POST
                 /api/v1/deliverables/<id>                     PUT, PATCH, DELETE

    CONTRACT     /api/v1/projects/<pid>/contracts              GET, POST
                 /api/v1/contracts/<id>                        GET, PUT, PATCH, DELETE

    BUDGET       /api/v1/projects/<pid>/budget                 GET, POST, PUT (replace all)
                 /api/v1/budget-lines/<id>                     PATCH, DELETE

    PROVIDER     /api/v1/projects/<pid>/providers              POST
                 /api/v1/projects/<pid>/providers/<prov_id>    DELETE
"""

import logging

from flask import Blueprint, request

from pmo.blueprints import arg_int, json_body, updated
from pmo.core.exceptions import ValidationError
from pmo.middleware.jwt_auth import current_principal
from pmo.services import (
    budget_service,
    contract_service,
    deliverable_service,
    metrics_service,
    phase_service,
    project_service,
    provider_service,
)
from pmo.utils.errors import api_ok

logger = logging.getLogger(__name__)

projects_bp = Blueprint("projects", __name__, url_prefix="/api/v1")


# ═══════════════════════════════════════════════════════════════════════════
#  PROJECTS
# ═══════════════════════════════════════════════════════════════════════════

@projects_bp.route("/projects", methods=["GET"])
def list_projects():
    projects = project_service.list_projects(
        current_principal(),
        search=request.args.get("search"),
        status=request.args.get("status"),
    )
    items = [project_service.summary_dict(p) for p in projects]
    return api_ok(items, count=len(items))


@projects_bp.route("/projects", methods=["POST"])
def create_project():
    project = project_service.create_project(json_body(), current_principal())
    return api_ok(project.to_dict(), "Project created", status=201)


@projects_bp.route("/projects/stats", methods=["GET"])
def project_stats():
    return api_ok(project_service.get_stats(current_principal()))


@projects_bp.route("/projects/recent", methods=["GET"])
def recent_projects():
    limit = min(max(arg_int("limit", 5), 1), 50)
    items = [p.to_dict() for p in metrics_service.recent_projects(current_principal(), limit)]
    return api_ok(items, count=len(items))


@projects_bp.route("/projects/dashboard", methods=["GET"])
def project_dashboard():
    return api_ok(metrics_service.portfolio_dashboard(current_principal()))


@projects_bp.route("/projects/<int:project_id>", methods=["GET"])
def get_project(project_id):
    project = project_service.get_project(project_id, current_principal())
    return api_ok(project_service.summary_dict(project))


@projects_bp.route("/projects/<int:project_id>/details", methods=["GET"])
def project_details(project_id):
    return api_ok(project_service.get_project_details(project_id, current_principal()))


@projects_bp.route("/projects/<int:project_id>", methods=["PUT", "PATCH"])
def update_project(project_id):
    project, rows = project_service.update_project(project_id, json_body(), current_principal())
    return updated(project, rows, "Project")


@projects_bp.route("/projects/<int:project_id>", methods=["DELETE"])
def delete_project(project_id):
    project_service.delete_project(project_id, current_principal())
    return api_ok(message="Project deleted")


@projects_bp.route("/projects/<int:project_id>/recompute-progress", methods=["POST"])
def recompute_project_progress(project_id):
    pct = project_service.recompute_progress(project_id, current_principal())
    return api_ok({"project_id": project_id, "completion_pct": pct}, "Progress recomputed")


# ═══════════════════════════════════════════════════════════════════════════
#  PHASES
# ═══════════════════════════════════════════════════════════════════════════

@projects_bp.route("/projects/<int:project_id>/phases", methods=["GET"])
def list_phases(project_id):
    items = [p.to_dict() for p in phase_service.list_phases(project_id, current_principal())]
    return api_ok(items, count=len(items))


@projects_bp.route("/projects/<int:project_id>/phases", methods=["POST"])
def create_phase(project_id):
    phase = phase_service.create_phase(project_id, json_body(), current_principal())
    return api_ok(phase.to_dict(), "Phase created", status=201)


@projects_bp.route("/phases/<int:phase_id>", methods=["PUT", "PATCH"])
def update_phase(phase_id):
    phase, rows = phase_service.update_phase(phase_id, json_body(), current_principal())
    return updated(phase, rows, "Phase")


@projects_bp.route("/phases/<int:phase_id>", methods=["DELETE"])
def delete_phase(phase_id):
    phase_service.delete_phase(phase_id, current_principal())
    return api_ok(message="Phase deleted")


@projects_bp.route("/phases/<int:phase_id>/recompute-progress", methods=["POST"])
def recompute_phase_progress(phase_id):
    pct = phase_service.recompute_progress(phase_id, current_principal())
    return api_ok({"phase_id": phase_id, "completion_pct": pct}, "Progress recomputed")


# ═══════════════════════════════════════════════════════════════════════════
#  DELIVERABLES
# ═══════════════════════════════════════════════════════════════════════════

@projects_bp.route("/projects/<int:project_id>/deliverables", methods=["GET"])
def list_deliverables(project_id):
    deliverables = deliverable_service.list_deliverables(
        project_id,
        current_principal(),
        phase_id=arg_int("phase_id"),
        status=request.args.get("status"),
    )
    items = [d.to_dict() for d in deliverables]
    return api_ok(items, count=len(items))


@projects_bp.route("/projects/<int:project_id>/deliverables", methods=["POST"])
def create_deliverable(project_id):
    deliverable = deliverable_service.create_deliverable(project_id, json_body(), current_principal())
    return api_ok(deliverable.to_dict(), "Deliverable created", status=201)


@projects_bp.route("/deliverables/<int:deliverable_id>", methods=["PUT", "PATCH"])
def update_deliverable(deliverable_id):
    deliverable, rows = deliverable_service.update_deliverable(
        deliverable_id, json_body(), current_principal(),
    )
    return updated(deliverable, rows, "Deliverable")


@projects_bp.route("/deliverables/<int:deliverable_id>", methods=["DELETE"])
def delete_deliverable(deliverable_id):
    deliverable_service.delete_deliverable(deliverable_id, current_principal())
    return api_ok(message="Deliverable deleted")


# ═══════════════════════════════════════════════════════════════════════════
#  CONTRACTS
# ═══════════════════════════════════════════════════════════════════════════

@projects_bp.route("/projects/<int:project_id>/contracts", methods=["GET"])
def list_contracts(project_id):
    items = [c.to_dict() for c in contract_service.list_contracts(project_id, current_principal())]
    return api_ok(items, count=len(items))


@projects_bp.route("/projects/<int:project_id>/contracts", methods=["POST"])
def create_contract(project_id):
    contract = contract_service.create_contract(project_id, json_body(), current_principal())
    return api_ok(contract.to_dict(), "Contract created", status=201)


@projects_bp.route("/contracts/<int:contract_id>", methods=["GET"])
def get_contract(contract_id):
    return api_ok(contract_service.get_contract(contract_id, current_principal()).to_dict())


@projects_bp.route("/contracts/<int:contract_id>", methods=["PUT", "PATCH"])
def update_contract(contract_id):
    contract, rows = contract_service.update_contract(contract_id, json_body(), current_principal())
    return updated(contract, rows, "Contract")


@projects_bp.route("/contracts/<int:contract_id>", methods=["DELETE"])
def delete_contract(contract_id):
    contract_service.delete_contract(contract_id, current_principal())
    return api_ok(message="Contract deleted")


# ═══════════════════════════════════════════════════════════════════════════
#  BUDGET
# ═══════════════════════════════════════════════════════════════════════════

@projects_bp.route("/projects/<int:project_id>/budget", methods=["GET"])
def get_budget(project_id):
    return api_ok(budget_service.get_budget(project_id, current_principal()))


@projects_bp.route("/projects/<int:project_id>/budget", methods=["POST"])
def add_budget_line(project_id):
    line = budget_service.add_line(project_id, json_body(), current_principal())
    return api_ok(line.to_dict(), "Budget line created", status=201)


@projects_bp.route("/projects/<int:project_id>/budget", methods=["PUT"])
def replace_budget(project_id):
    data = request.get_json(silent=True)
    lines = data.get("lines") if isinstance(data, dict) else data
    if lines is None:
        raise ValidationError("lines is required", details={"lines": "required"})
    created = budget_service.replace_lines(project_id, lines, current_principal())
    items = [line.to_dict() for line in created]
    return api_ok(items, "Budget replaced", count=len(items))


@projects_bp.route("/budget-lines/<int:line_id>", methods=["PUT", "PATCH"])
def update_budget_line(line_id):
    line, rows = budget_service.update_line(line_id, json_body(), current_principal())
    return updated(line, rows, "Budget line")


@projects_bp.route("/budget-lines/<int:line_id>", methods=["DELETE"])
def delete_budget_line(line_id):
    budget_service.delete_line(line_id, current_principal())
    return api_ok(message="Budget line deleted")


# ═══════════════════════════════════════════════════════════════════════════
#  PROJECT ↔ PROVIDER
# ═══════════════════════════════════════════════════════════════════════════

@projects_bp.route("/projects/<int:project_id>/providers", methods=["POST"])
def associate_provider(project_id):
    data = json_body()
    provider_id = data.get("provider_id")
    if provider_id is None:
        raise ValidationError("provider_id is required", details={"provider_id": "required"})
    link = provider_service.associate_provider(project_id, provider_id, data, current_principal())
    return api_ok(link.to_dict(), "Provider associated", status=201)


@projects_bp.route("/projects/<int:project_id>/providers/<int:provider_id>", methods=["DELETE"])
def dissociate_provider(project_id, provider_id):
    provider_service.dissociate_provider(project_id, provider_id, current_principal())
    return api_ok(message="Provider dissociated")
