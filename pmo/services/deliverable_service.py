"""Deliverable service layer.

Status lifecycle (same-status writes are always allowed):

    planned ──► in_progress ──► delivered ──► validated
       ▲            │  ▲            │
       └────────────┘  └── rejected ◄┘

Every write that can change weights, statuses or phase membership
recomputes the affected phases' and the project's completion.
"""
import logging
from typing import Any

from pmo.core.access import Principal, ResourceKind, require_create, require_delete, require_modify
from pmo.core.exceptions import ValidationError
from pmo.models import db
from pmo.models.auth import User
from pmo.models.contract import Contract
from pmo.models.project import Deliverable, Phase
from pmo.services.audit_service import get_audit
from pmo.services.helpers.partial_update import apply_update
from pmo.services.helpers.validation import DateField, Number, OneOf, Reference, Text, coerce
from pmo.services.metrics_service import refresh_progress
from pmo.services.project_service import get_project
from pmo.utils.helpers import db_commit_or_raise, get_or_raise

logger = logging.getLogger(__name__)

DELIVERABLE_STATUSES = ("planned", "in_progress", "delivered", "validated", "rejected")
DELIVERABLE_TYPES = {"document", "software", "report", "training", "service", "other"}

STATUS_TRANSITIONS = {
    "planned": {"in_progress", "delivered"},
    "in_progress": {"planned", "delivered"},
    "delivered": {"in_progress", "validated", "rejected"},
    "validated": {"delivered"},
    "rejected": {"in_progress", "delivered"},
}

DELIVERABLE_FIELDS = {
    "name": Text(200, required=True),
    "description": Text(),
    "deliverable_type": OneOf(DELIVERABLE_TYPES),
    "due_date": DateField(),
    "status": OneOf(DELIVERABLE_STATUSES),
    "responsible_id": Reference(User),
    "validator_id": Reference(User),
    "weight": Number(minimum=0, maximum=100, integer=True),
    "phase_id": Reference(Phase),
    "contract_id": Reference(Contract),
}


def _check_same_project(values: dict, project_id: int) -> None:
    for key, model in (("phase_id", Phase), ("contract_id", Contract)):
        ref_id = values.get(key)
        if ref_id is not None and db.session.get(model, ref_id).project_id != project_id:
            raise ValidationError(
                f"{model.__name__} id={ref_id} belongs to another project",
                details={key: "different project"},
            )


def _check_transition(current: str, new: str) -> None:
    if new == current:
        return
    if new not in STATUS_TRANSITIONS.get(current, set()):
        raise ValidationError(
            f"Invalid status transition: {current} -> {new}",
            details={"status": f"allowed from {current}: {sorted(STATUS_TRANSITIONS.get(current, set()))}"},
        )


def list_deliverables(
    project_id: int,
    principal: Principal,
    *,
    phase_id: int | None = None,
    status: str | None = None,
) -> list[Deliverable]:
    project = get_project(project_id, principal)
    query = project.deliverables
    if phase_id is not None:
        query = query.filter(Deliverable.phase_id == phase_id)
    if status:
        query = query.filter(Deliverable.status == status)
    return query.order_by(Deliverable.due_date, Deliverable.id).all()


def create_deliverable(project_id: int, data: dict[str, Any], principal: Principal) -> Deliverable:
    project = get_project(project_id, principal)
    require_create(ResourceKind.DELIVERABLE, principal, project)
    values = coerce(data, DELIVERABLE_FIELDS)
    _check_same_project(values, project.id)
    if values.get("status") == "validated" and values.get("validator_id") is None:
        values["validator_id"] = principal.id

    deliverable = Deliverable(project_id=project.id, **values)
    db.session.add(deliverable)
    db.session.flush()
    refresh_progress(project.id, deliverable.phase_id)
    get_audit().emit(
        "deliverable.create", "deliverable", deliverable.id,
        actor=principal, project_id=project.id,
        details={"name": deliverable.name, "weight": deliverable.weight, "status": deliverable.status},
    )
    db_commit_or_raise("Deliverable")
    return deliverable


def update_deliverable(
    deliverable_id: int, data: dict[str, Any], principal: Principal,
) -> tuple[Deliverable, int]:
    deliverable = get_or_raise(Deliverable, deliverable_id)
    require_modify(deliverable, principal)
    patch = coerce(data, DELIVERABLE_FIELDS, partial=True)
    _check_same_project(patch, deliverable.project_id)
    if "status" in patch:
        _check_transition(deliverable.status, patch["status"])
        if patch["status"] == "validated" and patch.get("validator_id", deliverable.validator_id) is None:
            patch["validator_id"] = principal.id

    old_phase_id = deliverable.phase_id
    rows = apply_update(Deliverable, deliverable.id, patch)
    if rows:
        refresh_progress(deliverable.project_id, old_phase_id, patch.get("phase_id", old_phase_id))
        get_audit().emit(
            "deliverable.update", "deliverable", deliverable.id,
            actor=principal, project_id=deliverable.project_id, details=patch,
        )
        db_commit_or_raise("Deliverable")
    return deliverable, rows


def delete_deliverable(deliverable_id: int, principal: Principal) -> None:
    deliverable = get_or_raise(Deliverable, deliverable_id)
    require_delete(ResourceKind.DELIVERABLE, principal, deliverable)
    project_id, phase_id = deliverable.project_id, deliverable.phase_id

    get_audit().emit(
        "deliverable.delete", "deliverable", deliverable.id,
        actor=principal, project_id=project_id, details={"name": deliverable.name},
    )
    db.session.delete(deliverable)
    db.session.flush()
    refresh_progress(project_id, phase_id)
    db_commit_or_raise("Deliverable")
