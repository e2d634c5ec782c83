"""Phase service layer.

Phases are ordered within their project; a new phase without an explicit
``order`` goes last. Deleting a phase that still holds deliverables is
refused with DependencyError.
"""
import logging
from typing import Any

from sqlalchemy import func, select

from pmo.core.access import Principal, ResourceKind, require_create, require_delete, require_modify
from pmo.core.exceptions import DependencyError
from pmo.models import db
from pmo.models.auth import User
from pmo.models.project import Deliverable, Phase
from pmo.services.audit_service import get_audit
from pmo.services.helpers.partial_update import apply_update
from pmo.services.helpers.validation import (
    DateField,
    Number,
    OneOf,
    Reference,
    Text,
    check_date_range,
    coerce,
)
from pmo.services.metrics_service import recompute_phase_progress
from pmo.services.project_service import get_project
from pmo.utils.helpers import db_commit_or_raise, get_or_raise

logger = logging.getLogger(__name__)

PHASE_STATUSES = {"planned", "in_progress", "completed", "on_hold"}

PHASE_FIELDS = {
    "name": Text(200, required=True),
    "description": Text(),
    "order": Number(minimum=1, integer=True),
    "start_date": DateField(),
    "target_end_date": DateField(),
    "status": OneOf(PHASE_STATUSES),
    "budget_allocated": Number(minimum=0),
    "budget_consumed": Number(minimum=0),
    "completion_pct": Number(minimum=0, maximum=100, integer=True),
    "responsible_id": Reference(User),
}


def list_phases(project_id: int, principal: Principal) -> list[Phase]:
    project = get_project(project_id, principal)
    return list(project.phases)


def _next_order(project_id: int) -> int:
    current = db.session.scalar(
        select(func.coalesce(func.max(Phase.order), 0)).where(Phase.project_id == project_id)
    )
    return int(current) + 1


def create_phase(project_id: int, data: dict[str, Any], principal: Principal) -> Phase:
    project = get_project(project_id, principal)
    require_create(ResourceKind.PHASE, principal, project)
    values = coerce(data, PHASE_FIELDS)
    check_date_range(values.get("start_date"), values.get("target_end_date"), end_name="target_end_date")
    if values.get("order") is None:
        values["order"] = _next_order(project.id)

    phase = Phase(project_id=project.id, **values)
    db.session.add(phase)
    db.session.flush()
    get_audit().emit(
        "phase.create", "phase", phase.id,
        actor=principal, project_id=project.id, details={"name": phase.name, "order": phase.order},
    )
    db_commit_or_raise("Phase")
    return phase


def update_phase(phase_id: int, data: dict[str, Any], principal: Principal) -> tuple[Phase, int]:
    phase = get_or_raise(Phase, phase_id)
    require_modify(phase, principal)
    patch = coerce(data, PHASE_FIELDS, partial=True)
    check_date_range(
        patch.get("start_date", phase.start_date),
        patch.get("target_end_date", phase.target_end_date),
        end_name="target_end_date",
    )
    rows = apply_update(Phase, phase.id, patch)
    if rows:
        get_audit().emit(
            "phase.update", "phase", phase.id,
            actor=principal, project_id=phase.project_id, details=patch,
        )
        db_commit_or_raise("Phase")
    return phase, rows


def delete_phase(phase_id: int, principal: Principal) -> None:
    phase = get_or_raise(Phase, phase_id)
    require_delete(ResourceKind.PHASE, principal, phase)
    count = db.session.scalar(select(func.count(Deliverable.id)).where(Deliverable.phase_id == phase.id))
    if count:
        raise DependencyError("Phase", {"deliverables": count})

    project_id = phase.project_id
    get_audit().emit(
        "phase.delete", "phase", phase.id,
        actor=principal, project_id=project_id, details={"name": phase.name},
    )
    db.session.delete(phase)
    db_commit_or_raise("Phase")
    logger.info("Phase deleted id=%s project=%s", phase_id, project_id)


def recompute_progress(phase_id: int, principal: Principal) -> int:
    phase = get_or_raise(Phase, phase_id)
    require_modify(phase, principal)
    pct = recompute_phase_progress(phase.id)
    db_commit_or_raise("Phase")
    return pct
