"""Budget line items of a project.

The project's ``budget_consumed`` follows the sum of its lines'
consumed amounts after every line change, dropping to 0 once the last
line goes. A project whose lines were never touched keeps its manually
entered figure.
"""
import logging
from typing import Any

from sqlalchemy import delete, func, select

from pmo.core.access import Principal, ResourceKind, require_create, require_delete, require_modify
from pmo.core.exceptions import ValidationError
from pmo.models import db
from pmo.models.contract import Contract
from pmo.models.document import BudgetLineItem
from pmo.models.project import Phase, Project
from pmo.services.audit_service import get_audit
from pmo.services.helpers.partial_update import apply_update
from pmo.services.helpers.validation import Number, Reference, Text, coerce
from pmo.services.project_service import get_project
from pmo.utils.helpers import db_commit_or_raise, get_or_raise

logger = logging.getLogger(__name__)

BUDGET_FIELDS = {
    "category": Text(100, required=True),
    "planned_amount": Number(minimum=0),
    "committed_amount": Number(minimum=0),
    "consumed_amount": Number(minimum=0),
    "description": Text(),
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


def _totals(project_id: int) -> dict:
    row = db.session.execute(
        select(
            func.count(BudgetLineItem.id).label("lines"),
            func.coalesce(func.sum(BudgetLineItem.planned_amount), 0).label("planned"),
            func.coalesce(func.sum(BudgetLineItem.committed_amount), 0).label("committed"),
            func.coalesce(func.sum(BudgetLineItem.consumed_amount), 0).label("consumed"),
        ).where(BudgetLineItem.project_id == project_id)
    ).one()
    return {
        "lines": int(row.lines),
        "planned": float(row.planned),
        "committed": float(row.committed),
        "consumed": float(row.consumed),
    }


def _roll_up(project_id: int) -> None:
    apply_update(Project, project_id, {"budget_consumed": _totals(project_id)["consumed"]})


def get_budget(project_id: int, principal: Principal) -> dict:
    project = get_project(project_id, principal)
    lines = project.budget_lines.order_by(BudgetLineItem.category, BudgetLineItem.id).all()
    totals = _totals(project.id)
    return {
        "project_id": project.id,
        "budget": project.budget,
        "budget_consumed": project.budget_consumed,
        "remaining": (project.budget or 0) - (project.budget_consumed or 0),
        "totals": totals,
        "lines": [line.to_dict() for line in lines],
    }


def add_line(project_id: int, data: dict[str, Any], principal: Principal) -> BudgetLineItem:
    project = get_project(project_id, principal)
    require_create(ResourceKind.BUDGET, principal, project)
    values = coerce(data, BUDGET_FIELDS)
    _check_same_project(values, project.id)
    line = BudgetLineItem(project_id=project.id, **values)
    db.session.add(line)
    db.session.flush()
    _roll_up(project.id)
    get_audit().emit(
        "budget.create", "budget", line.id,
        actor=principal, project_id=project.id, details={"category": line.category},
    )
    db_commit_or_raise("BudgetLineItem")
    return line


def replace_lines(project_id: int, lines: list[dict], principal: Principal) -> list[BudgetLineItem]:
    """Replace every budget line of the project in one transaction."""
    project = get_project(project_id, principal)
    require_create(ResourceKind.BUDGET, principal, project)
    require_modify(project, principal)
    if not isinstance(lines, list):
        raise ValidationError("Expected a list of budget lines", details={"lines": "not a list"})

    validated = []
    for index, data in enumerate(lines):
        try:
            values = coerce(data, BUDGET_FIELDS)
            _check_same_project(values, project.id)
        except ValidationError as exc:
            raise ValidationError(f"Line {index + 1}: {exc.message}", details=exc.details) from None
        validated.append(values)

    db.session.execute(delete(BudgetLineItem).where(BudgetLineItem.project_id == project.id))
    created = [BudgetLineItem(project_id=project.id, **values) for values in validated]
    db.session.add_all(created)
    db.session.flush()
    _roll_up(project.id)
    get_audit().emit(
        "budget.replace", "project", project.id,
        actor=principal, project_id=project.id, details={"lines": len(created)},
    )
    db_commit_or_raise("BudgetLineItem")
    return created


def update_line(line_id: int, data: dict[str, Any], principal: Principal) -> tuple[BudgetLineItem, int]:
    line = get_or_raise(BudgetLineItem, line_id)
    require_modify(line, principal)
    patch = coerce(data, BUDGET_FIELDS, partial=True)
    _check_same_project(patch, line.project_id)
    rows = apply_update(BudgetLineItem, line.id, patch)
    if rows:
        _roll_up(line.project_id)
        get_audit().emit(
            "budget.update", "budget", line.id,
            actor=principal, project_id=line.project_id, details=patch,
        )
        db_commit_or_raise("BudgetLineItem")
    return line, rows


def delete_line(line_id: int, principal: Principal) -> None:
    line = get_or_raise(BudgetLineItem, line_id)
    require_delete(ResourceKind.BUDGET, principal, line)
    project_id = line.project_id
    get_audit().emit(
        "budget.delete", "budget", line.id,
        actor=principal, project_id=project_id, details={"category": line.category},
    )
    db.session.delete(line)
    db.session.flush()
    _roll_up(project_id)
    db_commit_or_raise("BudgetLineItem")
