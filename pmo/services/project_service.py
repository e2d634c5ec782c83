"""Project service layer: business logic for portfolio projects.

Transaction policy: public write functions commit through
db_commit_or_raise() and emit one audit event each.

Provides:
- Role-scoped listing with search/status filters
- Create (portfolio roles only), partial update, guarded delete
- Full project detail with every child collection
"""
import logging
from typing import Any

from sqlalchemy import func, or_, select

from pmo.core.access import (
    Principal,
    ResourceKind,
    require_create,
    require_delete,
    require_modify,
    require_view,
)
from pmo.core.exceptions import ConflictError, DependencyError
from pmo.models import db
from pmo.models.auth import Direction, User
from pmo.models.project import Deliverable, Project, ProjectStatus
from pmo.services.audit_service import get_audit
from pmo.services.file_store import get_file_store
from pmo.services.helpers.partial_update import apply_update
from pmo.services.helpers.validation import (
    Code,
    DateField,
    Number,
    OneOf,
    Reference,
    Text,
    check_date_range,
    coerce,
)
from pmo.services.metrics_service import (
    project_portfolio_stats,
    recompute_project_progress,
    scoped_projects_query,
)
from pmo.utils.helpers import db_commit_or_raise, get_or_raise

logger = logging.getLogger(__name__)

# ── Allowed enum values ──────────────────────────────────────────────────

PROJECT_PRIORITIES = {"low", "normal", "high", "critical"}
PROJECT_HEALTH = {"green", "amber", "red"}

PROJECT_FIELDS = {
    "name": Text(200, required=True),
    "code": Code(50, required=True),
    "description": Text(),
    "lead_id": Reference(User, required=True),
    "direction_id": Reference(Direction, required=True),
    "status_id": Reference(ProjectStatus, required=True),
    "budget": Number(minimum=0),
    "budget_consumed": Number(minimum=0),
    "start_date": DateField(),
    "target_end_date": DateField(),
    "completion_pct": Number(minimum=0, maximum=100, integer=True),
    "priority": OneOf(PROJECT_PRIORITIES),
    "health": OneOf(PROJECT_HEALTH),
}


def _ensure_code_free(code: str, *, exclude_id: int | None = None) -> None:
    stmt = select(Project.id).where(Project.code == code)
    if exclude_id is not None:
        stmt = stmt.where(Project.id != exclude_id)
    if db.session.scalar(stmt) is not None:
        raise ConflictError("Project", "code", code)


def summary_dict(project: Project) -> dict:
    """List representation: the project plus its deliverable count."""
    data = project.to_dict()
    data["deliverable_count"] = project.deliverables.count()
    return data


# ═════════════════════════════════════════════════════════════════════════════
# Reads
# ═════════════════════════════════════════════════════════════════════════════


def list_projects(
    principal: Principal,
    *,
    search: str | None = None,
    status: str | None = None,
) -> list[Project]:
    """Projects visible to ``principal``, most recently updated first.

    Args:
        search: Case-insensitive match on name, code or description.
        status: ProjectStatus code filter.
    """
    require_view(ResourceKind.PROJECT, principal)
    stmt = scoped_projects_query(principal)
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(or_(
            Project.name.ilike(pattern),
            Project.code.ilike(pattern),
            Project.description.ilike(pattern),
        ))
    if status:
        stmt = stmt.join(ProjectStatus, Project.status_id == ProjectStatus.id).where(
            ProjectStatus.code == status
        )
    stmt = stmt.order_by(Project.updated_at.desc(), Project.id.desc())
    return list(db.session.scalars(stmt))


def get_project(project_id: int, principal: Principal) -> Project:
    project = get_or_raise(Project, project_id)
    require_view(ResourceKind.PROJECT, principal, project)
    return project


def get_project_details(project_id: int, principal: Principal) -> dict:
    """Project with phases, deliverables, contracts, documents, providers and budget."""
    project = get_project(project_id, principal)
    data = project.to_dict(include_children=True)
    lines = data["budget_lines"]
    data["budget_summary"] = {
        "planned": sum(line["planned_amount"] or 0 for line in lines),
        "committed": sum(line["committed_amount"] or 0 for line in lines),
        "consumed": sum(line["consumed_amount"] or 0 for line in lines),
    }
    return data


def get_stats(principal: Principal) -> dict:
    return project_portfolio_stats(principal)


# ═════════════════════════════════════════════════════════════════════════════
# Writes
# ═════════════════════════════════════════════════════════════════════════════


def create_project(data: dict[str, Any], principal: Principal) -> Project:
    """Create a project. Duplicate codes raise ConflictError before any insert."""
    require_create(ResourceKind.PROJECT, principal)
    values = coerce(data, PROJECT_FIELDS)
    check_date_range(values.get("start_date"), values.get("target_end_date"), end_name="target_end_date")
    _ensure_code_free(values["code"])

    project = Project(**values)
    db.session.add(project)
    db.session.flush()
    get_audit().emit(
        "project.create", "project", project.id,
        actor=principal, project_id=project.id,
        details={"code": project.code, "name": project.name},
    )
    db_commit_or_raise("Project")
    logger.info("Project created id=%s code=%s by user=%s", project.id, project.code, principal.id)
    return project


def update_project(project_id: int, data: dict[str, Any], principal: Principal) -> tuple[Project, int]:
    """Apply a partial update. Returns (project, affected_rows)."""
    project = get_or_raise(Project, project_id)
    require_modify(project, principal)
    patch = coerce(data, PROJECT_FIELDS, partial=True)
    if "code" in patch:
        _ensure_code_free(patch["code"], exclude_id=project.id)
    check_date_range(
        patch.get("start_date", project.start_date),
        patch.get("target_end_date", project.target_end_date),
        end_name="target_end_date",
    )

    rows = apply_update(Project, project.id, patch)
    if rows:
        get_audit().emit(
            "project.update", "project", project.id,
            actor=principal, project_id=project.id, details=patch,
        )
        db_commit_or_raise("Project")
    return project, rows


def delete_project(project_id: int, principal: Principal) -> None:
    """Delete a project that has no deliverables, with its other children and files."""
    project = get_or_raise(Project, project_id)
    require_delete(ResourceKind.PROJECT, principal, project)

    deliverable_count = db.session.scalar(
        select(func.count(Deliverable.id)).where(Deliverable.project_id == project.id)
    )
    if deliverable_count:
        raise DependencyError("Project", {"deliverables": deliverable_count})

    stored_paths = [doc.file_path for doc in project.documents]
    get_audit().emit(
        "project.delete", "project", project.id,
        actor=principal, project_id=project.id,
        details={"code": project.code, "name": project.name},
    )
    db.session.delete(project)
    db_commit_or_raise("Project")

    store = get_file_store()
    for path in stored_paths:
        store.delete(path)
    logger.info("Project deleted id=%s by user=%s", project_id, principal.id)


def recompute_progress(project_id: int, principal: Principal) -> int:
    project = get_or_raise(Project, project_id)
    require_modify(project, principal)
    pct = recompute_project_progress(project.id)
    db_commit_or_raise("Project")
    return pct
