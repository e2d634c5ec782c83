"""Derived metrics: progress roll-ups, portfolio aggregates, risk alerts.

Progress algorithm (phase and project alike):
  - weights sum W > 0      → round(100 × validated weight / W)
  - deliverables, W == 0   → round(100 × validated count / count)
  - no deliverables        → 0
  Result clamped to [0, 100]; rounding is half-up.

Risk classification of an open project, first match wins:
  overdue > health_critical > at_risk > stale
Alerts are ordered by that rank, then by days remaining (soonest first).
"""
import logging
import math
from datetime import date, datetime, timezone

from sqlalchemy import case, func, or_, select

from pmo.core.access import Principal, RoleName
from pmo.models import db
from pmo.models.document import Document
from pmo.models.project import Deliverable, Phase, Project, ProjectStatus
from pmo.services.helpers.partial_update import apply_update
from pmo.utils.helpers import get_or_raise

logger = logging.getLogger(__name__)

VALIDATED_STATUS = "validated"
CLOSED_STATUS_CODES = frozenset({"completed", "cancelled"})

RISK_OVERDUE = "overdue"
RISK_HEALTH_CRITICAL = "health_critical"
RISK_AT_RISK = "at_risk"
RISK_STALE = "stale"
RISK_PRECEDENCE = (RISK_OVERDUE, RISK_HEALTH_CRITICAL, RISK_AT_RISK, RISK_STALE)
_RISK_RANK = {kind: rank for rank, kind in enumerate(RISK_PRECEDENCE, start=1)}

AT_RISK_WINDOW_DAYS = 15
AT_RISK_COMPLETION_BELOW = 80
STALE_AFTER_DAYS = 30


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# ═════════════════════════════════════════════════════════════════════════════
# Progress
# ═════════════════════════════════════════════════════════════════════════════


def compute_progress(items) -> int:
    """Completion percentage from ``(weight, status)`` pairs."""
    items = list(items)
    if not items:
        return 0
    total_weight = sum(max(weight or 0, 0) for weight, _ in items)
    if total_weight > 0:
        validated_weight = sum(
            max(weight or 0, 0) for weight, status in items if status == VALIDATED_STATUS
        )
        pct = _round_half_up(100 * validated_weight / total_weight)
    else:
        validated = sum(1 for _, status in items if status == VALIDATED_STATUS)
        pct = _round_half_up(100 * validated / len(items))
    return max(0, min(100, pct))


def recompute_phase_progress(phase_id: int) -> int:
    """Recompute and persist a phase's completion from its deliverables.

    Runs in the caller's transaction; the caller commits.
    """
    get_or_raise(Phase, phase_id)
    rows = db.session.execute(
        select(Deliverable.weight, Deliverable.status).where(Deliverable.phase_id == phase_id)
    ).all()
    pct = compute_progress((r.weight, r.status) for r in rows)
    apply_update(Phase, phase_id, {"completion_pct": pct})
    logger.debug("Phase %s progress recomputed: %d%% over %d deliverables", phase_id, pct, len(rows))
    return pct


def recompute_project_progress(project_id: int) -> int:
    """Recompute and persist a project's completion from all its deliverables."""
    get_or_raise(Project, project_id)
    rows = db.session.execute(
        select(Deliverable.weight, Deliverable.status).where(Deliverable.project_id == project_id)
    ).all()
    pct = compute_progress((r.weight, r.status) for r in rows)
    apply_update(Project, project_id, {"completion_pct": pct})
    logger.debug("Project %s progress recomputed: %d%%", project_id, pct)
    return pct


def refresh_progress(project_id: int, *phase_ids) -> None:
    """Recompute the given phases (None ignored) and their project."""
    for phase_id in {pid for pid in phase_ids if pid is not None}:
        recompute_phase_progress(phase_id)
    recompute_project_progress(project_id)


# ═════════════════════════════════════════════════════════════════════════════
# Role scope
# ═════════════════════════════════════════════════════════════════════════════


def project_scope_filter(principal: Principal):
    """SQL criterion restricting Project rows to the principal's scope.

    Returns None when every project is visible.
    """
    role = RoleName(principal.role)
    if role in (RoleName.FUNCTIONAL_ADMIN, RoleName.PMO):
        return None
    if role == RoleName.PROJECT_LEAD:
        return Project.lead_id == principal.id
    if role == RoleName.CONTRIBUTOR:
        return or_(
            Project.id.in_(select(Phase.project_id).where(Phase.responsible_id == principal.id)),
            Project.id.in_(
                select(Deliverable.project_id).where(
                    or_(
                        Deliverable.responsible_id == principal.id,
                        Deliverable.validator_id == principal.id,
                    )
                )
            ),
            Project.id.in_(select(Document.project_id).where(Document.uploaded_by == principal.id)),
        )
    raise ValueError(f"Unhandled role: {role}")


def scoped_projects_query(principal: Principal):
    stmt = select(Project)
    criterion = project_scope_filter(principal)
    if criterion is not None:
        stmt = stmt.where(criterion)
    return stmt


# ═════════════════════════════════════════════════════════════════════════════
# Portfolio aggregates
# ═════════════════════════════════════════════════════════════════════════════


def _count_status(code: str):
    return func.coalesce(func.sum(case((ProjectStatus.code == code, 1), else_=0)), 0)


def project_portfolio_stats(principal: Principal) -> dict:
    """Status counts, average completion and budget sums across visible projects."""
    stmt = (
        select(
            func.count(Project.id).label("total"),
            _count_status("planning").label("planning"),
            _count_status("in_progress").label("in_progress"),
            _count_status("on_hold").label("on_hold"),
            _count_status("completed").label("completed"),
            _count_status("cancelled").label("cancelled"),
            func.avg(Project.completion_pct).label("average_completion"),
            func.coalesce(func.sum(Project.budget), 0).label("total_budget"),
            func.coalesce(func.sum(Project.budget_consumed), 0).label("total_budget_consumed"),
        )
        .select_from(Project)
        .join(ProjectStatus, Project.status_id == ProjectStatus.id)
    )
    criterion = project_scope_filter(principal)
    if criterion is not None:
        stmt = stmt.where(criterion)
    row = db.session.execute(stmt).one()
    return {
        "total": int(row.total or 0),
        "planning": int(row.planning or 0),
        "in_progress": int(row.in_progress or 0),
        "on_hold": int(row.on_hold or 0),
        "completed": int(row.completed or 0),
        "cancelled": int(row.cancelled or 0),
        "average_completion": round(float(row.average_completion or 0), 1),
        "total_budget": float(row.total_budget or 0),
        "total_budget_consumed": float(row.total_budget_consumed or 0),
    }


def recent_projects(principal: Principal, limit: int = 5) -> list[Project]:
    stmt = scoped_projects_query(principal).order_by(Project.updated_at.desc(), Project.id.desc())
    return list(db.session.scalars(stmt.limit(limit)))


def portfolio_dashboard(principal: Principal) -> dict:
    """Stats, recent projects and the caller's own led projects in one payload."""
    mine = db.session.scalars(
        select(Project).where(Project.lead_id == principal.id).order_by(Project.updated_at.desc())
    )
    return {
        "stats": project_portfolio_stats(principal),
        "recent_projects": [p.to_dict() for p in recent_projects(principal)],
        "my_projects": [p.to_dict() for p in mine],
    }


# ═════════════════════════════════════════════════════════════════════════════
# Risk alerts
# ═════════════════════════════════════════════════════════════════════════════


def _as_date(value):
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    return value


def classify_project_risk(project: Project, today: date | None = None) -> str | None:
    """Return the highest-precedence risk kind for an open project, or None."""
    if project.status_code in CLOSED_STATUS_CODES:
        return None
    today = today or datetime.now(timezone.utc).date()
    end = project.target_end_date
    completion = project.completion_pct or 0

    if end is not None and end < today:
        return RISK_OVERDUE
    if project.health == "red":
        return RISK_HEALTH_CRITICAL
    if end is not None and (end - today).days <= AT_RISK_WINDOW_DAYS and completion < AT_RISK_COMPLETION_BELOW:
        return RISK_AT_RISK
    created = _as_date(project.created_at)
    if completion == 0 and created is not None and (today - created).days > STALE_AFTER_DAYS:
        return RISK_STALE
    return None


def project_alerts(principal: Principal, today: date | None = None) -> list[dict]:
    """Open projects in scope needing attention, most urgent first."""
    today = today or datetime.now(timezone.utc).date()
    stmt = (
        scoped_projects_query(principal)
        .join(ProjectStatus, Project.status_id == ProjectStatus.id)
        .where(ProjectStatus.code.not_in(CLOSED_STATUS_CODES))
    )
    alerts = []
    for project in db.session.scalars(stmt):
        kind = classify_project_risk(project, today)
        if kind is None:
            continue
        days_remaining = (
            (project.target_end_date - today).days if project.target_end_date else None
        )
        alerts.append({
            "project_id": project.id,
            "code": project.code,
            "name": project.name,
            "lead_name": project.lead.full_name if project.lead else None,
            "status": project.status_code,
            "target_end_date": project.target_end_date.isoformat() if project.target_end_date else None,
            "completion_pct": project.completion_pct,
            "health": project.health,
            "days_remaining": days_remaining,
            "alert_type": kind,
        })
    alerts.sort(key=lambda a: (
        _RISK_RANK[a["alert_type"]],
        a["days_remaining"] is None,
        a["days_remaining"] if a["days_remaining"] is not None else 0,
    ))
    return alerts
