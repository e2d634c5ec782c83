"""
Reporting: portfolio dashboards and the per-project detail report.

The advanced dashboard and dashboard data are reserved to functional
admins and the PMO; the project detail report is available to anyone
who may view the project.

Monthly evolution is grouped in SQL on the EXTRACT year and month of
``created_at``, which SQLAlchemy renders for both SQLite and PostgreSQL.
"""

import logging
from collections import OrderedDict
from datetime import date, datetime, timezone

from sqlalchemy import and_, case, extract, func, select

from pmo.core.access import PORTFOLIO_ROLES, Principal, require_role
from pmo.models import db
from pmo.models.auth import Direction, User
from pmo.models.contract import Contract, ProjectProvider, Provider
from pmo.models.project import Deliverable, Project, ProjectStatus
from pmo.services.metrics_service import CLOSED_STATUS_CODES, project_alerts, project_portfolio_stats
from pmo.services.project_service import get_project

logger = logging.getLogger(__name__)

ADVANCED_EVOLUTION_MONTHS = 6
DASHBOARD_EVOLUTION_MONTHS = 12
NEARLY_DONE_COMPLETION = 90
TOP_PROVIDERS_LIMIT = 10
LATE_DELIVERABLES_LIMIT = 20
TOP_PROJECTS_LIMIT = 5
OPEN_LEAD_STATUS_CODES = ("planning", "in_progress")
DONE_DELIVERABLE_STATUSES = ("delivered", "validated")


def _require_reports(principal: Principal) -> None:
    require_role(principal, *PORTFOLIO_ROLES, permission="report.view")


def _today() -> date:
    return datetime.now(timezone.utc).date()


def _month_keys(today: date, months: int) -> list[str]:
    """``months`` YYYY-MM keys ending with the current month, oldest first."""
    keys = []
    year, month = today.year, today.month
    for _ in range(months):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


def _monthly_evolution(today: date, months: int) -> list[dict]:
    keys = _month_keys(today, months)
    buckets = OrderedDict(
        (key, {"month": key, "new_projects": 0, "completed_projects": 0, "new_budget": 0.0})
        for key in keys
    )
    oldest_year, oldest_month = (int(part) for part in keys[0].split("-"))
    year = extract("year", Project.created_at)
    month = extract("month", Project.created_at)
    rows = db.session.execute(
        select(
            year,
            month,
            func.count(Project.id),
            func.coalesce(func.sum(case((ProjectStatus.code == "completed", 1), else_=0)), 0),
            func.coalesce(func.sum(Project.budget), 0),
        )
        .join(ProjectStatus, Project.status_id == ProjectStatus.id)
        .where(Project.created_at >= datetime(oldest_year, oldest_month, 1))
        .group_by(year, month)
    ).all()
    for row_year, row_month, created, completed, budget in rows:
        # rows past the current month have no bucket
        bucket = buckets.get(f"{int(row_year):04d}-{int(row_month):02d}")
        if bucket is None:
            continue
        bucket["new_projects"] = int(created)
        bucket["completed_projects"] = int(completed)
        bucket["new_budget"] = float(budget)
    return list(buckets.values())


# ═════════════════════════════════════════════════════════════════════════════
# Advanced dashboard
# ═════════════════════════════════════════════════════════════════════════════


def _kpis(today: date) -> dict:
    row = db.session.execute(
        select(
            func.count(Project.id).label("total"),
            func.coalesce(func.sum(case(
                (and_(Project.target_end_date < today, ProjectStatus.code != "completed"), 1), else_=0,
            )), 0).label("overdue"),
            func.coalesce(func.sum(case(
                (Project.completion_pct >= NEARLY_DONE_COMPLETION, 1), else_=0,
            )), 0).label("nearly_done"),
            func.avg(Project.completion_pct).label("average_completion"),
            func.coalesce(func.sum(Project.budget), 0).label("total_budget"),
            func.coalesce(func.sum(Project.budget_consumed), 0).label("total_consumed"),
            func.coalesce(func.sum(case((Project.health == "red", 1), else_=0)), 0).label("high_risk"),
        )
        .join(ProjectStatus, Project.status_id == ProjectStatus.id)
        .where(ProjectStatus.code != "cancelled")
    ).one()
    return {
        "total_projects": int(row.total or 0),
        "overdue_projects": int(row.overdue or 0),
        "nearly_done_projects": int(row.nearly_done or 0),
        "average_completion": round(float(row.average_completion or 0), 1),
        "total_budget": round(float(row.total_budget or 0), 2),
        "total_budget_consumed": round(float(row.total_consumed or 0), 2),
        "high_risk_projects": int(row.high_risk or 0),
    }


def _lead_workload() -> list[dict]:
    rows = db.session.execute(
        select(
            User.id,
            User.full_name,
            func.count(Project.id).label("active_projects"),
            func.avg(Project.completion_pct).label("average_completion"),
            func.coalesce(func.sum(Project.budget), 0).label("managed_budget"),
        )
        .join(Project, Project.lead_id == User.id)
        .join(ProjectStatus, Project.status_id == ProjectStatus.id)
        .where(ProjectStatus.code.in_(OPEN_LEAD_STATUS_CODES))
        .group_by(User.id, User.full_name)
        .order_by(func.count(Project.id).desc(), User.full_name)
    ).all()
    return [
        {
            "lead_id": r.id,
            "lead_name": r.full_name,
            "active_projects": r.active_projects,
            "average_completion": round(float(r.average_completion or 0), 1),
            "managed_budget": round(float(r.managed_budget or 0), 2),
        }
        for r in rows
    ]


def _provider_stats() -> list[dict]:
    linked = (
        select(ProjectProvider.provider_id, func.count(func.distinct(ProjectProvider.project_id)).label("n"))
        .where(ProjectProvider.status == "active")
        .group_by(ProjectProvider.provider_id)
        .subquery()
    )
    contracted = (
        select(
            Contract.provider_id,
            func.count(Contract.id).label("n"),
            func.coalesce(func.sum(Contract.amount), 0).label("amount"),
        )
        .group_by(Contract.provider_id)
        .subquery()
    )
    total_amount = func.coalesce(contracted.c.amount, 0)
    rows = db.session.execute(
        select(
            Provider.id,
            Provider.name,
            linked.c.n.label("project_count"),
            func.coalesce(contracted.c.n, 0).label("contract_count"),
            total_amount.label("total_amount"),
        )
        .join(linked, linked.c.provider_id == Provider.id)
        .outerjoin(contracted, contracted.c.provider_id == Provider.id)
        .where(Provider.status == "active")
        .order_by(total_amount.desc(), Provider.name)
        .limit(TOP_PROVIDERS_LIMIT)
    ).all()
    return [
        {
            "provider_id": r.id,
            "name": r.name,
            "project_count": r.project_count,
            "contract_count": r.contract_count,
            "total_contract_amount": round(float(r.total_amount or 0), 2),
        }
        for r in rows
    ]


def _late_deliverables(today: date) -> list[dict]:
    rows = db.session.execute(
        select(Deliverable, Project.name.label("project_name"))
        .join(Project, Deliverable.project_id == Project.id)
        .where(
            Deliverable.status.not_in(DONE_DELIVERABLE_STATUSES),
            Deliverable.due_date < today,
        )
        .order_by(Deliverable.due_date, Deliverable.id)
        .limit(LATE_DELIVERABLES_LIMIT)
    ).all()
    return [
        {
            "deliverable_id": d.id,
            "name": d.name,
            "project_id": d.project_id,
            "project_name": project_name,
            "due_date": d.due_date.isoformat(),
            "days_late": (today - d.due_date).days,
            "responsible_name": d.responsible.full_name if d.responsible else None,
        }
        for d, project_name in rows
    ]


def advanced_dashboard(principal: Principal, today: date | None = None) -> dict:
    """KPIs, lead workload, 6-month evolution, top providers, late deliverables."""
    _require_reports(principal)
    today = today or _today()
    return {
        "kpis": _kpis(today),
        "lead_workload": _lead_workload(),
        "portfolio_evolution": _monthly_evolution(today, ADVANCED_EVOLUTION_MONTHS),
        "provider_stats": _provider_stats(),
        "late_deliverables": _late_deliverables(today),
        "generated_at": datetime.now(timezone.utc).isoformat(),
    }


def dashboard_alerts(principal: Principal, today: date | None = None) -> dict:
    _require_reports(principal)
    alerts = project_alerts(principal, today)
    return {
        "alerts": alerts,
        "count": len(alerts),
        "generated_at": datetime.now(timezone.utc).isoformat(),
    }


# ═════════════════════════════════════════════════════════════════════════════
# Dashboard data
# ═════════════════════════════════════════════════════════════════════════════


def _by_direction() -> list[dict]:
    rows = db.session.execute(
        select(
            Direction.id,
            Direction.name,
            func.count(Project.id).label("project_count"),
            func.coalesce(func.sum(Project.budget), 0).label("total_budget"),
            func.avg(Project.completion_pct).label("average_completion"),
        )
        .outerjoin(Project, Project.direction_id == Direction.id)
        .group_by(Direction.id, Direction.name)
        .order_by(func.count(Project.id).desc(), Direction.name)
    ).all()
    return [
        {
            "direction_id": r.id,
            "direction": r.name,
            "project_count": r.project_count,
            "total_budget": float(r.total_budget or 0),
            "average_completion": round(float(r.average_completion or 0), 1),
        }
        for r in rows
    ]


def _by_status() -> list[dict]:
    rows = db.session.execute(
        select(
            ProjectStatus.code,
            ProjectStatus.name,
            ProjectStatus.color,
            func.count(Project.id).label("project_count"),
        )
        .outerjoin(Project, Project.status_id == ProjectStatus.id)
        .group_by(ProjectStatus.id, ProjectStatus.code, ProjectStatus.name, ProjectStatus.color)
        .order_by(ProjectStatus.sort_order)
    ).all()
    return [
        {"code": r.code, "status": r.name, "color": r.color, "project_count": r.project_count}
        for r in rows
    ]


def _top_projects() -> list[dict]:
    stmt = (
        select(Project)
        .join(ProjectStatus, Project.status_id == ProjectStatus.id)
        .where(ProjectStatus.code.not_in(CLOSED_STATUS_CODES))
        .order_by(Project.completion_pct.desc(), Project.id)
        .limit(TOP_PROJECTS_LIMIT)
    )
    return [
        {
            "project_id": p.id,
            "name": p.name,
            "completion_pct": p.completion_pct,
            "lead_name": p.lead.full_name if p.lead else None,
            "status": p.status.name if p.status else None,
        }
        for p in db.session.scalars(stmt)
    ]


def dashboard_data(principal: Principal, today: date | None = None) -> dict:
    """Portfolio report: stats, breakdowns, 12-month evolution, top projects, alerts."""
    _require_reports(principal)
    today = today or _today()
    return {
        "stats": project_portfolio_stats(principal),
        "by_direction": _by_direction(),
        "by_status": _by_status(),
        "monthly_evolution": _monthly_evolution(today, DASHBOARD_EVOLUTION_MONTHS),
        "top_projects": _top_projects(),
        "alerts": project_alerts(principal, today),
        "generated_at": datetime.now(timezone.utc).isoformat(),
    }


# ═════════════════════════════════════════════════════════════════════════════
# Project detail report
# ═════════════════════════════════════════════════════════════════════════════


def project_detail_report(project_id: int, principal: Principal) -> dict:
    """Everything about one project, with the names resolved for printing."""
    project = get_project(project_id, principal)
    info = project.to_dict()
    info["lead_email"] = project.lead.email if project.lead else None

    phases = []
    for phase in project.phases:
        data = phase.to_dict()
        data["responsible_name"] = phase.responsible.full_name if phase.responsible else None
        phases.append(data)

    deliverables = []
    for d in project.deliverables.order_by(Deliverable.due_date, Deliverable.id):
        data = d.to_dict()
        data["phase_name"] = d.phase.name if d.phase else None
        data["responsible_name"] = d.responsible.full_name if d.responsible else None
        data["validator_name"] = d.validator.full_name if d.validator else None
        deliverables.append(data)

    contracts = []
    for c in project.contracts.order_by(Contract.created_at, Contract.id):
        data = c.to_dict()
        data["provider_name"] = c.provider.name if c.provider else None
        contracts.append(data)

    return {
        "project": info,
        "phases": phases,
        "deliverables": deliverables,
        "contracts": contracts,
        "documents": [doc.to_dict() for doc in project.documents],
        "generated_at": datetime.now(timezone.utc).isoformat(),
    }
