"""Provider service layer.

Providers are portfolio-wide: every authenticated user may read them,
only functional admins and the PMO may create, change or delete them.
Project leads attach providers to the projects they lead.

Provides:
- Provider CRUD, status switch, per-provider contracts/projects
- Project ↔ provider association; dissociation only marks the link inactive
- Portfolio statistics by status, type and contracted amount
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
from pmo.core.exceptions import ConflictError, DependencyError, NotFoundError
from pmo.models import db
from pmo.models.contract import Contract, ProjectProvider, Provider
from pmo.services.audit_service import get_audit
from pmo.services.helpers.partial_update import apply_update
from pmo.services.helpers.validation import (
    DateField,
    Email,
    OneOf,
    Text,
    check_date_range,
    coerce,
)
from pmo.services.project_service import get_project
from pmo.utils.helpers import db_commit_or_raise, get_or_raise

logger = logging.getLogger(__name__)

PROVIDER_TYPES = {"consulting", "software_vendor", "integrator", "contractor", "other"}
PROVIDER_STATUSES = {"active", "inactive"}

PROVIDER_FIELDS = {
    "name": Text(200, required=True),
    "registration_number": Text(50),
    "address": Text(),
    "provider_type": OneOf(PROVIDER_TYPES, required=True),
    "contact_name": Text(150),
    "contact_email": Email(),
    "contact_phone": Text(50),
    "expertise": Text(),
    "status": OneOf(PROVIDER_STATUSES),
}

ASSOCIATION_FIELDS = {
    "role_in_project": Text(150),
    "start_date": DateField(),
    "end_date": DateField(),
}


def _active_project_count(provider_id: int) -> int:
    return db.session.scalar(
        select(func.count(ProjectProvider.id)).where(
            ProjectProvider.provider_id == provider_id,
            ProjectProvider.status == "active",
        )
    ) or 0


def provider_summary(provider: Provider) -> dict:
    data = provider.to_dict()
    data["active_project_count"] = _active_project_count(provider.id)
    data["contract_count"] = provider.contracts.count()
    return data


# ═════════════════════════════════════════════════════════════════════════════
# Reads
# ═════════════════════════════════════════════════════════════════════════════


def list_providers(
    principal: Principal,
    *,
    status: str | None = None,
    provider_type: str | None = None,
    search: str | None = None,
) -> list[Provider]:
    require_view(ResourceKind.PROVIDER, principal)
    stmt = select(Provider)
    if status:
        stmt = stmt.where(Provider.status == status)
    if provider_type:
        stmt = stmt.where(Provider.provider_type == provider_type)
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(or_(
            Provider.name.ilike(pattern),
            Provider.expertise.ilike(pattern),
            Provider.contact_name.ilike(pattern),
        ))
    return list(db.session.scalars(stmt.order_by(Provider.name)))


def get_provider(provider_id: int, principal: Principal) -> Provider:
    provider = get_or_raise(Provider, provider_id)
    require_view(ResourceKind.PROVIDER, principal, provider)
    return provider


def provider_contracts(provider_id: int, principal: Principal) -> list[Contract]:
    provider = get_provider(provider_id, principal)
    return provider.contracts.order_by(Contract.start_date.desc(), Contract.id.desc()).all()


def provider_projects(provider_id: int, principal: Principal) -> list[ProjectProvider]:
    provider = get_provider(provider_id, principal)
    return (
        provider.project_links.filter(ProjectProvider.status == "active")
        .order_by(ProjectProvider.start_date.desc(), ProjectProvider.id)
        .all()
    )


def provider_stats(principal: Principal) -> dict:
    require_view(ResourceKind.PROVIDER, principal)
    by_status = dict(db.session.execute(
        select(Provider.status, func.count(Provider.id)).group_by(Provider.status)
    ).all())
    by_type = dict(db.session.execute(
        select(Provider.provider_type, func.count(Provider.id)).group_by(Provider.provider_type)
    ).all())
    top = db.session.execute(
        select(
            Provider.id,
            Provider.name,
            func.count(Contract.id).label("contract_count"),
            func.coalesce(func.sum(Contract.amount), 0).label("total_amount"),
        )
        .join(Contract, Contract.provider_id == Provider.id)
        .group_by(Provider.id, Provider.name)
        .order_by(func.sum(Contract.amount).desc())
        .limit(5)
    ).all()
    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "by_type": by_type,
        "top_by_contract_amount": [
            {
                "provider_id": row.id,
                "name": row.name,
                "contract_count": row.contract_count,
                "total_amount": float(row.total_amount or 0),
            }
            for row in top
        ],
    }


# ═════════════════════════════════════════════════════════════════════════════
# Writes
# ═════════════════════════════════════════════════════════════════════════════


def create_provider(data: dict[str, Any], principal: Principal) -> Provider:
    require_create(ResourceKind.PROVIDER, principal)
    values = coerce(data, PROVIDER_FIELDS)
    provider = Provider(created_by=principal.id, **values)
    db.session.add(provider)
    db.session.flush()
    get_audit().emit(
        "provider.create", "provider", provider.id,
        actor=principal, details={"name": provider.name},
    )
    db_commit_or_raise("Provider")
    return provider


def update_provider(provider_id: int, data: dict[str, Any], principal: Principal) -> tuple[Provider, int]:
    provider = get_or_raise(Provider, provider_id)
    require_modify(provider, principal)
    patch = coerce(data, PROVIDER_FIELDS, partial=True)
    rows = apply_update(Provider, provider.id, patch)
    if rows:
        get_audit().emit("provider.update", "provider", provider.id, actor=principal, details=patch)
        db_commit_or_raise("Provider")
    return provider, rows


def set_provider_status(provider_id: int, status: str | None, principal: Principal) -> Provider:
    patch = coerce({"status": status}, {"status": PROVIDER_FIELDS["status"]}, partial=True)
    provider, _ = update_provider(provider_id, patch, principal)
    return provider


def delete_provider(provider_id: int, principal: Principal) -> None:
    provider = get_or_raise(Provider, provider_id)
    require_delete(ResourceKind.PROVIDER, principal, provider)
    count = provider.contracts.count()
    if count:
        raise DependencyError("Provider", {"contracts": count})

    get_audit().emit("provider.delete", "provider", provider.id, actor=principal, details={"name": provider.name})
    db.session.delete(provider)
    db_commit_or_raise("Provider")


def _find_link(project_id: int, provider_id: int) -> ProjectProvider | None:
    return db.session.scalar(
        select(ProjectProvider).where(
            ProjectProvider.project_id == project_id,
            ProjectProvider.provider_id == provider_id,
        )
    )


def associate_provider(
    project_id: int, provider_id: int, data: dict[str, Any], principal: Principal,
) -> ProjectProvider:
    """Attach a provider to a project; a dissociated link is re-activated."""
    project = get_project(project_id, principal)
    require_modify(project, principal)
    provider = get_or_raise(Provider, provider_id)
    values = coerce(data, ASSOCIATION_FIELDS, partial=True)
    check_date_range(values.get("start_date"), values.get("end_date"))

    link = _find_link(project.id, provider.id)
    if link is None:
        link = ProjectProvider(project_id=project.id, provider_id=provider.id, **values)
        db.session.add(link)
        db.session.flush()
        action = "project.provider_associate"
    elif link.status == "active":
        raise ConflictError("ProjectProvider", "provider_id", str(provider.id))
    else:
        apply_update(ProjectProvider, link.id, {**values, "status": "active"})
        action = "project.provider_reassociate"

    get_audit().emit(
        action, "project", project.id,
        actor=principal, project_id=project.id, details={"provider_id": provider.id, **values},
    )
    db_commit_or_raise("ProjectProvider")
    return link


def dissociate_provider(project_id: int, provider_id: int, principal: Principal) -> None:
    """Mark the link inactive; its role and dates are kept for re-association."""
    project = get_project(project_id, principal)
    require_modify(project, principal)
    link = _find_link(project.id, provider_id)
    if link is None or link.status != "active":
        raise NotFoundError("ProjectProvider", f"{project.id}/{provider_id}")

    apply_update(ProjectProvider, link.id, {"status": "inactive"})
    get_audit().emit(
        "project.provider_dissociate", "project", project.id,
        actor=principal, project_id=project.id, details={"provider_id": provider_id},
    )
    db_commit_or_raise("ProjectProvider")
