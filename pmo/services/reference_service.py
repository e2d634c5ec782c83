"""Reference data: directions, project statuses, roles, active users, priorities,
provider types.

``seed_reference_data`` runs on startup and is idempotent: rows are
matched on their natural key and only missing ones are inserted.
"""
import logging

from sqlalchemy import select

from pmo.core.access import ROLE_DISPLAY_NAMES, Principal, ResourceKind, RoleName, require_view
from pmo.models import db
from pmo.models.auth import Direction, Role, User
from pmo.models.project import ProjectStatus
from pmo.services.project_service import PROJECT_PRIORITIES
from pmo.services.provider_service import PROVIDER_TYPES

logger = logging.getLogger(__name__)

# code, label, color, order
DEFAULT_PROJECT_STATUSES = (
    ("planning", "Planning", "#FFA500", 1),
    ("in_progress", "In progress", "#0066CC", 2),
    ("on_hold", "On hold", "#FF6B6B", 3),
    ("completed", "Completed", "#4CAF50", 4),
    ("cancelled", "Cancelled", "#9E9E9E", 5),
)

DEFAULT_DIRECTIONS = (
    ("IT", "Information Systems"),
    ("Finance", "Finance Department"),
    ("Operations", "Operations Department"),
)

ROLE_CAPABILITIES = {
    RoleName.FUNCTIONAL_ADMIN: {
        "users.manage": True, "projects.create": True, "projects.delete": True,
        "providers.manage": True, "reports.view": True,
    },
    RoleName.PMO: {
        "users.manage": False, "projects.create": True, "projects.delete": True,
        "providers.manage": True, "reports.view": True,
    },
    RoleName.PROJECT_LEAD: {
        "users.manage": False, "projects.create": False, "projects.delete": False,
        "providers.manage": False, "reports.view": False,
    },
    RoleName.CONTRIBUTOR: {
        "users.manage": False, "projects.create": False, "projects.delete": False,
        "providers.manage": False, "reports.view": False,
    },
}

PRIORITY_LABELS = {
    "low": ("Low", "#4CAF50"),
    "normal": ("Normal", "#0066CC"),
    "high": ("High", "#FFA500"),
    "critical": ("Critical", "#F44336"),
}

PROVIDER_TYPE_LABELS = {
    "consulting": "Consulting",
    "software_vendor": "Software vendor",
    "integrator": "Integrator",
    "contractor": "Contractor",
    "other": "Other",
}


def seed_reference_data() -> dict:
    """Insert missing roles, statuses and directions. Returns inserted counts."""
    inserted = {"roles": 0, "statuses": 0, "directions": 0}

    existing_roles = set(db.session.scalars(select(Role.name)))
    for role in RoleName:
        if role.value not in existing_roles:
            db.session.add(Role(
                name=role.value,
                display_name=ROLE_DISPLAY_NAMES[role],
                permissions=ROLE_CAPABILITIES[role],
            ))
            inserted["roles"] += 1

    existing_codes = set(db.session.scalars(select(ProjectStatus.code)))
    for code, name, color, order in DEFAULT_PROJECT_STATUSES:
        if code not in existing_codes:
            db.session.add(ProjectStatus(code=code, name=name, color=color, sort_order=order))
            inserted["statuses"] += 1

    if db.session.scalar(select(Direction.id).limit(1)) is None:
        for name, description in DEFAULT_DIRECTIONS:
            db.session.add(Direction(name=name, description=description))
            inserted["directions"] += 1

    db.session.commit()
    if any(inserted.values()):
        logger.info("Reference data seeded: %s", inserted)
    return inserted


def role_by_name(name: RoleName | str) -> Role | None:
    return db.session.scalar(select(Role).where(Role.name == RoleName(name).value))


# ═════════════════════════════════════════════════════════════════════════════
# Reads
# ═════════════════════════════════════════════════════════════════════════════


def list_directions(principal: Principal) -> list[dict]:
    require_view(ResourceKind.REFERENCE, principal)
    return [d.to_dict() for d in db.session.scalars(select(Direction).order_by(Direction.name))]


def list_statuses(principal: Principal) -> list[dict]:
    require_view(ResourceKind.REFERENCE, principal)
    stmt = select(ProjectStatus).order_by(ProjectStatus.sort_order, ProjectStatus.id)
    return [s.to_dict() for s in db.session.scalars(stmt)]


def list_active_users(principal: Principal) -> list[dict]:
    """Active users in the short form used by pickers."""
    require_view(ResourceKind.REFERENCE, principal)
    users = db.session.scalars(
        select(User).where(User.status == "active").order_by(User.full_name)
    )
    return [
        {
            "id": u.id,
            "full_name": u.full_name,
            "email": u.email,
            "role": u.role.name if u.role else None,
            "direction": u.direction.name if u.direction else None,
        }
        for u in users
    ]


def list_roles(principal: Principal) -> list[dict]:
    require_view(ResourceKind.REFERENCE, principal)
    return [r.to_dict() for r in db.session.scalars(select(Role).order_by(Role.name))]


def list_priorities(principal: Principal) -> list[dict]:
    require_view(ResourceKind.REFERENCE, principal)
    return [
        {"value": value, "label": PRIORITY_LABELS[value][0], "color": PRIORITY_LABELS[value][1]}
        for value in ("low", "normal", "high", "critical")
        if value in PROJECT_PRIORITIES
    ]


def list_provider_types(principal: Principal) -> list[dict]:
    require_view(ResourceKind.REFERENCE, principal)
    return [
        {"value": value, "label": PROVIDER_TYPE_LABELS.get(value, value)}
        for value in sorted(PROVIDER_TYPES)
    ]


def all_reference_data(principal: Principal) -> dict:
    return {
        "directions": list_directions(principal),
        "statuses": list_statuses(principal),
        "users": list_active_users(principal),
        "roles": list_roles(principal),
        "priorities": list_priorities(principal),
        "provider_types": list_provider_types(principal),
    }
