"""
Role-based access predicates.

Pure functions mapping (role, resource ownership) to allow/deny. No
database access happens here: project-scoped models expose ``lead_id``
(the project lead, resolved through the parent project for child
records) and ``involved_user_ids`` (users named responsible, validator or
uploader), and the predicates only read those.

Every predicate dispatches over the closed ``RoleName`` set through
``_ROLE_RULES``; a role without a rule table fails at import time.

Usage:
    from pmo.core.access import Principal, ResourceKind, RoleName, require_modify

    principal = Principal(id=7, role=RoleName.PROJECT_LEAD)
    require_modify(project, principal)   # raises AuthorizationError on deny
"""

from dataclasses import dataclass
from enum import Enum

from pmo.core.exceptions import AuthorizationError


class RoleName(str, Enum):
    """The fixed set of roles a User can hold."""

    FUNCTIONAL_ADMIN = "functional_admin"
    PMO = "pmo"
    PROJECT_LEAD = "project_lead"
    CONTRIBUTOR = "contributor"


ROLE_DISPLAY_NAMES = {
    RoleName.FUNCTIONAL_ADMIN: "Functional administrator",
    RoleName.PMO: "PMO / Portfolio director",
    RoleName.PROJECT_LEAD: "Project lead",
    RoleName.CONTRIBUTOR: "Contributor",
}


class ResourceKind(str, Enum):
    """Kinds of resource the predicates reason about."""

    PROJECT = "project"
    PHASE = "phase"
    DELIVERABLE = "deliverable"
    CONTRACT = "contract"
    DOCUMENT = "document"
    BUDGET = "budget"
    PROVIDER = "provider"
    USER = "user"
    REPORT = "report"
    REFERENCE = "reference"


# Children that live under exactly one project
PROJECT_CHILD_KINDS = frozenset({
    ResourceKind.PHASE,
    ResourceKind.DELIVERABLE,
    ResourceKind.CONTRACT,
    ResourceKind.DOCUMENT,
    ResourceKind.BUDGET,
})
PROJECT_SCOPED_KINDS = PROJECT_CHILD_KINDS | {ResourceKind.PROJECT}

# Children a project lead may remove from the projects they lead
LEAD_DELETABLE_KINDS = PROJECT_CHILD_KINDS - {ResourceKind.CONTRACT}

# Visible to every authenticated principal
OPEN_READ_KINDS = frozenset({ResourceKind.PROVIDER, ResourceKind.REFERENCE})

PORTFOLIO_ROLES = (RoleName.FUNCTIONAL_ADMIN, RoleName.PMO)


@dataclass(frozen=True)
class Principal:
    """The authenticated caller of an operation."""

    id: int
    role: RoleName
    email: str = ""
    full_name: str = ""

    @property
    def is_portfolio_manager(self) -> bool:
        return self.role in PORTFOLIO_ROLES


# ═════════════════════════════════════════════════════════════════════════════
# Per-role rules
# ═════════════════════════════════════════════════════════════════════════════


def _owns(resource, principal: Principal) -> bool:
    lead_id = getattr(resource, "lead_id", None)
    return lead_id is not None and lead_id == principal.id


def _involved(resource, principal: Principal) -> bool:
    return principal.id in (getattr(resource, "involved_user_ids", None) or ())


def _kind_of(resource) -> ResourceKind:
    kind = getattr(resource, "resource_kind", None)
    if kind is None:
        raise TypeError(f"{type(resource).__name__} does not declare a resource_kind")
    return kind


# -- functional_admin ---------------------------------------------------------

def _admin_view(kind, principal, scope):
    return True


def _admin_modify(kind, resource, principal):
    return True


def _admin_create(kind, principal, project):
    return True


def _admin_delete(kind, principal, resource):
    return True


# -- pmo ----------------------------------------------------------------------

def _pmo_view(kind, principal, scope):
    return kind != ResourceKind.USER


def _pmo_modify(kind, resource, principal):
    return kind != ResourceKind.USER


def _pmo_create(kind, principal, project):
    return kind != ResourceKind.USER


def _pmo_delete(kind, principal, resource):
    return kind != ResourceKind.USER


# -- project_lead -------------------------------------------------------------

def _lead_view(kind, principal, scope):
    if kind in OPEN_READ_KINDS:
        return True
    if kind in PROJECT_SCOPED_KINDS:
        return scope is None or _owns(scope, principal)
    return False


def _lead_modify(kind, resource, principal):
    return kind in PROJECT_SCOPED_KINDS and _owns(resource, principal)


def _lead_create(kind, principal, project):
    return kind in PROJECT_CHILD_KINDS and project is not None and _owns(project, principal)


def _lead_delete(kind, principal, resource):
    return kind in LEAD_DELETABLE_KINDS and resource is not None and _owns(resource, principal)


# -- contributor --------------------------------------------------------------

def _contributor_view(kind, principal, scope):
    if kind in OPEN_READ_KINDS:
        return True
    if kind in PROJECT_SCOPED_KINDS:
        if scope is None or _involved(scope, principal):
            return True
        # Children of a project the contributor works on
        project = getattr(scope, "project", None)
        return project is not None and _involved(project, principal)
    return False


def _deny_modify(kind, resource, principal):
    return False


def _deny_create(kind, principal, project):
    return False


def _deny_delete(kind, principal, resource):
    return False


@dataclass(frozen=True)
class _RoleRules:
    view: object
    modify: object
    create: object
    delete: object


_ROLE_RULES: dict[RoleName, _RoleRules] = {
    RoleName.FUNCTIONAL_ADMIN: _RoleRules(_admin_view, _admin_modify, _admin_create, _admin_delete),
    RoleName.PMO: _RoleRules(_pmo_view, _pmo_modify, _pmo_create, _pmo_delete),
    RoleName.PROJECT_LEAD: _RoleRules(_lead_view, _lead_modify, _lead_create, _lead_delete),
    RoleName.CONTRIBUTOR: _RoleRules(_contributor_view, _deny_modify, _deny_create, _deny_delete),
}

_missing = set(RoleName) - set(_ROLE_RULES)
if _missing:
    raise RuntimeError(f"No access rules for roles: {sorted(r.value for r in _missing)}")


def _rules(principal: Principal) -> _RoleRules:
    return _ROLE_RULES[RoleName(principal.role)]


# ═════════════════════════════════════════════════════════════════════════════
# Predicates
# ═════════════════════════════════════════════════════════════════════════════


def can_view(kind: ResourceKind, principal: Principal, scope=None) -> bool:
    """Whether ``principal`` may read resources of ``kind``.

    ``scope`` is the concrete resource being read, or None for a listing
    (list endpoints then narrow the rows to the principal's scope).
    """
    return bool(_rules(principal).view(kind, principal, scope))


def can_modify(resource, principal: Principal) -> bool:
    """Whether ``principal`` may write fields of ``resource``."""
    return bool(_rules(principal).modify(_kind_of(resource), resource, principal))


def can_create(kind: ResourceKind, principal: Principal, project=None) -> bool:
    """Whether ``principal`` may create a ``kind`` (under ``project`` for children)."""
    return bool(_rules(principal).create(kind, principal, project))


def can_delete(kind: ResourceKind, principal: Principal, resource=None) -> bool:
    """Whether ``principal`` may delete a ``kind``.

    Project deletion is additionally subject to the dependency guard in
    the project service; this predicate only answers the role question.
    """
    return bool(_rules(principal).delete(kind, principal, resource))


# ═════════════════════════════════════════════════════════════════════════════
# Raising variants
# ═════════════════════════════════════════════════════════════════════════════


def roles_granting(action: str, kind: ResourceKind) -> list[str]:
    """Roles that can perform ``action`` on ``kind`` in general (diagnostics)."""
    portfolio = [r.value for r in PORTFOLIO_ROLES]
    if kind == ResourceKind.USER:
        return [RoleName.FUNCTIONAL_ADMIN.value]
    if kind == ResourceKind.REPORT:
        return portfolio
    if action == "view":
        return [r.value for r in RoleName]
    if kind == ResourceKind.PROVIDER:
        return portfolio
    if kind == ResourceKind.PROJECT and action in ("create", "delete"):
        return portfolio
    if kind == ResourceKind.CONTRACT and action == "delete":
        return portfolio
    return portfolio + [RoleName.PROJECT_LEAD.value]


def _deny(action: str, kind: ResourceKind, principal: Principal):
    raise AuthorizationError(
        required_permission=f"{kind.value}.{action}",
        user_role=RoleName(principal.role).value,
        required_roles=roles_granting(action, kind),
    )


def require_view(kind: ResourceKind, principal: Principal, scope=None) -> None:
    if not can_view(kind, principal, scope):
        _deny("view", kind, principal)


def require_modify(resource, principal: Principal) -> None:
    if not can_modify(resource, principal):
        _deny("update", _kind_of(resource), principal)


def require_create(kind: ResourceKind, principal: Principal, project=None) -> None:
    if not can_create(kind, principal, project):
        _deny("create", kind, principal)


def require_delete(kind: ResourceKind, principal: Principal, resource=None) -> None:
    if not can_delete(kind, principal, resource):
        _deny("delete", kind, principal)


def require_role(principal: Principal, *roles: RoleName, permission: str) -> None:
    """Coarse check for endpoints gated by role alone (users admin, reports)."""
    if RoleName(principal.role) not in roles:
        raise AuthorizationError(
            required_permission=permission,
            user_role=RoleName(principal.role).value,
            required_roles=[r.value for r in roles],
        )
