"""
User Service: administration of accounts (functional admin only),
profile and password changes for every user.

Users are never hard-deleted: deletion flips ``status`` to ``inactive``,
which also blocks login and token use.
"""

import logging
from typing import Any

from sqlalchemy import func, or_, select

from pmo.core.access import Principal, RoleName, require_role
from pmo.core.exceptions import AuthorizationError, ConflictError, ValidationError
from pmo.models import db
from pmo.models.auth import USER_STATUSES, Direction, Role, User
from pmo.services.audit_service import get_audit
from pmo.services.helpers.partial_update import apply_update
from pmo.services.helpers.validation import Email, OneOf, Reference, Text, coerce
from pmo.utils.crypto import hash_password, verify_password
from pmo.utils.helpers import db_commit_or_raise, get_or_raise

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8
DEFAULT_PER_PAGE = 50
MAX_PER_PAGE = 200

USER_FIELDS = {
    "full_name": Text(200, required=True),
    "email": Email(required=True),
    "password": Text(required=True),
    "role_id": Reference(Role, required=True),
    "direction_id": Reference(Direction),
    "status": OneOf(USER_STATUSES),
}


def _require_admin(principal: Principal, permission: str) -> None:
    require_role(principal, RoleName.FUNCTIONAL_ADMIN, permission=permission)


def _check_password(password: str, name: str = "password") -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"{name} must be at least {MIN_PASSWORD_LENGTH} characters",
            details={name: "too short"},
        )


def _ensure_email_free(email: str, *, exclude_id: int | None = None) -> None:
    stmt = select(User.id).where(func.lower(User.email) == email.lower())
    if exclude_id is not None:
        stmt = stmt.where(User.id != exclude_id)
    if db.session.scalar(stmt) is not None:
        raise ConflictError("User", "email", email)


# ═══════════════════════════════════════════════════════════════
# Reads
# ═══════════════════════════════════════════════════════════════
def list_users(
    principal: Principal,
    *,
    search: str | None = None,
    role: str | None = None,
    status: str | None = None,
    page: int = 1,
    per_page: int = DEFAULT_PER_PAGE,
) -> dict:
    """List users with filters and pagination."""
    _require_admin(principal, "user.view")
    page = max(page, 1)
    per_page = min(max(per_page, 1), MAX_PER_PAGE)

    stmt = select(User)
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(or_(User.full_name.ilike(pattern), User.email.ilike(pattern)))
    if role:
        stmt = stmt.join(Role, User.role_id == Role.id).where(Role.name == role)
    if status:
        stmt = stmt.where(User.status == status)

    total = db.session.scalar(select(func.count()).select_from(stmt.subquery()))
    users = db.session.scalars(
        stmt.order_by(User.full_name, User.id).offset((page - 1) * per_page).limit(per_page)
    )
    return {
        "items": [u.to_dict() for u in users],
        "total": total,
        "page": page,
        "per_page": per_page,
    }


def get_user(user_id: int, principal: Principal) -> User:
    _require_admin(principal, "user.view")
    return get_or_raise(User, user_id)


def get_profile(principal: Principal) -> User:
    """The caller's own account, whatever their role."""
    return get_or_raise(User, principal.id)


def user_stats(principal: Principal) -> dict:
    _require_admin(principal, "user.view")
    by_role = dict(db.session.execute(
        select(Role.name, func.count(User.id))
        .join(User, User.role_id == Role.id)
        .group_by(Role.name)
    ).all())
    by_status = dict(db.session.execute(
        select(User.status, func.count(User.id)).group_by(User.status)
    ).all())
    return {
        "total": sum(by_status.values()),
        "active": by_status.get("active", 0),
        "inactive": by_status.get("inactive", 0),
        "by_role": by_role,
    }


# ═══════════════════════════════════════════════════════════════
# Writes
# ═══════════════════════════════════════════════════════════════
def create_user(data: dict[str, Any], principal: Principal) -> User:
    """Create a user. Duplicate emails raise ConflictError before any insert."""
    _require_admin(principal, "user.create")
    values = coerce(data, USER_FIELDS)
    password = values.pop("password")
    _check_password(password)
    _ensure_email_free(values["email"])

    user = User(password_hash=hash_password(password), **values)
    db.session.add(user)
    db.session.flush()
    get_audit().emit(
        "user.create", "user", user.id,
        actor=principal, details={"email": user.email, "role_id": user.role_id},
    )
    db_commit_or_raise("User")
    logger.info("User created id=%s by user=%s", user.id, principal.id)
    return user


def update_user(user_id: int, data: dict[str, Any], principal: Principal) -> tuple[User, int]:
    """Partial update; a ``password`` key is re-hashed into ``password_hash``."""
    _require_admin(principal, "user.update")
    user = get_or_raise(User, user_id)
    patch = coerce(data, USER_FIELDS, partial=True)
    if "email" in patch:
        _ensure_email_free(patch["email"], exclude_id=user.id)
    if "password" in patch:
        password = patch.pop("password")
        _check_password(password)
        patch["password_hash"] = hash_password(password)

    rows = apply_update(User, user.id, patch)
    if rows:
        get_audit().emit(
            "user.update", "user", user.id,
            actor=principal,
            details={k: v for k, v in patch.items() if k != "password_hash"},
        )
        db_commit_or_raise("User")
    return user, rows


def delete_user(user_id: int, principal: Principal) -> User:
    """Soft delete: the account is kept and marked inactive."""
    _require_admin(principal, "user.delete")
    user = get_or_raise(User, user_id)
    if user.id == principal.id:
        raise ValidationError("You cannot delete your own account", details={"id": "self"})

    apply_update(User, user.id, {"status": "inactive"})
    get_audit().emit("user.deactivate", "user", user.id, actor=principal, details={"email": user.email})
    db_commit_or_raise("User")
    return user


def change_password(user_id: int, data: dict[str, Any], principal: Principal) -> None:
    """Change a password.

    Users change their own by supplying ``current_password``; a
    functional admin may reset anyone's without it.
    """
    is_admin = RoleName(principal.role) == RoleName.FUNCTIONAL_ADMIN
    if user_id != principal.id and not is_admin:
        raise AuthorizationError(
            required_permission="user.password",
            user_role=RoleName(principal.role).value,
            required_roles=[RoleName.FUNCTIONAL_ADMIN.value],
        )
    user = get_or_raise(User, user_id)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")

    new_password = data.get("new_password") or ""
    if not new_password:
        raise ValidationError("new_password is required", details={"new_password": "required"})
    _check_password(new_password, "new_password")
    if user_id == principal.id:
        if not verify_password(data.get("current_password") or "", user.password_hash):
            raise ValidationError(
                "Current password is incorrect", details={"current_password": "incorrect"},
            )

    apply_update(User, user.id, {"password_hash": hash_password(new_password)})
    get_audit().emit("user.password_change", "user", user.id, actor=principal)
    db_commit_or_raise("User")


def bootstrap_admin(email: str, password: str, full_name: str = "Administrator") -> User:
    """Create the first functional admin (CLI); an existing account is returned as is."""
    email = Email(required=True)(email, "email")
    _check_password(password)
    existing = db.session.scalar(select(User).where(func.lower(User.email) == email))
    if existing is not None:
        return existing
    role = db.session.scalar(select(Role).where(Role.name == RoleName.FUNCTIONAL_ADMIN.value))
    user = User(
        full_name=full_name,
        email=email,
        password_hash=hash_password(password),
        role_id=role.id,
    )
    db.session.add(user)
    db.session.flush()
    get_audit().emit("user.create", "user", user.id, details={"email": email, "bootstrap": True})
    db_commit_or_raise("User")
    return user
