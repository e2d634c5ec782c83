"""
Auth Service: password login and principal resolution.

Tokens are stateless: logout is acknowledged and audited, the client
drops its token.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select

from pmo.core.access import Principal, RoleName
from pmo.core.exceptions import AuthenticationError, ValidationError
from pmo.models import db
from pmo.models.auth import User
from pmo.services.audit_service import get_audit
from pmo.services.helpers.partial_update import apply_update
from pmo.services.jwt_service import generate_access_token
from pmo.utils.crypto import verify_password
from pmo.utils.helpers import db_commit_or_raise

logger = logging.getLogger(__name__)


def principal_for(user: User) -> Principal:
    return Principal(
        id=user.id,
        role=RoleName(user.role.name),
        email=user.email,
        full_name=user.full_name,
    )


def authenticate(email: str, password: str) -> User:
    """Return the active user matching the credentials."""
    email = (email or "").strip().lower()
    if not email or not password:
        raise ValidationError(
            "Email and password are required",
            details={k: "required" for k, v in (("email", email), ("password", password)) if not v},
        )
    user = db.session.scalar(select(User).where(func.lower(User.email) == email))
    if user is None or not verify_password(password, user.password_hash):
        logger.warning("Failed login for %s", email, extra={"event_type": "auth_failed"})
        raise AuthenticationError("Invalid email or password")
    if not user.is_active:
        raise AuthenticationError(f"Account is {user.status}")
    return user


def login(email: str, password: str) -> dict:
    """Authenticate, stamp ``last_access_at`` and issue an access token."""
    user = authenticate(email, password)
    apply_update(User, user.id, {"last_access_at": datetime.now(timezone.utc)})
    get_audit().emit("user.login", "user", user.id, actor=principal_for(user))
    db_commit_or_raise("User")

    tokens = generate_access_token(user.id, user.email, user.role.name)
    return {**tokens, "user": user.to_dict()}


def load_principal(user_id: int) -> Principal:
    """Resolve a token subject to a Principal; unknown or inactive users are rejected."""
    user = db.session.get(User, user_id)
    if user is None:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise AuthenticationError(f"Account is {user.status}")
    return principal_for(user)


def logout(principal: Principal) -> None:
    get_audit().emit("user.logout", "user", principal.id, actor=principal)
    db_commit_or_raise("AuditLog")
