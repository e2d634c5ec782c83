"""
PMO Portfolio API
Identity models.

Models:
    - Direction: organizational unit owning users and projects
    - Role: one of the fixed RoleName values plus a capability map
    - User: authenticated person; soft-deleted by flipping status
"""

from datetime import datetime, timezone

from pmo.core.access import ResourceKind, RoleName
from pmo.models import db

USER_STATUSES = {"active", "inactive"}


class Direction(db.Model):
    __tablename__ = "directions"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
        }

    def __repr__(self):
        return f"<Direction {self.id}: {self.name}>"


class Role(db.Model):
    """A named role. ``name`` always holds a ``RoleName`` value."""

    __tablename__ = "roles"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(
        db.String(50), nullable=False, unique=True,
        comment="functional_admin | pmo | project_lead | contributor",
    )
    display_name = db.Column(db.String(100), nullable=True)
    description = db.Column(db.Text, nullable=True)
    permissions = db.Column(db.JSON, default=dict, comment="capability map: {name: bool}")
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    users = db.relationship("User", back_populates="role", lazy="dynamic")

    @property
    def role_name(self) -> RoleName:
        return RoleName(self.name)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "display_name": self.display_name,
            "description": self.description,
            "permissions": self.permissions or {},
        }

    def __repr__(self):
        return f"<Role {self.name}>"


class User(db.Model):
    __tablename__ = "users"
    resource_kind = ResourceKind.USER

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(200), nullable=False, unique=True, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    role_id = db.Column(db.Integer, db.ForeignKey("roles.id"), nullable=False)
    direction_id = db.Column(
        db.Integer, db.ForeignKey("directions.id", ondelete="SET NULL"), nullable=True,
    )
    status = db.Column(db.String(20), nullable=False, default="active", comment="active | inactive")
    last_access_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    role = db.relationship("Role", back_populates="users")
    direction = db.relationship("Direction")

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def to_dict(self):
        return {
            "id": self.id,
            "full_name": self.full_name,
            "email": self.email,
            "role_id": self.role_id,
            "role": self.role.name if self.role else None,
            "role_display_name": self.role.display_name if self.role else None,
            "direction_id": self.direction_id,
            "direction": self.direction.name if self.direction else None,
            "status": self.status,
            "last_access_at": self.last_access_at.isoformat() if self.last_access_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.email}>"
