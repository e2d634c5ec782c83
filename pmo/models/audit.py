"""
PMO Portfolio API
Audit domain model.

Models:
    - AuditLog: immutable, append-only trail of write operations and logins.
"""

import json
from datetime import UTC, datetime

from pmo.models import db


class AuditLog(db.Model):
    """
    One row per action.  ``details_json`` carries the changed fields
    (``{field: new_value}``) or action-specific context.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_project", "project_id"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    # Not a foreign key: the trail must outlive deleted projects
    project_id = db.Column(db.Integer, nullable=True)

    entity_type = db.Column(
        db.String(30), nullable=False,
        comment="project | phase | deliverable | contract | provider | document | budget | user",
    )
    entity_id = db.Column(db.String(36), nullable=False)
    action = db.Column(
        db.String(60), nullable=False,
        comment="project.create | deliverable.update | user.login | ...",
    )
    actor_user_id = db.Column(db.Integer, nullable=True, index=True)
    actor_email = db.Column(db.String(200), nullable=False, default="system")
    request_id = db.Column(db.String(40), nullable=True)
    details_json = db.Column(db.Text, default="{}")
    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )

    @property
    def details(self) -> dict:
        try:
            return json.loads(self.details_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor_user_id": self.actor_user_id,
            "actor_email": self.actor_email,
            "request_id": self.request_id,
            "details": self.details,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"
