"""Structured audit trail.

``AuditTrail`` is installed once per app in ``app.extensions["audit"]``
and fetched through ``get_audit()``; services never write audit rows
directly.

Each ``emit`` produces:
  - one structured log record (``event_type="audit"``) on the ``pmo.audit`` logger
  - one ``AuditLog`` row added to the current transaction (flushed, not committed)

Usage:
    get_audit().emit("project.update", "project", project.id,
                     actor=principal, project_id=project.id,
                     details={"budget": 5000.0})
"""

import json
import logging

from flask import current_app, g, has_request_context

from pmo.models import db
from pmo.models.audit import AuditLog

logger = logging.getLogger("pmo.audit")


class AuditTrail:
    """Writes audit events to the log stream and the audit table."""

    def __init__(self, app=None, *, persist: bool = True):
        self.persist = persist
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        app.extensions["audit"] = self

    def emit(
        self,
        action: str,
        entity_type: str,
        entity_id,
        *,
        actor=None,
        project_id: int | None = None,
        details: dict | None = None,
    ) -> AuditLog | None:
        request_id = getattr(g, "request_id", None) if has_request_context() else None
        actor_id = getattr(actor, "id", None)
        actor_email = getattr(actor, "email", None) or "system"

        logger.info(
            "%s %s/%s by %s", action, entity_type, entity_id, actor_email,
            extra={
                "event_type": "audit",
                "action": action,
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "user_id": actor_id,
                "project_id": project_id,
                "request_id": request_id,
            },
        )
        if not self.persist:
            return None

        row = AuditLog(
            project_id=project_id,
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action,
            actor_user_id=actor_id,
            actor_email=actor_email,
            request_id=request_id,
            details_json=json.dumps(details or {}, default=str),
        )
        db.session.add(row)
        db.session.flush()
        return row

    def denied(self, exc, actor=None) -> None:
        """Record an authorization denial on the log stream only.

        The request's transaction is rolled back after a denial, so no
        row is written.
        """
        request_id = getattr(g, "request_id", None) if has_request_context() else None
        logger.warning(
            "authorization.denied %s for role %s", exc.required_permission, exc.user_role,
            extra={
                "event_type": "audit",
                "action": "authorization.denied",
                "user_id": getattr(actor, "id", None),
                "required_permission": exc.required_permission,
                "user_role": exc.user_role,
                "request_id": request_id,
            },
        )


def get_audit() -> AuditTrail:
    """Return the app's audit collaborator."""
    return current_app.extensions["audit"]
