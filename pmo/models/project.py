"""
PMO Portfolio API
Project domain models.

Models:
    - ProjectStatus: reference list of project lifecycle statuses
    - Project: portfolio entry led by one project lead
    - Phase: ordered stage of a project
    - Deliverable: weighted output of a project, optionally tied to a phase/contract

Every project-scoped model exposes ``lead_id`` (the project's lead) and
``involved_user_ids`` so the access predicates can decide ownership
without querying.
"""

from datetime import datetime, timezone

from pmo.core.access import ResourceKind
from pmo.models import db


def _iso(value):
    return value.isoformat() if value else None


# ── ProjectStatus ────────────────────────────────────────────────────────────


class ProjectStatus(db.Model):
    __tablename__ = "project_statuses"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(
        db.String(30), nullable=False, unique=True,
        comment="planning | in_progress | on_hold | completed | cancelled",
    )
    name = db.Column(db.String(100), nullable=False)
    color = db.Column(db.String(20), nullable=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "color": self.color,
            "order": self.sort_order,
        }

    def __repr__(self):
        return f"<ProjectStatus {self.code}>"


# ── Project ──────────────────────────────────────────────────────────────────


class Project(db.Model):
    __tablename__ = "projects"
    resource_kind = ResourceKind.PROJECT

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    code = db.Column(db.String(50), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    lead_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    direction_id = db.Column(db.Integer, db.ForeignKey("directions.id"), nullable=False)
    status_id = db.Column(db.Integer, db.ForeignKey("project_statuses.id"), nullable=False)
    budget = db.Column(db.Float, nullable=False, default=0.0)
    budget_consumed = db.Column(db.Float, nullable=False, default=0.0)
    start_date = db.Column(db.Date, nullable=True)
    target_end_date = db.Column(db.Date, nullable=True)
    completion_pct = db.Column(db.Integer, nullable=False, default=0, comment="0-100")
    priority = db.Column(
        db.String(20), nullable=False, default="normal",
        comment="low | normal | high | critical",
    )
    health = db.Column(
        db.String(10), nullable=False, default="green",
        comment="green | amber | red",
    )
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    lead = db.relationship("User", foreign_keys=[lead_id])
    direction = db.relationship("Direction")
    status = db.relationship("ProjectStatus")

    phases = db.relationship(
        "Phase", backref="project", lazy="dynamic",
        cascade="all, delete-orphan", order_by="Phase.order",
    )
    deliverables = db.relationship(
        "Deliverable", backref="project", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    contracts = db.relationship(
        "Contract", backref="project", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    documents = db.relationship(
        "Document", backref="project", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    budget_lines = db.relationship(
        "BudgetLineItem", backref="project", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    provider_links = db.relationship(
        "ProjectProvider", backref="project", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    @property
    def status_code(self):
        return self.status.code if self.status else None

    @property
    def involved_user_ids(self) -> set[int]:
        ids = {self.lead_id}
        ids.update(p.responsible_id for p in self.phases)
        for d in self.deliverables:
            ids.update((d.responsible_id, d.validator_id))
        ids.update(doc.uploaded_by for doc in self.documents)
        ids.discard(None)
        return ids

    def to_dict(self, include_children=False):
        result = {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "description": self.description,
            "lead_id": self.lead_id,
            "lead_name": self.lead.full_name if self.lead else None,
            "direction_id": self.direction_id,
            "direction": self.direction.name if self.direction else None,
            "status_id": self.status_id,
            "status": self.status_code,
            "status_name": self.status.name if self.status else None,
            "status_color": self.status.color if self.status else None,
            "budget": self.budget,
            "budget_consumed": self.budget_consumed,
            "start_date": _iso(self.start_date),
            "target_end_date": _iso(self.target_end_date),
            "completion_pct": self.completion_pct,
            "priority": self.priority,
            "health": self.health,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_children:
            result["phases"] = [p.to_dict() for p in self.phases]
            result["deliverables"] = [d.to_dict() for d in self.deliverables]
            result["contracts"] = [c.to_dict() for c in self.contracts]
            result["documents"] = [doc.to_dict() for doc in self.documents]
            result["budget_lines"] = [b.to_dict() for b in self.budget_lines]
            result["providers"] = [
                link.to_dict() for link in self.provider_links if link.status == "active"
            ]
        return result

    def __repr__(self):
        return f"<Project {self.id}: {self.code}>"


class _ProjectChild:
    """Ownership helpers shared by records living under one project."""

    @property
    def lead_id(self):
        return self.project.lead_id if self.project else None


# ── Phase ────────────────────────────────────────────────────────────────────


class Phase(_ProjectChild, db.Model):
    __tablename__ = "phases"
    resource_kind = ResourceKind.PHASE

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    order = db.Column(db.Integer, nullable=False, default=1)
    start_date = db.Column(db.Date, nullable=True)
    target_end_date = db.Column(db.Date, nullable=True)
    status = db.Column(
        db.String(20), nullable=False, default="planned",
        comment="planned | in_progress | completed | on_hold",
    )
    budget_allocated = db.Column(db.Float, nullable=False, default=0.0)
    budget_consumed = db.Column(db.Float, nullable=False, default=0.0)
    completion_pct = db.Column(db.Integer, nullable=False, default=0, comment="0-100")
    responsible_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    responsible = db.relationship("User", foreign_keys=[responsible_id])
    deliverables = db.relationship("Deliverable", backref="phase", lazy="dynamic")

    @property
    def involved_user_ids(self) -> set[int]:
        return {self.responsible_id} - {None}

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "description": self.description,
            "order": self.order,
            "start_date": _iso(self.start_date),
            "target_end_date": _iso(self.target_end_date),
            "status": self.status,
            "budget_allocated": self.budget_allocated,
            "budget_consumed": self.budget_consumed,
            "completion_pct": self.completion_pct,
            "responsible_id": self.responsible_id,
            "responsible_name": self.responsible.full_name if self.responsible else None,
            "deliverable_count": self.deliverables.count(),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Phase {self.id}: {self.name}>"


# ── Deliverable ──────────────────────────────────────────────────────────────


class Deliverable(_ProjectChild, db.Model):
    __tablename__ = "deliverables"
    resource_kind = ResourceKind.DELIVERABLE

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    phase_id = db.Column(
        db.Integer, db.ForeignKey("phases.id"), nullable=True, index=True,
    )
    contract_id = db.Column(
        db.Integer, db.ForeignKey("contracts.id"), nullable=True, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    deliverable_type = db.Column(
        db.String(30), nullable=False, default="document",
        comment="document | software | report | training | service | other",
    )
    due_date = db.Column(db.Date, nullable=True)
    status = db.Column(
        db.String(20), nullable=False, default="planned",
        comment="planned | in_progress | delivered | validated | rejected",
    )
    responsible_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    validator_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    weight = db.Column(db.Integer, nullable=False, default=0, comment="0-100 share of phase progress")
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    responsible = db.relationship("User", foreign_keys=[responsible_id])
    validator = db.relationship("User", foreign_keys=[validator_id])

    @property
    def involved_user_ids(self) -> set[int]:
        return {self.responsible_id, self.validator_id} - {None}

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "phase_id": self.phase_id,
            "phase_name": self.phase.name if self.phase else None,
            "contract_id": self.contract_id,
            "name": self.name,
            "description": self.description,
            "deliverable_type": self.deliverable_type,
            "due_date": _iso(self.due_date),
            "status": self.status,
            "responsible_id": self.responsible_id,
            "responsible_name": self.responsible.full_name if self.responsible else None,
            "validator_id": self.validator_id,
            "validator_name": self.validator.full_name if self.validator else None,
            "weight": self.weight,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Deliverable {self.id}: {self.name} [{self.status}]>"
