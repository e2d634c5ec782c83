"""
PMO Portfolio API
Document and budget models.

Models:
    - Document: metadata of a file stored for a project
    - BudgetLineItem: planned / committed / consumed amounts per category
"""

from datetime import datetime, timezone

from pmo.core.access import ResourceKind
from pmo.models import db
from pmo.models.project import _iso, _ProjectChild


class Document(_ProjectChild, db.Model):
    __tablename__ = "documents"
    resource_kind = ResourceKind.DOCUMENT

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    phase_id = db.Column(db.Integer, db.ForeignKey("phases.id", ondelete="SET NULL"), nullable=True)
    deliverable_id = db.Column(
        db.Integer, db.ForeignKey("deliverables.id", ondelete="SET NULL"), nullable=True,
    )
    contract_id = db.Column(
        db.Integer, db.ForeignKey("contracts.id", ondelete="SET NULL"), nullable=True,
    )
    stored_name = db.Column(db.String(255), nullable=False)
    original_name = db.Column(db.String(255), nullable=False)
    file_path = db.Column(db.String(500), nullable=False)
    file_size = db.Column(db.Integer, nullable=False, default=0)
    mime_type = db.Column(db.String(100), nullable=True)
    category = db.Column(
        db.String(20), nullable=False, default="other",
        comment="specification | report | contract | invoice | minutes | deliverable | other",
    )
    description = db.Column(db.Text, nullable=True)
    uploaded_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    uploaded_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    uploader = db.relationship("User", foreign_keys=[uploaded_by])

    @property
    def involved_user_ids(self) -> set[int]:
        return {self.uploaded_by} - {None}

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "phase_id": self.phase_id,
            "deliverable_id": self.deliverable_id,
            "contract_id": self.contract_id,
            "original_name": self.original_name,
            "stored_name": self.stored_name,
            "file_size": self.file_size,
            "mime_type": self.mime_type,
            "category": self.category,
            "description": self.description,
            "uploaded_by": self.uploaded_by,
            "uploader_name": self.uploader.full_name if self.uploader else None,
            "uploaded_at": _iso(self.uploaded_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Document {self.id}: {self.original_name}>"


class BudgetLineItem(_ProjectChild, db.Model):
    __tablename__ = "budget_line_items"
    resource_kind = ResourceKind.BUDGET

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    phase_id = db.Column(db.Integer, db.ForeignKey("phases.id", ondelete="SET NULL"), nullable=True)
    contract_id = db.Column(
        db.Integer, db.ForeignKey("contracts.id", ondelete="SET NULL"), nullable=True,
    )
    category = db.Column(db.String(100), nullable=False)
    planned_amount = db.Column(db.Float, nullable=False, default=0.0)
    committed_amount = db.Column(db.Float, nullable=False, default=0.0)
    consumed_amount = db.Column(db.Float, nullable=False, default=0.0)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @property
    def involved_user_ids(self) -> set[int]:
        return set()

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "phase_id": self.phase_id,
            "contract_id": self.contract_id,
            "category": self.category,
            "planned_amount": self.planned_amount,
            "committed_amount": self.committed_amount,
            "consumed_amount": self.consumed_amount,
            "description": self.description,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<BudgetLineItem {self.id}: {self.category}>"
