"""
PMO Portfolio API
Provider and contract models.

Models:
    - Provider: external organization delivering work
    - ProjectProvider: provider engagement on a project (role + date range)
    - Contract: signed commitment between a project and a provider
"""

from datetime import datetime, timezone

from pmo.core.access import ResourceKind
from pmo.models import db
from pmo.models.project import _iso, _ProjectChild


class Provider(db.Model):
    __tablename__ = "providers"
    resource_kind = ResourceKind.PROVIDER

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    registration_number = db.Column(db.String(50), nullable=True, comment="company registry id (SIRET, ...)")
    address = db.Column(db.Text, nullable=True)
    provider_type = db.Column(
        db.String(30), nullable=False,
        comment="consulting | software_vendor | integrator | contractor | other",
    )
    contact_name = db.Column(db.String(150), nullable=True)
    contact_email = db.Column(db.String(200), nullable=True)
    contact_phone = db.Column(db.String(50), nullable=True)
    expertise = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="active", comment="active | inactive")
    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    contracts = db.relationship("Contract", backref="provider", lazy="dynamic")
    project_links = db.relationship(
        "ProjectProvider", backref="provider", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "registration_number": self.registration_number,
            "address": self.address,
            "provider_type": self.provider_type,
            "contact_name": self.contact_name,
            "contact_email": self.contact_email,
            "contact_phone": self.contact_phone,
            "expertise": self.expertise,
            "status": self.status,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Provider {self.id}: {self.name}>"


class ProjectProvider(db.Model):
    __tablename__ = "project_providers"
    __table_args__ = (
        db.UniqueConstraint("project_id", "provider_id", name="uq_project_provider"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    provider_id = db.Column(
        db.Integer, db.ForeignKey("providers.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    role_in_project = db.Column(db.String(150), nullable=True)
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="active", comment="active | inactive")
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "project_name": self.project.name if self.project else None,
            "provider_id": self.provider_id,
            "provider_name": self.provider.name if self.provider else None,
            "role_in_project": self.role_in_project,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "status": self.status,
            "updated_at": _iso(self.updated_at),
        }


class Contract(_ProjectChild, db.Model):
    __tablename__ = "contracts"
    resource_kind = ResourceKind.CONTRACT

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    provider_id = db.Column(db.Integer, db.ForeignKey("providers.id"), nullable=True, index=True)
    contract_number = db.Column(db.String(50), nullable=False, unique=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    amount = db.Column(db.Float, nullable=False, default=0.0)
    signature_date = db.Column(db.Date, nullable=True)
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    status = db.Column(
        db.String(20), nullable=False, default="negotiation",
        comment="negotiation | signed | active | completed | terminated",
    )
    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    deliverables = db.relationship("Deliverable", backref="contract", lazy="dynamic")

    @property
    def involved_user_ids(self) -> set[int]:
        return {self.created_by} - {None}

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "project_name": self.project.name if self.project else None,
            "provider_id": self.provider_id,
            "provider_name": self.provider.name if self.provider else None,
            "contract_number": self.contract_number,
            "title": self.title,
            "description": self.description,
            "amount": self.amount,
            "signature_date": _iso(self.signature_date),
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "status": self.status,
            "created_by": self.created_by,
            "deliverable_count": self.deliverables.count(),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Contract {self.id}: {self.contract_number}>"
