"""Document service layer: project file uploads and their metadata."""
import logging
from typing import Any

from pmo.core.access import (
    Principal,
    ResourceKind,
    require_create,
    require_delete,
    require_modify,
    require_view,
)
from pmo.core.exceptions import ValidationError
from pmo.models import db
from pmo.models.contract import Contract
from pmo.models.document import Document
from pmo.models.project import Deliverable, Phase
from pmo.services.audit_service import get_audit
from pmo.services.file_store import get_file_store
from pmo.services.helpers.partial_update import apply_update
from pmo.services.helpers.validation import OneOf, Reference, Text, coerce
from pmo.services.project_service import get_project
from pmo.utils.helpers import db_commit_or_raise, get_or_raise

logger = logging.getLogger(__name__)

DOCUMENT_CATEGORIES = {
    "specification", "report", "contract", "invoice", "minutes", "deliverable", "other",
}

DOCUMENT_FIELDS = {
    "category": OneOf(DOCUMENT_CATEGORIES),
    "description": Text(),
    "phase_id": Reference(Phase),
    "deliverable_id": Reference(Deliverable),
    "contract_id": Reference(Contract),
}


def _check_same_project(values: dict, project_id: int) -> None:
    for key, model in (("phase_id", Phase), ("deliverable_id", Deliverable), ("contract_id", Contract)):
        ref_id = values.get(key)
        if ref_id is not None and db.session.get(model, ref_id).project_id != project_id:
            raise ValidationError(
                f"{model.__name__} id={ref_id} belongs to another project",
                details={key: "different project"},
            )


def list_documents(project_id: int, principal: Principal, *, category: str | None = None) -> list[Document]:
    project = get_project(project_id, principal)
    query = project.documents
    if category:
        query = query.filter(Document.category == category)
    return query.order_by(Document.uploaded_at.desc(), Document.id.desc()).all()


def get_document(document_id: int, principal: Principal) -> Document:
    document = get_or_raise(Document, document_id)
    require_view(ResourceKind.DOCUMENT, principal, document)
    return document


def upload_document(project_id: int, upload, form: dict[str, Any], principal: Principal) -> Document:
    """Store ``upload`` for the project and record its metadata.

    The stored file is removed again if the metadata cannot be committed.
    """
    project = get_project(project_id, principal)
    require_create(ResourceKind.DOCUMENT, principal, project)
    if upload is None or not upload.filename:
        raise ValidationError("No file provided", details={"file": "required"})
    values = coerce(dict(form), DOCUMENT_FIELDS, partial=True)
    _check_same_project(values, project.id)

    store = get_file_store()
    stored = store.save(project.id, upload)
    try:
        document = Document(
            project_id=project.id,
            stored_name=stored.stored_name,
            original_name=stored.original_name,
            file_path=stored.relative_path,
            file_size=stored.size,
            mime_type=stored.mime_type,
            uploaded_by=principal.id,
            **values,
        )
        db.session.add(document)
        db.session.flush()
        get_audit().emit(
            "document.upload", "document", document.id,
            actor=principal, project_id=project.id,
            details={"original_name": document.original_name, "size": document.file_size},
        )
        db_commit_or_raise("Document")
    except Exception:
        db.session.rollback()
        store.delete(stored.relative_path)
        raise
    return document


def document_file(document_id: int, principal: Principal) -> tuple[Document, str]:
    """Return the document and the absolute path of its stored file."""
    document = get_document(document_id, principal)
    return document, get_file_store().resolve(document.file_path)


def update_document(document_id: int, data: dict[str, Any], principal: Principal) -> tuple[Document, int]:
    document = get_or_raise(Document, document_id)
    require_modify(document, principal)
    patch = coerce(data, DOCUMENT_FIELDS, partial=True)
    _check_same_project(patch, document.project_id)
    rows = apply_update(Document, document.id, patch)
    if rows:
        get_audit().emit(
            "document.update", "document", document.id,
            actor=principal, project_id=document.project_id, details=patch,
        )
        db_commit_or_raise("Document")
    return document, rows


def delete_document(document_id: int, principal: Principal) -> None:
    document = get_or_raise(Document, document_id)
    require_delete(ResourceKind.DOCUMENT, principal, document)
    path = document.file_path
    get_audit().emit(
        "document.delete", "document", document.id,
        actor=principal, project_id=document.project_id,
        details={"original_name": document.original_name},
    )
    db.session.delete(document)
    db_commit_or_raise("Document")
    get_file_store().delete(path)
