"""
Documents blueprint: project file uploads.

Endpoints:
    GET    /api/v1/projects/<pid>/documents     list (category filter)
    POST   /api/v1/projects/<pid>/documents     multipart upload, field ``file``
    GET    /api/v1/documents/<id>
    GET    /api/v1/documents/<id>/download
    PATCH  /api/v1/documents/<id>               metadata only
    DELETE /api/v1/documents/<id>               also removes the stored file
"""

from flask import Blueprint, request, send_file

from pmo.blueprints import json_body, updated
from pmo.middleware.jwt_auth import current_principal
from pmo.services import document_service
from pmo.utils.errors import api_ok

documents_bp = Blueprint("documents", __name__, url_prefix="/api/v1")


@documents_bp.route("/projects/<int:project_id>/documents", methods=["GET"])
def list_documents(project_id):
    documents = document_service.list_documents(
        project_id, current_principal(), category=request.args.get("category"),
    )
    items = [d.to_dict() for d in documents]
    return api_ok(items, count=len(items))


@documents_bp.route("/projects/<int:project_id>/documents", methods=["POST"])
def upload_document(project_id):
    document = document_service.upload_document(
        project_id, request.files.get("file"), request.form.to_dict(), current_principal(),
    )
    return api_ok(document.to_dict(), "Document uploaded", status=201)


@documents_bp.route("/documents/<int:document_id>", methods=["GET"])
def get_document(document_id):
    return api_ok(document_service.get_document(document_id, current_principal()).to_dict())


@documents_bp.route("/documents/<int:document_id>/download", methods=["GET"])
def download_document(document_id):
    document, path = document_service.document_file(document_id, current_principal())
    return send_file(
        path,
        mimetype=document.mime_type or "application/octet-stream",
        as_attachment=True,
        download_name=document.original_name,
    )


@documents_bp.route("/documents/<int:document_id>", methods=["PUT", "PATCH"])
def update_document(document_id):
    document, rows = document_service.update_document(document_id, json_body(), current_principal())
    return updated(document, rows, "Document")


@documents_bp.route("/documents/<int:document_id>", methods=["DELETE"])
def delete_document(document_id):
    document_service.delete_document(document_id, current_principal())
    return api_ok(message="Document deleted")
