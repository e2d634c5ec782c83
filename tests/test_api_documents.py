"""
Document upload, download, metadata update and deletion.
"""

import io
import os

import pytest

from conftest import auth_headers
from pmo.models import db
from pmo.models.document import Document
from pmo.services.file_store import get_file_store

pytestmark = pytest.mark.integration


def _upload(client, user, project, name="minutes.txt", content=b"kick-off minutes", **form):
    data = {"file": (io.BytesIO(content), name)}
    data.update(form)
    return client.post(
        f"/api/v1/projects/{project.id}/documents",
        data=data,
        content_type="multipart/form-data",
        headers=auth_headers(user),
    )


def _stored_path(document_id):
    return get_file_store().absolute_path(db.session.get(Document, document_id).file_path)


class TestUpload:
    def test_lead_uploads(self, client, lead, project):
        res = _upload(client, lead, project, category="minutes", description="Kick-off")
        assert res.status_code == 201
        data = res.get_json()["data"]
        assert data["original_name"] == "minutes.txt"
        assert data["file_size"] == len(b"kick-off minutes")
        assert data["category"] == "minutes"
        assert data["uploaded_by"] == lead.id
        assert os.path.isfile(_stored_path(data["id"]))

    def test_missing_file(self, client, lead, project):
        res = client.post(f"/api/v1/projects/{project.id}/documents", data={},
                          content_type="multipart/form-data", headers=auth_headers(lead))
        assert res.status_code == 400
        assert res.get_json()["details"] == {"file": "required"}

    def test_extension_not_allowed(self, client, lead, project):
        res = _upload(client, lead, project, name="payload.exe")
        assert res.status_code == 400
        assert res.get_json()["message"] == "File type not allowed"

    def test_invalid_category_leaves_no_file(self, client, lead, project):
        folder = os.path.join(get_file_store().root, "projects", str(project.id))
        before = set(os.listdir(folder)) if os.path.isdir(folder) else set()
        res = _upload(client, lead, project, category="memes")
        assert res.status_code == 400
        after = set(os.listdir(folder)) if os.path.isdir(folder) else set()
        assert after == before

    def test_contributor_cannot_upload(self, client, contributor, project):
        assert _upload(client, contributor, project).status_code == 403


class TestDocumentLifecycle:
    def test_list_and_filter(self, client, lead, project):
        _upload(client, lead, project, category="minutes")
        _upload(client, lead, project, name="spec.pdf", content=b"%PDF-1.4", category="specification")
        headers = auth_headers(lead)
        url = f"/api/v1/projects/{project.id}/documents"
        assert client.get(url, headers=headers).get_json()["count"] == 2
        assert client.get(f"{url}?category=specification", headers=headers).get_json()["count"] == 1

    def test_download(self, client, lead, project):
        document = _upload(client, lead, project).get_json()["data"]
        res = client.get(f"/api/v1/documents/{document['id']}/download", headers=auth_headers(lead))
        assert res.status_code == 200
        assert res.data == b"kick-off minutes"
        assert "attachment" in res.headers["Content-Disposition"]
        assert "minutes.txt" in res.headers["Content-Disposition"]
        res.close()

    def test_patch_metadata(self, client, lead, project):
        document = _upload(client, lead, project).get_json()["data"]
        res = client.patch(f"/api/v1/documents/{document['id']}",
                           json={"description": "Signed off", "category": "report"},
                           headers=auth_headers(lead))
        data = res.get_json()["data"]
        assert data["description"] == "Signed off"
        assert data["category"] == "report"
        assert data["original_name"] == "minutes.txt"

    def test_delete_removes_file(self, client, lead, project):
        document = _upload(client, lead, project).get_json()["data"]
        path = _stored_path(document["id"])
        headers = auth_headers(lead)

        res = client.delete(f"/api/v1/documents/{document['id']}", headers=headers)
        assert res.status_code == 200
        assert not os.path.exists(path)
        assert client.get(f"/api/v1/documents/{document['id']}", headers=headers).status_code == 404

    def test_unrelated_contributor_cannot_list(self, client, admin, contributor, project):
        _upload(client, admin, project)
        res = client.get(f"/api/v1/projects/{project.id}/documents", headers=auth_headers(contributor))
        assert res.status_code == 403
