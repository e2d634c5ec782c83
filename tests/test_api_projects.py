"""
Projects API: role-scoped listing, create, partial update, guarded delete.
"""

import pytest
from sqlalchemy import func, select

from conftest import auth_headers, direction_id, make_project, make_user, status_id
from pmo.core.access import RoleName
from pmo.models import db
from pmo.models.audit import AuditLog
from pmo.models.project import Deliverable, Project

pytestmark = pytest.mark.integration


def _payload(lead, **overrides):
    data = {
        "name": "CRM replacement",
        "code": "crm-01",
        "lead_id": lead.id,
        "direction_id": direction_id(),
        "status_id": status_id("planning"),
        "budget": 120000,
        "start_date": "2026-01-01",
        "target_end_date": "2026-12-31",
        "priority": "high",
    }
    data.update(overrides)
    return data


def _project_count():
    return db.session.scalar(select(func.count(Project.id)))


class TestAuthentication:
    def test_missing_token(self, client):
        res = client.get("/api/v1/projects")
        assert res.status_code == 401
        assert res.get_json()["message"] == "Access token required"

    def test_garbage_token(self, client):
        res = client.get("/api/v1/projects", headers={"Authorization": "Bearer not-a-jwt"})
        assert res.status_code == 401
        assert res.get_json()["message"] == "Invalid token"

    def test_inactive_user_token_rejected(self, client):
        user = make_user(RoleName.PMO, "gone@acme-corp.com", status="inactive")
        res = client.get("/api/v1/projects", headers=auth_headers(user))
        assert res.status_code == 401


class TestListProjects:
    def test_admin_sees_all(self, client, admin, lead, other_lead):
        make_project(lead, code="A-1")
        make_project(other_lead, code="B-1")
        res = client.get("/api/v1/projects", headers=auth_headers(admin))
        body = res.get_json()
        assert res.status_code == 200
        assert body["count"] == 2

    def test_lead_sees_own_only(self, client, lead, other_lead):
        make_project(lead, code="A-1")
        make_project(other_lead, code="B-1")
        res = client.get("/api/v1/projects", headers=auth_headers(lead))
        body = res.get_json()
        assert body["count"] == 1
        assert body["data"][0]["code"] == "A-1"
        assert body["data"][0]["deliverable_count"] == 0

    def test_search_and_status_filters(self, client, pmo_user, lead):
        make_project(lead, code="ERP-1", name="ERP rollout")
        make_project(lead, code="HR-1", name="HR portal", status="on_hold")
        headers = auth_headers(pmo_user)

        res = client.get("/api/v1/projects?search=erp", headers=headers)
        assert [p["code"] for p in res.get_json()["data"]] == ["ERP-1"]

        res = client.get("/api/v1/projects?status=on_hold", headers=headers)
        assert [p["code"] for p in res.get_json()["data"]] == ["HR-1"]

    def test_contributor_sees_projects_they_work_on(self, client, lead, contributor, project):
        make_project(lead, code="OTHER-1")
        db.session.add(Deliverable(project_id=project.id, name="Design doc", responsible_id=contributor.id))
        db.session.commit()
        res = client.get("/api/v1/projects", headers=auth_headers(contributor))
        assert [p["id"] for p in res.get_json()["data"]] == [project.id]


class TestCreateProject:
    def test_pmo_creates_project(self, client, pmo_user, lead):
        res = client.post("/api/v1/projects", json=_payload(lead), headers=auth_headers(pmo_user))
        assert res.status_code == 201
        data = res.get_json()["data"]
        assert data["code"] == "CRM-01"
        assert data["lead_id"] == lead.id
        assert data["status"] == "planning"
        assert data["budget"] == 120000

    def test_duplicate_code_conflicts_without_insert(self, client, admin, lead, project):
        before = _project_count()
        res = client.post(
            "/api/v1/projects", json=_payload(lead, code=project.code.lower()),
            headers=auth_headers(admin),
        )
        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "ERR_CONFLICT_DUPLICATE"
        assert body["field"] == "code"
        assert _project_count() == before

    def test_missing_required_fields(self, client, admin):
        res = client.post("/api/v1/projects", json={"name": "X"}, headers=auth_headers(admin))
        assert res.status_code == 400
        details = res.get_json()["details"]
        assert {"code", "lead_id", "direction_id", "status_id"} <= set(details)

    def test_unknown_lead_is_rejected(self, client, admin, lead):
        res = client.post("/api/v1/projects", json=_payload(lead, lead_id=9999),
                          headers=auth_headers(admin))
        assert res.status_code == 400
        assert res.get_json()["details"] == {"lead_id": "unknown reference"}

    def test_end_before_start_rejected(self, client, admin, lead):
        res = client.post(
            "/api/v1/projects",
            json=_payload(lead, start_date="2026-06-01", target_end_date="2026-01-01"),
            headers=auth_headers(admin),
        )
        assert res.status_code == 400

    def test_lead_cannot_create(self, client, lead):
        res = client.post("/api/v1/projects", json=_payload(lead), headers=auth_headers(lead))
        assert res.status_code == 403
        assert res.get_json()["required_permission"] == "project.create"


class TestUpdateProject:
    def test_lead_patches_budget_on_own_project(self, client, lead, project):
        res = client.patch(f"/api/v1/projects/{project.id}", json={"budget": 5000},
                           headers=auth_headers(lead))
        body = res.get_json()
        assert res.status_code == 200
        assert body["message"] == "Project updated"
        assert body["count"] == 1
        assert body["data"]["budget"] == 5000
        assert body["data"]["name"] == "ERP rollout"
        assert body["data"]["description"] == "Finance ERP rollout"
        assert body["data"]["completion_pct"] == 40

    def test_update_is_audited(self, client, lead, project):
        client.patch(f"/api/v1/projects/{project.id}", json={"budget": 5000},
                     headers=auth_headers(lead))
        row = db.session.scalar(select(AuditLog).where(AuditLog.action == "project.update"))
        assert row is not None
        assert row.actor_user_id == lead.id
        assert row.details == {"budget": 5000.0}

    def test_lead_denied_on_foreign_project(self, client, other_lead, project):
        res = client.put(f"/api/v1/projects/{project.id}", json={"budget": 1},
                         headers=auth_headers(other_lead))
        assert res.status_code == 403

    def test_empty_patch_is_a_noop(self, client, lead, project):
        res = client.patch(f"/api/v1/projects/{project.id}", json={"id": 77, "unknown": True},
                           headers=auth_headers(lead))
        body = res.get_json()
        assert res.status_code == 200
        assert body["message"] == "Nothing to update"
        assert body["count"] == 0
        assert body["data"]["id"] == project.id

    def test_invalid_enum_rejected(self, client, admin, project):
        res = client.patch(f"/api/v1/projects/{project.id}", json={"priority": "urgent"},
                           headers=auth_headers(admin))
        assert res.status_code == 400

    @pytest.mark.parametrize("value", [12.7, "12.5"])
    def test_fractional_completion_rejected(self, client, lead, project, value):
        res = client.patch(f"/api/v1/projects/{project.id}", json={"completion_pct": value},
                           headers=auth_headers(lead))
        assert res.status_code == 400
        assert res.get_json()["details"] == {"completion_pct": "not an integer"}
        db.session.expire_all()
        assert db.session.get(Project, project.id).completion_pct == 40

    def test_whole_float_completion_accepted(self, client, lead, project):
        res = client.patch(f"/api/v1/projects/{project.id}", json={"completion_pct": 55.0},
                           headers=auth_headers(lead))
        assert res.status_code == 200
        assert res.get_json()["data"]["completion_pct"] == 55

    def test_code_conflict_on_update(self, client, admin, lead, project):
        other = make_project(lead, code="OTHER-1")
        res = client.patch(f"/api/v1/projects/{other.id}", json={"code": project.code},
                           headers=auth_headers(admin))
        assert res.status_code == 409

    def test_missing_project(self, client, admin):
        res = client.patch("/api/v1/projects/999", json={"budget": 1}, headers=auth_headers(admin))
        assert res.status_code == 404
        assert res.get_json()["resource"] == "Project"


class TestDeleteProject:
    def test_contributor_denied_with_required_role(self, client, contributor, project):
        res = client.delete(f"/api/v1/projects/{project.id}", headers=auth_headers(contributor))
        body = res.get_json()
        assert res.status_code == 403
        assert "requires role functional_admin or pmo" in body["message"]
        assert body["required_roles"] == ["functional_admin", "pmo"]
        assert body["user_role"] == "contributor"

    def test_lead_cannot_delete_own_project(self, client, lead, project):
        res = client.delete(f"/api/v1/projects/{project.id}", headers=auth_headers(lead))
        assert res.status_code == 403

    def test_blocked_by_deliverables(self, client, pmo_user, project):
        db.session.add(Deliverable(project_id=project.id, name="Blueprint"))
        db.session.commit()
        res = client.delete(f"/api/v1/projects/{project.id}", headers=auth_headers(pmo_user))
        body = res.get_json()
        assert res.status_code == 400
        assert body["code"] == "ERR_DEPENDENCY_BLOCKED"
        assert body["dependents"] == {"deliverables": 1}
        assert db.session.get(Project, project.id) is not None

    def test_delete_without_deliverables(self, client, pmo_user, project):
        headers = auth_headers(pmo_user)
        res = client.delete(f"/api/v1/projects/{project.id}", headers=headers)
        assert res.status_code == 200
        assert client.get(f"/api/v1/projects/{project.id}", headers=headers).status_code == 404


class TestProjectReads:
    def test_get_own_project(self, client, lead, project):
        res = client.get(f"/api/v1/projects/{project.id}", headers=auth_headers(lead))
        assert res.status_code == 200
        assert res.get_json()["data"]["lead_name"] == "Leo Lead"

    def test_foreign_project_hidden_from_lead(self, client, other_lead, project):
        res = client.get(f"/api/v1/projects/{project.id}", headers=auth_headers(other_lead))
        assert res.status_code == 403

    def test_details_include_children(self, client, lead, project):
        res = client.get(f"/api/v1/projects/{project.id}/details", headers=auth_headers(lead))
        data = res.get_json()["data"]
        for key in ("phases", "deliverables", "contracts", "documents", "budget_lines", "providers"):
            assert data[key] == []
        assert data["budget_summary"] == {"planned": 0, "committed": 0, "consumed": 0}

    def test_stats_scoped_to_lead(self, client, lead, other_lead, project):
        make_project(other_lead, code="B-1")
        res = client.get("/api/v1/projects/stats", headers=auth_headers(lead))
        assert res.get_json()["data"]["total"] == 1

    def test_recent_and_dashboard(self, client, lead, project):
        headers = auth_headers(lead)
        res = client.get("/api/v1/projects/recent?limit=3", headers=headers)
        assert res.get_json()["count"] == 1
        res = client.get("/api/v1/projects/dashboard", headers=headers)
        data = res.get_json()["data"]
        assert [p["id"] for p in data["my_projects"]] == [project.id]
        assert data["stats"]["total"] == 1

    def test_recompute_progress(self, client, lead, project):
        db.session.add(Deliverable(project_id=project.id, name="D", weight=100, status="validated"))
        db.session.commit()
        res = client.post(f"/api/v1/projects/{project.id}/recompute-progress",
                          headers=auth_headers(lead))
        assert res.get_json()["data"]["completion_pct"] == 100
