"""
Dashboards, reports, Excel export, reference data and health checks.
"""

import io
from datetime import date, datetime, timedelta, timezone

import pytest
from openpyxl import load_workbook

from conftest import auth_headers, make_project
from pmo.models import db
from pmo.models.project import Deliverable

pytestmark = pytest.mark.integration

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class TestAdvancedDashboard:
    def test_pmo_gets_all_sections(self, client, pmo_user, project):
        res = client.get("/api/v1/dashboard/advanced", headers=auth_headers(pmo_user))
        assert res.status_code == 200
        data = res.get_json()["data"]
        assert set(data) >= {"kpis", "lead_workload", "portfolio_evolution", "provider_stats",
                             "late_deliverables", "generated_at"}
        assert data["kpis"]["total_projects"] == 1
        assert len(data["portfolio_evolution"]) == 6
        assert data["portfolio_evolution"][-1]["new_projects"] == 1
        assert data["lead_workload"][0]["lead_name"] == "Leo Lead"

    def test_late_deliverables(self, client, admin, project):
        db.session.add(Deliverable(project_id=project.id, name="Late one",
                                   due_date=date.today() - timedelta(days=10)))
        db.session.add(Deliverable(project_id=project.id, name="Done", status="validated",
                                   due_date=date.today() - timedelta(days=10)))
        db.session.commit()
        data = client.get("/api/v1/dashboard/advanced", headers=auth_headers(admin)).get_json()["data"]
        assert [d["name"] for d in data["late_deliverables"]] == ["Late one"]
        assert data["late_deliverables"][0]["days_late"] >= 10

    @pytest.mark.parametrize("fixture_name", ["lead", "contributor"])
    def test_denied_outside_portfolio_roles(self, client, request, fixture_name):
        user = request.getfixturevalue(fixture_name)
        res = client.get("/api/v1/dashboard/advanced", headers=auth_headers(user))
        assert res.status_code == 403
        assert res.get_json()["required_permission"] == "report.view"

    def test_alerts(self, client, pmo_user, lead):
        make_project(lead, code="LATE-1", target_end_date=date.today() - timedelta(days=2),
                     completion_pct=30)
        res = client.get("/api/v1/dashboard/alerts", headers=auth_headers(pmo_user))
        body = res.get_json()
        assert body["count"] == 1
        assert body["data"]["alerts"][0]["alert_type"] == "overdue"


class TestReports:
    def test_dashboard_data(self, client, admin, project):
        data = client.get("/api/v1/reports/dashboard/data", headers=auth_headers(admin)).get_json()["data"]
        assert data["stats"]["total"] == 1
        assert len(data["monthly_evolution"]) == 12
        assert {row["code"] for row in data["by_status"]} == {
            "planning", "in_progress", "on_hold", "completed", "cancelled",
        }
        assert data["top_projects"][0]["project_id"] == project.id

    def test_monthly_evolution_groups_current_window(self, client, admin, lead, project):
        make_project(lead, code="DONE-1", status="completed", budget=1000)
        make_project(lead, code="OLD-1", budget=5000, created_at=datetime(2001, 3, 15))
        data = client.get("/api/v1/reports/dashboard/data", headers=auth_headers(admin)).get_json()["data"]
        months = data["monthly_evolution"]
        current = months[-1]
        assert current["month"] == datetime.now(timezone.utc).strftime("%Y-%m")
        assert current["new_projects"] == 2
        assert current["completed_projects"] == 1
        assert current["new_budget"] == float(project.budget or 0) + 1000
        assert sum(m["new_projects"] for m in months) == 2

    def test_project_detail_for_lead(self, client, lead, project):
        db.session.add(Deliverable(project_id=project.id, name="Design doc", validator_id=lead.id))
        db.session.commit()
        res = client.get(f"/api/v1/reports/project/{project.id}/detail", headers=auth_headers(lead))
        data = res.get_json()["data"]
        assert res.status_code == 200
        assert data["project"]["lead_email"] == lead.email
        assert data["deliverables"][0]["validator_name"] == "Leo Lead"

    def test_project_detail_denied_to_other_lead(self, client, other_lead, project):
        res = client.get(f"/api/v1/reports/project/{project.id}/detail",
                         headers=auth_headers(other_lead))
        assert res.status_code == 403


class TestExcelExport:
    def test_workbook_download(self, client, pmo_user, lead, project):
        make_project(lead, code="HR-002", name="HR portal", health="red")
        res = client.get("/api/v1/reports/projects/excel", headers=auth_headers(pmo_user))
        assert res.status_code == 200
        assert res.mimetype == XLSX_MIMETYPE
        assert "attachment" in res.headers["Content-Disposition"]

        wb = load_workbook(io.BytesIO(res.data))
        ws = wb["Projects"]
        assert ws.cell(row=1, column=1).value == "ID"
        assert ws.cell(row=1, column=2).value == "Code"
        codes = {ws.cell(row=r, column=2).value for r in (2, 3)}
        assert codes == {"ERP-001", "HR-002"}

    def test_contributor_cannot_export(self, client, contributor):
        res = client.get("/api/v1/reports/projects/excel", headers=auth_headers(contributor))
        assert res.status_code == 403


class TestReferenceData:
    def test_all_reference_data(self, client, contributor):
        res = client.get("/api/v1/reference/all", headers=auth_headers(contributor))
        data = res.get_json()["data"]
        assert res.status_code == 200
        assert len(data["statuses"]) == 5
        assert {r["name"] for r in data["roles"]} == {"functional_admin", "pmo", "project_lead", "contributor"}
        assert [p["value"] for p in data["priorities"]] == ["low", "normal", "high", "critical"]
        assert {d["name"] for d in data["directions"]} == {"IT", "Finance", "Operations"}

    def test_statuses_are_ordered(self, client, lead):
        res = client.get("/api/v1/reference/statuses", headers=auth_headers(lead))
        body = res.get_json()
        assert body["count"] == 5
        assert [s["code"] for s in body["data"]] == [
            "planning", "in_progress", "on_hold", "completed", "cancelled",
        ]

    def test_users_lists_active_only(self, client, lead, contributor):
        from conftest import make_user
        from pmo.core.access import RoleName

        make_user(RoleName.PMO, "left@acme-corp.com", status="inactive")
        res = client.get("/api/v1/reference/users", headers=auth_headers(lead))
        assert {u["email"] for u in res.get_json()["data"]} == {lead.email, contributor.email}

    def test_provider_types(self, client, lead):
        res = client.get("/api/v1/reference/provider-types", headers=auth_headers(lead))
        body = res.get_json()
        assert res.status_code == 200
        assert body["count"] == 5
        assert [t["value"] for t in body["data"]] == [
            "consulting", "contractor", "integrator", "other", "software_vendor",
        ]
        assert body["data"][-1]["label"] == "Software vendor"

        data = client.get("/api/v1/reference/all", headers=auth_headers(lead)).get_json()["data"]
        assert data["provider_types"] == body["data"]

    def test_reference_requires_token(self, client):
        assert client.get("/api/v1/reference/roles").status_code == 401


class TestHealth:
    def test_ready_without_token(self, client):
        res = client.get("/api/v1/health/ready")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"

    def test_live_pings_database(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        assert res.get_json()["checks"]["database"]["status"] == "ok"
