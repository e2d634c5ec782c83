"""
Contracts, providers and project ↔ provider associations.
"""

import pytest
from sqlalchemy import select

from conftest import auth_headers
from pmo.models import db
from pmo.models.audit import AuditLog
from pmo.models.contract import ProjectProvider, Provider
from pmo.models.project import Deliverable

pytestmark = pytest.mark.integration


def _provider(client, user, name="Acme Consulting", **data):
    payload = {"name": name, "provider_type": "consulting", "contact_email": "sales@acme-corp.com"}
    payload.update(data)
    res = client.post("/api/v1/providers", json=payload, headers=auth_headers(user))
    assert res.status_code == 201, res.get_json()
    return res.get_json()["data"]


def _contract(client, user, project, number="C-2026-001", **data):
    payload = {"contract_number": number, "title": "Integration services", "amount": 25000}
    payload.update(data)
    res = client.post(f"/api/v1/projects/{project.id}/contracts", json=payload,
                      headers=auth_headers(user))
    assert res.status_code == 201, res.get_json()
    return res.get_json()["data"]


class TestProviders:
    def test_pmo_creates_provider(self, client, pmo_user):
        data = _provider(client, pmo_user)
        assert data["status"] == "active"
        assert data["created_by"] == pmo_user.id

    def test_lead_cannot_create_provider(self, client, lead):
        res = client.post("/api/v1/providers", json={"name": "X", "provider_type": "other"},
                          headers=auth_headers(lead))
        assert res.status_code == 403

    def test_every_role_lists_providers(self, client, pmo_user, contributor):
        _provider(client, pmo_user)
        res = client.get("/api/v1/providers", headers=auth_headers(contributor))
        body = res.get_json()
        assert res.status_code == 200
        assert body["count"] == 1
        assert body["data"][0]["active_project_count"] == 0

    def test_filters(self, client, pmo_user):
        _provider(client, pmo_user, "Acme Consulting")
        _provider(client, pmo_user, "Byte Software", provider_type="software_vendor")
        headers = auth_headers(pmo_user)
        res = client.get("/api/v1/providers?type=software_vendor", headers=headers)
        assert [p["name"] for p in res.get_json()["data"]] == ["Byte Software"]
        res = client.get("/api/v1/providers?search=acme", headers=headers)
        assert [p["name"] for p in res.get_json()["data"]] == ["Acme Consulting"]

    def test_invalid_contact_email(self, client, pmo_user):
        res = client.post(
            "/api/v1/providers",
            json={"name": "X", "provider_type": "other", "contact_email": "not-an-email"},
            headers=auth_headers(pmo_user),
        )
        assert res.status_code == 400

    def test_status_switch(self, client, pmo_user):
        provider = _provider(client, pmo_user)
        res = client.put(f"/api/v1/providers/{provider['id']}/status", json={"status": "inactive"},
                         headers=auth_headers(pmo_user))
        assert res.status_code == 200
        assert res.get_json()["data"]["status"] == "inactive"

    def test_patch_provider(self, client, pmo_user):
        provider = _provider(client, pmo_user)
        res = client.patch(f"/api/v1/providers/{provider['id']}", json={"expertise": "SAP, Salesforce"},
                           headers=auth_headers(pmo_user))
        assert res.get_json()["data"]["expertise"] == "SAP, Salesforce"

    def test_delete_blocked_by_contracts(self, client, pmo_user, project):
        provider = _provider(client, pmo_user)
        _contract(client, pmo_user, project, provider_id=provider["id"])
        res = client.delete(f"/api/v1/providers/{provider['id']}", headers=auth_headers(pmo_user))
        assert res.status_code == 400
        assert res.get_json()["dependents"] == {"contracts": 1}

    def test_delete_unused_provider(self, client, pmo_user):
        provider = _provider(client, pmo_user)
        res = client.delete(f"/api/v1/providers/{provider['id']}", headers=auth_headers(pmo_user))
        assert res.status_code == 200
        assert db.session.get(Provider, provider["id"]) is None

    def test_stats(self, client, pmo_user, project):
        provider = _provider(client, pmo_user)
        _provider(client, pmo_user, "Idle Ltd", status="inactive")
        _contract(client, pmo_user, project, provider_id=provider["id"])
        data = client.get("/api/v1/providers/stats", headers=auth_headers(pmo_user)).get_json()["data"]
        assert data["total"] == 2
        assert data["by_status"] == {"active": 1, "inactive": 1}
        assert data["top_by_contract_amount"][0]["total_amount"] == 25000.0


class TestAssociations:
    def test_lead_associates_provider(self, client, pmo_user, lead, project):
        provider = _provider(client, pmo_user)
        res = client.post(f"/api/v1/projects/{project.id}/providers",
                          json={"provider_id": provider["id"], "role_in_project": "Integrator"},
                          headers=auth_headers(lead))
        assert res.status_code == 201
        data = res.get_json()["data"]
        assert data["provider_name"] == "Acme Consulting"
        assert data["role_in_project"] == "Integrator"

        res = client.get(f"/api/v1/providers/{provider['id']}/projects", headers=auth_headers(lead))
        assert res.get_json()["count"] == 1

    def test_duplicate_association_conflicts(self, client, pmo_user, project):
        provider = _provider(client, pmo_user)
        headers = auth_headers(pmo_user)
        url = f"/api/v1/projects/{project.id}/providers"
        assert client.post(url, json={"provider_id": provider["id"]}, headers=headers).status_code == 201
        assert client.post(url, json={"provider_id": provider["id"]}, headers=headers).status_code == 409

    def test_provider_id_required(self, client, pmo_user, project):
        res = client.post(f"/api/v1/projects/{project.id}/providers", json={},
                          headers=auth_headers(pmo_user))
        assert res.status_code == 400

    def test_dissociate(self, client, pmo_user, project):
        provider = _provider(client, pmo_user)
        headers = auth_headers(pmo_user)
        client.post(f"/api/v1/projects/{project.id}/providers", json={"provider_id": provider["id"]},
                    headers=headers)
        url = f"/api/v1/projects/{project.id}/providers/{provider['id']}"
        assert client.delete(url, headers=headers).status_code == 200
        assert client.delete(url, headers=headers).status_code == 404

    def test_dissociate_then_reassociate_reuses_link(self, client, pmo_user, project):
        provider = _provider(client, pmo_user)
        headers = auth_headers(pmo_user)
        url = f"/api/v1/projects/{project.id}/providers"
        first = client.post(url, json={"provider_id": provider["id"], "role_in_project": "Integrator"},
                            headers=headers).get_json()["data"]

        assert client.delete(f"{url}/{provider['id']}", headers=headers).status_code == 200
        db.session.expire_all()
        link = db.session.get(ProjectProvider, first["id"])
        assert link.status == "inactive"
        assert link.role_in_project == "Integrator"
        listing = client.get(f"/api/v1/providers/{provider['id']}/projects", headers=headers)
        assert listing.get_json()["count"] == 0

        res = client.post(url, json={"provider_id": provider["id"], "role_in_project": "Auditor"},
                          headers=headers)
        assert res.status_code == 201
        data = res.get_json()["data"]
        assert data["id"] == first["id"]
        assert data["status"] == "active"
        assert data["role_in_project"] == "Auditor"
        assert data["updated_at"] >= first["updated_at"]

        row = db.session.scalar(select(AuditLog).where(AuditLog.action == "project.provider_reassociate"))
        assert row.details["provider_id"] == provider["id"]

    def test_foreign_lead_cannot_associate(self, client, pmo_user, other_lead, project):
        provider = _provider(client, pmo_user)
        res = client.post(f"/api/v1/projects/{project.id}/providers",
                          json={"provider_id": provider["id"]}, headers=auth_headers(other_lead))
        assert res.status_code == 403


class TestContracts:
    def test_lead_creates_contract(self, client, lead, project):
        data = _contract(client, lead, project, status="signed", start_date="2026-02-01",
                         end_date="2026-11-30")
        assert data["project_id"] == project.id
        assert data["status"] == "signed"
        assert data["created_by"] == lead.id

    def test_duplicate_number(self, client, lead, project):
        _contract(client, lead, project)
        res = client.post(f"/api/v1/projects/{project.id}/contracts",
                          json={"contract_number": "C-2026-001", "title": "Again"},
                          headers=auth_headers(lead))
        assert res.status_code == 409

    def test_contributor_cannot_create(self, client, contributor, project):
        db.session.add(Deliverable(project_id=project.id, name="Design doc", responsible_id=contributor.id))
        db.session.commit()
        res = client.post(f"/api/v1/projects/{project.id}/contracts",
                          json={"contract_number": "C-9", "title": "X"},
                          headers=auth_headers(contributor))
        assert res.status_code == 403

    def test_get_and_patch(self, client, lead, project):
        contract = _contract(client, lead, project)
        headers = auth_headers(lead)
        res = client.get(f"/api/v1/contracts/{contract['id']}", headers=headers)
        assert res.get_json()["data"]["contract_number"] == "C-2026-001"
        res = client.patch(f"/api/v1/contracts/{contract['id']}", json={"amount": 30000},
                           headers=headers)
        assert res.get_json()["data"]["amount"] == 30000

    def test_delete_blocked_by_linked_deliverable(self, client, pmo_user, project):
        contract = _contract(client, pmo_user, project)
        db.session.add(Deliverable(project_id=project.id, name="Report", contract_id=contract["id"]))
        db.session.commit()
        res = client.delete(f"/api/v1/contracts/{contract['id']}", headers=auth_headers(pmo_user))
        assert res.status_code == 400

    def test_lead_cannot_delete_contract(self, client, lead, project):
        contract = _contract(client, lead, project)
        res = client.delete(f"/api/v1/contracts/{contract['id']}", headers=auth_headers(lead))
        assert res.status_code == 403
        assert res.get_json()["required_roles"] == ["functional_admin", "pmo"]

    def test_provider_contracts_listing(self, client, pmo_user, project):
        provider = _provider(client, pmo_user)
        _contract(client, pmo_user, project, provider_id=provider["id"])
        res = client.get(f"/api/v1/providers/{provider['id']}/contracts", headers=auth_headers(pmo_user))
        assert res.get_json()["count"] == 1
