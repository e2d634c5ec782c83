"""
Shared pytest fixtures for the PMO Portfolio API test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate + reference seed (autouse)
    - client: Flask test client (function-scoped)
    - admin / pmo_user / lead / other_lead / contributor: one User per role
    - project: a project led by ``lead``

Module-level helpers (make_user, make_project, auth_headers, principal_of)
are imported directly by the test modules.
"""

import os
import tempfile

# UPLOAD_FOLDER is read when pmo.config is imported
os.environ.setdefault("UPLOAD_FOLDER", tempfile.mkdtemp(prefix="pmo-test-uploads-"))

import pytest  # noqa: E402
from sqlalchemy import select  # noqa: E402

from pmo import create_app  # noqa: E402
from pmo.core.access import RoleName  # noqa: E402
from pmo.models import db as _db  # noqa: E402
from pmo.models.auth import Direction, User  # noqa: E402
from pmo.models.project import Project, ProjectStatus  # noqa: E402
from pmo.services.auth_service import principal_for  # noqa: E402
from pmo.services.jwt_service import generate_access_token  # noqa: E402
from pmo.services.reference_service import role_by_name, seed_reference_data  # noqa: E402
from pmo.utils.crypto import hash_password  # noqa: E402

DEFAULT_PASSWORD = "Passw0rd!"


# ── Helpers ──────────────────────────────────────────────────────────────


def make_user(role, email, full_name=None, password=DEFAULT_PASSWORD, status="active"):
    """Insert a user holding ``role`` and return it."""
    user = User(
        full_name=full_name or email.split("@")[0].replace(".", " ").title(),
        email=email,
        password_hash=hash_password(password),
        role_id=role_by_name(role).id,
        status=status,
    )
    _db.session.add(user)
    _db.session.commit()
    return user


def status_id(code):
    return _db.session.scalar(select(ProjectStatus.id).where(ProjectStatus.code == code))


def direction_id(name="IT"):
    return _db.session.scalar(select(Direction.id).where(Direction.name == name))


def make_project(lead, code="PRJ-001", name=None, status="in_progress", **fields):
    """Insert a project led by ``lead``; extra columns pass straight through."""
    project = Project(
        name=name or f"Project {code}",
        code=code,
        lead_id=lead.id,
        direction_id=direction_id(),
        status_id=status_id(status),
        **fields,
    )
    _db.session.add(project)
    _db.session.commit()
    return project


def auth_headers(user):
    token = generate_access_token(user.id, user.email, user.role.name)["access_token"]
    return {"Authorization": f"Bearer {token}"}


def principal_of(user):
    return principal_for(user)


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, seed reference rows, rollback and recreate after."""
    with app.app_context():
        seed_reference_data()
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def admin():
    return make_user(RoleName.FUNCTIONAL_ADMIN, "admin@acme-corp.com", "Ada Admin")


@pytest.fixture()
def pmo_user():
    return make_user(RoleName.PMO, "pmo@acme-corp.com", "Paula Portfolio")


@pytest.fixture()
def lead():
    return make_user(RoleName.PROJECT_LEAD, "lead@acme-corp.com", "Leo Lead")


@pytest.fixture()
def other_lead():
    return make_user(RoleName.PROJECT_LEAD, "lead2@acme-corp.com", "Lena Lead")


@pytest.fixture()
def contributor():
    return make_user(RoleName.CONTRIBUTOR, "dev@acme-corp.com", "Dan Dev")


@pytest.fixture()
def project(lead):
    """A project led by ``lead``, 40% complete."""
    return make_project(lead, code="ERP-001", name="ERP rollout", completion_pct=40,
                        description="Finance ERP rollout")
