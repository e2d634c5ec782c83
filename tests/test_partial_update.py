"""
Partial-update assembler tests: sparse field maps against the patch
structure, single-statement writes and timestamp refresh.
"""

from datetime import datetime

import pytest
from sqlalchemy import update

from conftest import make_project
from pmo.models import db
from pmo.models.project import Phase, Project
from pmo.services.helpers.partial_update import (
    PATCHABLE_FIELDS,
    UNSET,
    apply_update,
    build_update,
    filter_patch,
    settable_fields,
)

OLD_STAMP = datetime(2020, 1, 1, 12, 0, 0)


def _age(project):
    """Push updated_at into the past so a refresh is observable."""
    db.session.execute(update(Project).where(Project.id == project.id).values(updated_at=OLD_STAMP))
    db.session.commit()


def _reload(project):
    db.session.expire_all()
    return db.session.get(Project, project.id)


class TestBuildUpdate:
    def test_empty_patch_builds_nothing(self):
        assert build_update(Project, 1, {}) == (None, 0)

    def test_identifier_and_unknown_keys_are_ignored(self):
        stmt, applied = build_update(Project, 1, {"id": 99, "created_at": "x", "bogus": 1})
        assert stmt is None
        assert applied == 0

    def test_unset_values_are_skipped(self):
        stmt, applied = build_update(Project, 1, {"name": UNSET, "budget": 10.0})
        assert stmt is not None
        assert applied == 1

    def test_none_is_kept_as_a_value(self):
        assert filter_patch(Project, {"description": None}) == {"description": None}

    def test_applied_count_excludes_timestamp(self):
        _, applied = build_update(Project, 1, {"name": "A", "budget": 1.0, "priority": "high"})
        assert applied == 3

    def test_unknown_model_has_no_structure(self):
        with pytest.raises(ValueError):
            settable_fields(object)

    def test_protected_columns_never_settable(self):
        protected = {"id", "project_id", "created_at", "updated_at", "created_by", "uploaded_by"}
        for model, fields in PATCHABLE_FIELDS.items():
            assert not fields & protected, model.__name__


class TestApplyUpdate:
    def test_budget_patch_touches_only_budget(self, project):
        _age(project)
        rows = apply_update(Project, project.id, {"budget": 5000.0})
        db.session.commit()

        assert rows == 1
        fresh = _reload(project)
        assert fresh.budget == 5000.0
        assert fresh.name == "ERP rollout"
        assert fresh.description == "Finance ERP rollout"
        assert fresh.completion_pct == 40
        assert fresh.updated_at.replace(tzinfo=None) > OLD_STAMP

    def test_empty_patch_issues_no_write(self, project):
        _age(project)
        assert apply_update(Project, project.id, {"unknown": 1}) == 0
        db.session.commit()
        assert _reload(project).updated_at.replace(tzinfo=None) == OLD_STAMP

    def test_none_clears_column(self, project):
        apply_update(Project, project.id, {"description": None})
        db.session.commit()
        assert _reload(project).description is None

    def test_missing_row_reports_zero(self):
        assert apply_update(Project, 424242, {"budget": 1.0}) == 0

    def test_identity_map_is_refreshed(self, project):
        apply_update(Project, project.id, {"priority": "critical"})
        assert project.priority == "critical"
        db.session.rollback()

    def test_other_rows_untouched(self, lead):
        first = make_project(lead, code="A-1", budget=100.0)
        second = make_project(lead, code="A-2", budget=200.0)
        apply_update(Project, first.id, {"budget": 1.0})
        db.session.commit()
        db.session.expire_all()
        assert db.session.get(Project, second.id).budget == 200.0

    def test_phase_structure(self, project):
        phase = Phase(project_id=project.id, name="Design", order=1)
        db.session.add(phase)
        db.session.commit()
        rows = apply_update(Phase, phase.id, {"status": "in_progress", "project_id": 999})
        db.session.commit()
        db.session.expire_all()
        fresh = db.session.get(Phase, phase.id)
        assert rows == 1
        assert fresh.status == "in_progress"
        assert fresh.project_id == project.id
