"""
Derived metrics: progress roll-ups, risk classification and portfolio stats.
"""

from datetime import date, datetime, timedelta
from types import SimpleNamespace

import pytest

from conftest import make_project, principal_of
from pmo.models import db
from pmo.models.project import Deliverable, Phase, Project
from pmo.services.metrics_service import (
    RISK_AT_RISK,
    RISK_HEALTH_CRITICAL,
    RISK_OVERDUE,
    RISK_STALE,
    classify_project_risk,
    compute_progress,
    project_alerts,
    project_portfolio_stats,
    recompute_phase_progress,
    recompute_project_progress,
)

TODAY = date(2026, 6, 15)


def _risk_project(**overrides):
    values = {
        "status_code": "in_progress",
        "target_end_date": TODAY + timedelta(days=90),
        "health": "green",
        "completion_pct": 50,
        "created_at": datetime(2026, 6, 1),
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _deliverable(project, phase=None, weight=0, status="planned", **fields):
    d = Deliverable(
        project_id=project.id,
        phase_id=phase.id if phase else None,
        name=fields.pop("name", f"D-{weight}-{status}"),
        weight=weight,
        status=status,
        **fields,
    )
    db.session.add(d)
    db.session.commit()
    return d


class TestComputeProgress:
    def test_no_deliverables_is_zero(self):
        assert compute_progress([]) == 0

    def test_weighted_half(self):
        assert compute_progress([(50, "validated"), (50, "planned")]) == 50

    def test_only_validated_counts(self):
        assert compute_progress([(40, "delivered"), (60, "validated")]) == 60

    def test_count_fallback_when_weights_zero(self):
        assert compute_progress([(0, "validated"), (0, "planned"), (0, "in_progress")]) == 33

    def test_rounding_is_half_up(self):
        # 1/8 = 12.5 %
        assert compute_progress([(1, "validated"), (7, "planned")]) == 13

    def test_all_validated_is_full(self):
        assert compute_progress([(30, "validated"), (70, "validated")]) == 100

    def test_negative_weights_count_as_zero(self):
        assert compute_progress([(-10, "validated"), (10, "planned")]) == 0

    def test_result_stays_in_range(self):
        for items in ([(100, "validated")] * 5, [(0, "rejected")] * 3):
            assert 0 <= compute_progress(items) <= 100


class TestRecompute:
    def test_phase_progress_persisted(self, project):
        phase = Phase(project_id=project.id, name="Build", order=1)
        db.session.add(phase)
        db.session.commit()
        _deliverable(project, phase, 50, "validated")
        _deliverable(project, phase, 50, "in_progress")

        assert recompute_phase_progress(phase.id) == 50
        db.session.commit()
        db.session.expire_all()
        assert db.session.get(Phase, phase.id).completion_pct == 50

    def test_project_progress_spans_phases(self, project):
        first = Phase(project_id=project.id, name="P1", order=1)
        second = Phase(project_id=project.id, name="P2", order=2)
        db.session.add_all([first, second])
        db.session.commit()
        _deliverable(project, first, 25, "validated")
        _deliverable(project, second, 75, "delivered")

        assert recompute_project_progress(project.id) == 25
        db.session.commit()
        db.session.expire_all()
        assert db.session.get(Project, project.id).completion_pct == 25

    def test_project_without_deliverables_resets_to_zero(self, project):
        assert recompute_project_progress(project.id) == 0


class TestRiskClassification:
    def test_healthy_project_has_no_risk(self):
        assert classify_project_risk(_risk_project(), TODAY) is None

    def test_overdue_beats_red_health(self):
        p = _risk_project(target_end_date=TODAY - timedelta(days=1), health="red")
        assert classify_project_risk(p, TODAY) == RISK_OVERDUE

    def test_red_health_beats_at_risk(self):
        p = _risk_project(target_end_date=TODAY + timedelta(days=5), health="red", completion_pct=10)
        assert classify_project_risk(p, TODAY) == RISK_HEALTH_CRITICAL

    def test_at_risk_window(self):
        p = _risk_project(target_end_date=TODAY + timedelta(days=15), completion_pct=79)
        assert classify_project_risk(p, TODAY) == RISK_AT_RISK

    def test_nearly_done_is_not_at_risk(self):
        p = _risk_project(target_end_date=TODAY + timedelta(days=10), completion_pct=80)
        assert classify_project_risk(p, TODAY) is None

    def test_stale_project(self):
        p = _risk_project(completion_pct=0, created_at=datetime(2026, 4, 1))
        assert classify_project_risk(p, TODAY) == RISK_STALE

    @pytest.mark.parametrize("code", ["completed", "cancelled"])
    def test_closed_projects_are_ignored(self, code):
        p = _risk_project(status_code=code, target_end_date=TODAY - timedelta(days=30), health="red")
        assert classify_project_risk(p, TODAY) is None


class TestAlerts:
    def test_alerts_sorted_by_precedence_then_days(self, admin, lead):
        make_project(lead, code="STALE", completion_pct=0, created_at=datetime(2026, 1, 1))
        make_project(lead, code="LATE", target_end_date=TODAY - timedelta(days=3), completion_pct=20)
        make_project(lead, code="SOON", target_end_date=TODAY + timedelta(days=4), completion_pct=20)
        make_project(lead, code="SOONER", target_end_date=TODAY + timedelta(days=2), completion_pct=20)
        make_project(lead, code="RED", health="red", completion_pct=20)
        make_project(lead, code="FINE", completion_pct=50, target_end_date=TODAY + timedelta(days=200))
        make_project(lead, code="DONE", status="completed", target_end_date=TODAY - timedelta(days=9))

        alerts = project_alerts(principal_of(admin), TODAY)

        assert [a["code"] for a in alerts] == ["LATE", "RED", "SOONER", "SOON", "STALE"]
        assert alerts[0]["alert_type"] == RISK_OVERDUE
        assert alerts[0]["days_remaining"] == -3

    def test_alerts_scoped_to_lead(self, lead, other_lead):
        make_project(lead, code="MINE", health="red")
        make_project(other_lead, code="THEIRS", health="red")
        alerts = project_alerts(principal_of(lead), TODAY)
        assert [a["code"] for a in alerts] == ["MINE"]


class TestPortfolioStats:
    def test_admin_sees_everything(self, admin, lead, other_lead):
        make_project(lead, code="A", budget=1000.0, completion_pct=20)
        make_project(other_lead, code="B", budget=3000.0, completion_pct=60, status="completed")

        stats = project_portfolio_stats(principal_of(admin))

        assert stats["total"] == 2
        assert stats["in_progress"] == 1
        assert stats["completed"] == 1
        assert stats["average_completion"] == 40.0
        assert stats["total_budget"] == 4000.0

    def test_lead_sees_own_projects(self, lead, other_lead):
        make_project(lead, code="A", budget=1000.0)
        make_project(other_lead, code="B", budget=3000.0)
        stats = project_portfolio_stats(principal_of(lead))
        assert stats["total"] == 1
        assert stats["total_budget"] == 1000.0

    def test_contributor_sees_projects_they_work_on(self, lead, contributor):
        worked = make_project(lead, code="A")
        make_project(lead, code="B")
        _deliverable(worked, weight=10, responsible_id=contributor.id)

        stats = project_portfolio_stats(principal_of(contributor))
        assert stats["total"] == 1

    def test_empty_scope(self, lead):
        stats = project_portfolio_stats(principal_of(lead))
        assert stats["total"] == 0
        assert stats["average_completion"] == 0.0
