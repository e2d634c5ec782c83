"""
Dashboard blueprint: portfolio steering views (functional admin / PMO).

    GET /api/v1/dashboard/advanced   KPIs, lead workload, 6-month evolution,
                                     top providers, late deliverables
    GET /api/v1/dashboard/alerts     open projects needing attention
"""

from flask import Blueprint

from pmo.middleware.jwt_auth import current_principal
from pmo.services import reporting_service
from pmo.utils.errors import api_ok

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/v1/dashboard")


@dashboard_bp.route("/advanced", methods=["GET"])
def advanced():
    return api_ok(reporting_service.advanced_dashboard(current_principal()))


@dashboard_bp.route("/alerts", methods=["GET"])
def alerts():
    data = reporting_service.dashboard_alerts(current_principal())
    return api_ok(data, count=data["count"])
