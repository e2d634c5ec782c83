"""
Reports blueprint.

    GET /api/v1/reports/projects/excel        portfolio workbook (admin/pmo)
    GET /api/v1/reports/dashboard/data        portfolio report data (admin/pmo)
    GET /api/v1/reports/project/<id>/detail   one project, for anyone who may view it
"""

from datetime import datetime, timezone

from flask import Blueprint, send_file

from pmo.core.access import PORTFOLIO_ROLES, require_role
from pmo.middleware.jwt_auth import current_principal
from pmo.services import export_service, reporting_service
from pmo.utils.errors import api_ok

reports_bp = Blueprint("reports", __name__, url_prefix="/api/v1/reports")

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@reports_bp.route("/projects/excel", methods=["GET"])
def projects_excel():
    require_role(current_principal(), *PORTFOLIO_ROLES, permission="report.export")
    buf = export_service.export_projects_xlsx()
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d")
    return send_file(
        buf,
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=f"projects_{stamp}.xlsx",
    )


@reports_bp.route("/dashboard/data", methods=["GET"])
def dashboard_data():
    return api_ok(reporting_service.dashboard_data(current_principal()))


@reports_bp.route("/project/<int:project_id>/detail", methods=["GET"])
def project_detail(project_id):
    return api_ok(reporting_service.project_detail_report(project_id, current_principal()))
