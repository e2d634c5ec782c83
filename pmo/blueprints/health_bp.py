"""
Health check blueprint (no authentication).

Endpoints:
    GET /api/v1/health/ready : simple 200 for load balancers
    GET /api/v1/health/live  : database round-trip with latency
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from pmo.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple liveness check: always 200 if app is running."""
    return jsonify({"success": True, "status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Liveness check with a database ping."""
    checks = {}
    overall = True

    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except SQLAlchemyError as exc:
        db.session.rollback()
        checks["database"] = {"status": "error"}
        if current_app.config.get("EXPOSE_ERROR_DETAIL"):
            checks["database"]["detail"] = str(exc)
        overall = False
        logger.error("Health check: database failed: %s", exc)

    checks["app"] = {
        "name": "PMO Portfolio API",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }
    status = "ok" if overall else "degraded"
    return jsonify({"success": overall, "status": status, "checks": checks}), 200 if overall else 503
