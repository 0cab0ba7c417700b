"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  — process is up (no dependencies touched)
    GET /api/v1/health/live   — database round trip + tracker tables present
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from tracker.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")

REQUIRED_TABLES = ("app_users", "project_tasks", "task_access_meta")


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """200 with per-check detail, or 503 when the store is unusable."""
    checks = {}
    healthy = True

    try:
        started = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        latency = round((time.perf_counter() - started) * 1000, 1)
        missing = [t for t in REQUIRED_TABLES if not inspect(db.engine).has_table(t)]
        checks["database"] = {"status": "ok" if not missing else "error", "latency_ms": latency}
        if missing:
            checks["database"]["missing_tables"] = missing
            healthy = False
    except SQLAlchemyError as exc:
        db.session.rollback()
        checks["database"] = {"status": "error", "detail": str(exc)}
        healthy = False

    if not healthy:
        logger.error("Liveness probe failed: %s", checks["database"])

    checks["app"] = {"testing": current_app.testing, "debug": current_app.debug}
    return jsonify({
        "status": "healthy" if healthy else "degraded",
        "checks": checks,
    }), 200 if healthy else 503
