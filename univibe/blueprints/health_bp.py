"""
Health endpoints for load balancers and uptime monitors.

    GET /api/v1/health         name and status, no I/O
    GET /api/v1/health/ready   bare 200
    GET /api/v1/health/live    database round-trip plus scheduler state; 503 when degraded
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from univibe.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
def index():
    return jsonify({"status": "ok", "app": "UniVibe Campus Platform"})


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"})


def _check_database() -> dict:
    started = time.perf_counter()
    try:
        db.session.execute(db.text("SELECT 1"))
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Health check: database unreachable: %s", exc)
        return {"status": "error", "detail": str(exc)}
    return {"status": "ok", "latency_ms": round((time.perf_counter() - started) * 1000, 1)}


@health_bp.route("/live", methods=["GET"])
def live():
    checks = {
        "database": _check_database(),
        "scheduler": {
            "status": "ok" if "scheduler" in current_app.extensions else "not_initialized",
        },
    }
    healthy = checks["database"]["status"] == "ok"
    return jsonify({"status": "ok" if healthy else "degraded", "checks": checks}), (200 if healthy else 503)
