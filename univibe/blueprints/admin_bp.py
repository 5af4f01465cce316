"""
Admin & Notification Blueprint.

Provides:
    - Scheduled job management (list, trigger, toggle)       ADMIN
    - Approver coverage report                               ADMIN
    - Audit trail per entity                                 ADMIN
    - The acting user's own notifications
"""

from __future__ import annotations

import logging

from flask import Blueprint, g, jsonify, request

from univibe.middleware.identity import require_role, require_user
from univibe.models.audit import AuditLog
from univibe.models.auth import ROLE_ADMIN
from univibe.services.approval_chain import approver_coverage
from univibe.services.notification import NotificationService
from univibe.services.scheduler_service import SchedulerService, get_registered_jobs
from univibe.utils.errors import E, api_error

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin_bp", __name__, url_prefix="/api/v1")


# ═══════════════════════════════════════════════════════════════════════════
#  SCHEDULED JOBS
# ═══════════════════════════════════════════════════════════════════════════

@admin_bp.route("/admin/jobs", methods=["GET"])
@require_role(ROLE_ADMIN)
def list_jobs():
    return jsonify(SchedulerService.list_jobs())


@admin_bp.route("/admin/jobs/<job_name>/run", methods=["POST"])
@require_role(ROLE_ADMIN)
def run_job(job_name):
    if job_name not in get_registered_jobs():
        return api_error(E.NOT_FOUND, f"Unknown job: {job_name}")
    force = request.args.get("force") in ("1", "true")
    logger.info("Job %s triggered by user %d", job_name, g.current_user.id,
                extra={"job_name": job_name, "user_id": g.current_user.id})
    result = SchedulerService.run_job(job_name, force=force)
    status = 200 if result["status"] in ("success", "skipped") else 500
    return jsonify(result), status


@admin_bp.route("/admin/jobs/<job_name>/toggle", methods=["POST"])
@require_role(ROLE_ADMIN)
def toggle_job(job_name):
    data = request.get_json(silent=True) or {}
    if not isinstance(data.get("enabled"), bool):
        return api_error(E.VALIDATION_REQUIRED, "enabled (true/false) is required")
    record = SchedulerService.toggle_job(job_name, data["enabled"])
    if record is None:
        return api_error(E.NOT_FOUND, f"Job {job_name} has no record")
    return jsonify(record)


# ═══════════════════════════════════════════════════════════════════════════
#  REPORTS
# ═══════════════════════════════════════════════════════════════════════════

@admin_bp.route("/admin/approver-coverage", methods=["GET"])
@require_role(ROLE_ADMIN)
def coverage():
    return jsonify(approver_coverage())


@admin_bp.route("/admin/audit/<entity_type>/<entity_id>", methods=["GET"])
@require_role(ROLE_ADMIN)
def audit_trail(entity_type, entity_id):
    rows = (
        AuditLog.query
        .filter_by(entity_type=entity_type, entity_id=str(entity_id))
        .order_by(AuditLog.timestamp, AuditLog.id)
        .all()
    )
    return jsonify([r.to_dict() for r in rows])


# ═══════════════════════════════════════════════════════════════════════════
#  NOTIFICATIONS
# ═══════════════════════════════════════════════════════════════════════════

@admin_bp.route("/notifications/mine", methods=["GET"])
@require_user
def my_notifications():
    unread_only = request.args.get("unread") in ("1", "true")
    limit = min(request.args.get("limit", 50, type=int), 200)
    offset = max(request.args.get("offset", 0, type=int), 0)
    items, total = NotificationService.list_for_recipient(
        g.current_user.id, unread_only=unread_only, limit=limit, offset=offset,
    )
    return jsonify({"items": [n.to_dict() for n in items], "total": total})


@admin_bp.route("/notifications/mark-all-read", methods=["POST"])
@require_user
def mark_all_read():
    count = NotificationService.mark_all_read(g.current_user.id)
    return jsonify({"marked": count})
