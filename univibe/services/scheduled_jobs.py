"""
UniVibe Campus Platform
Scheduled Jobs.

Jobs:
    - reconcile_event_colleges:  re-sync event.college_id from communities
    - expire_stale_reservations: complete ACTIVE reservations dated before today
    - backfill_event_capacities: apply the capacity default to NULL rows
    - send_event_reminders:      remind registrants and savers of events starting soon

Each job is idempotent and returns its audit summary, which the scheduler
stores as the run result.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from univibe.models.auth import ROLE_ADMIN, User
from univibe.services import event_lifecycle, reminder_service, reservation_service
from univibe.services.notification import NotificationService
from univibe.services.scheduler_service import register_job

logger = logging.getLogger(__name__)


def _notify_admins(title: str, message: str) -> int:
    admin_ids = [
        u.id for u in User.query.filter(User.role == ROLE_ADMIN, User.is_active.is_(True)).all()
    ]
    if admin_ids:
        NotificationService.broadcast(
            recipient_ids=admin_ids,
            title=title,
            message=message,
            category="system",
            severity="warning",
            entity_type="job",
        )
    return len(admin_ids)


# ═══════════════════════════════════════════════════════════════════════════
#  Job 1: Event ↔ community college reconciliation
# ═══════════════════════════════════════════════════════════════════════════

@register_job("reconcile_event_colleges")
def reconcile_event_colleges(app) -> dict[str, Any]:
    """Re-sync event college ids with their community's college."""
    from univibe.models import db

    result = event_lifecycle.reconcile_event_colleges(apply=True)
    if result["skipped_unassigned"]:
        _notify_admins(
            "Events blocked by unassigned communities",
            f"{result['skipped_unassigned']} event(s) belong to communities without a college.",
        )
        db.session.commit()
    logger.info("Reconcile job: %s", result, extra={"job_name": "reconcile_event_colleges"})
    return result


# ═══════════════════════════════════════════════════════════════════════════
#  Job 2: Reservation expiry
# ═══════════════════════════════════════════════════════════════════════════

@register_job("expire_stale_reservations")
def expire_stale_reservations(app) -> dict[str, Any]:
    """Mark past ACTIVE study-space reservations COMPLETED."""
    outcome = reservation_service.expire_stale(date.today())
    result = {
        "count": outcome["count"],
        "affected_ids": [r["id"] for r in outcome["affected"]],
    }
    logger.info("Reservation expiry job: %s", result,
                extra={"job_name": "expire_stale_reservations"})
    return result


# ═══════════════════════════════════════════════════════════════════════════
#  Job 3: Capacity backfill
# ═══════════════════════════════════════════════════════════════════════════

@register_job("backfill_event_capacities")
def backfill_event_capacities(app) -> dict[str, Any]:
    """Apply the default capacity to events created without one."""
    result = event_lifecycle.backfill_event_capacities(apply=True)
    logger.info("Capacity backfill job: %s", result,
                extra={"job_name": "backfill_event_capacities"})
    return result


# ═══════════════════════════════════════════════════════════════════════════
#  Job 4: Upcoming event reminders
# ═══════════════════════════════════════════════════════════════════════════

@register_job("send_event_reminders")
def send_event_reminders(app) -> dict[str, Any]:
    """Remind registrants and savers of approved events starting within a day."""
    result = reminder_service.send_event_reminders()
    logger.info("Reminder job: %d notification(s) for %d event(s)", result["notified"],
                len(result["affected"]), extra={"job_name": "send_event_reminders"})
    return result
