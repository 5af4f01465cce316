"""
Event Reminder Service.

Reminds registrants and savers of APPROVED events shortly before they start:

    1_day    start is more than an hour and at most a day away
    1_hour   start is at most an hour away

Each (event, window, user) is reminded once.  Every batch of reminders
leaves an ``event.reminder_<window>`` audit row listing its recipients;
later runs only notify users missing from those rows, so users who
register after a reminder went out still get it on the next run.

Start times are compared as naive UTC, the way they are stored.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from univibe.models import db
from univibe.models.audit import AuditLog, write_audit
from univibe.models.auth import User
from univibe.models.event import EVENT_APPROVED, Event, EventRegistration, SavedEvent
from univibe.services.notification import NotificationService

logger = logging.getLogger(__name__)

HORIZON = timedelta(hours=24)

# (window, label, upper bound on time until start), nearest first
REMINDER_WINDOWS = (
    ("1_hour", "1 hour", timedelta(hours=1)),
    ("1_day", "1 day", HORIZON),
)


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def reminder_window(start_at: datetime, now: datetime) -> tuple[str, str] | None:
    """``(window, label)`` for an event starting at ``start_at``, or None."""
    until = _naive_utc(start_at) - _naive_utc(now)
    if until <= timedelta(0):
        return None
    for window, label, bound in REMINDER_WINDOWS:
        if until <= bound:
            return window, label
    return None


def reminder_recipients(event_id: int) -> list[int]:
    """Active registrants then savers, without duplicates."""
    registered = (
        db.session.query(EventRegistration.user_id)
        .join(User, User.id == EventRegistration.user_id)
        .filter(EventRegistration.event_id == event_id, User.is_active.is_(True))
        .order_by(EventRegistration.id)
    )
    saved = (
        db.session.query(SavedEvent.user_id)
        .join(User, User.id == SavedEvent.user_id)
        .filter(SavedEvent.event_id == event_id, User.is_active.is_(True))
        .order_by(SavedEvent.id)
    )
    ids = [row.user_id for row in registered] + [row.user_id for row in saved]
    return list(dict.fromkeys(ids))


def _already_reminded(event_id: int, action: str) -> set[int]:
    rows = AuditLog.query.filter_by(entity_type="event", entity_id=str(event_id),
                                    action=action).all()
    return {uid for row in rows for uid in (row.changes or {}).get("recipient_ids", [])}


def send_event_reminders(now: datetime | None = None) -> dict:
    """
    Notify everyone due a reminder for APPROVED events starting within a day.

    Returns:
        {"checked", "notified", "affected": [{"event_id", "window", "recipient_ids"}]}
    """
    now = _naive_utc(now or datetime.now(timezone.utc))
    events = (
        Event.query
        .filter(
            Event.status == EVENT_APPROVED,
            Event.start_at.isnot(None),
            Event.start_at > now,
            Event.start_at <= now + HORIZON,
        )
        .order_by(Event.start_at, Event.id)
        .all()
    )

    affected = []
    for event in events:
        due = reminder_window(event.start_at, now)
        if due is None:
            continue
        window, label = due
        action = f"event.reminder_{window}"
        reminded = _already_reminded(event.id, action)
        recipients = [uid for uid in reminder_recipients(event.id) if uid not in reminded]
        if not recipients:
            continue

        start = _naive_utc(event.start_at)
        NotificationService.broadcast(
            recipient_ids=recipients,
            title=f"Reminder: {event.title} starts in {label}",
            message=f"Starts {start:%Y-%m-%d %H:%M} UTC"
                    + (f" at {event.location}" if event.location else "") + ".",
            category="event",
            severity="info",
            entity_type="event",
            entity_id=event.id,
        )
        write_audit(entity_type="event", entity_id=event.id, action=action,
                    diff={"window": window, "recipient_ids": recipients})
        affected.append({"event_id": event.id, "window": window, "recipient_ids": recipients})
        logger.info("Sent %s reminder for event %s to %d user(s)", window, event.id,
                    len(recipients), extra={"event_id": event.id})

    db.session.commit()
    return {
        "checked": len(events),
        "notified": sum(len(a["recipient_ids"]) for a in affected),
        "affected": affected,
    }
