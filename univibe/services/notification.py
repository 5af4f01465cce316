"""
UniVibe Campus Platform
Notification Service.

Approval transitions, application decisions and maintenance jobs notify
users through here.  Writes are flushed, not committed: a notification
lives or dies with the state change that produced it.
"""

from datetime import datetime, timezone

from univibe.models import db
from univibe.models.notification import Notification


class NotificationService:

    @staticmethod
    def create(*, recipient_id, title, **fields):
        """Queue one notification.  ``fields``: message, category, severity, entity_type, entity_id."""
        notif = Notification(recipient_id=recipient_id, title=title, **fields)
        db.session.add(notif)
        db.session.flush()
        return notif

    @staticmethod
    def broadcast(*, recipient_ids, title, **fields):
        """Same notification to each distinct recipient, in the given order."""
        notifs = [
            Notification(recipient_id=rid, title=title, **fields)
            for rid in dict.fromkeys(recipient_ids)
        ]
        db.session.add_all(notifs)
        db.session.flush()
        return notifs

    @staticmethod
    def list_for_recipient(recipient_id, unread_only=False, limit=50, offset=0):
        """Newest first.  Returns ``(items, total)``."""
        q = Notification.query.filter_by(recipient_id=recipient_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return items, q.count()

    @staticmethod
    def mark_all_read(recipient_id):
        count = (
            Notification.query
            .filter_by(recipient_id=recipient_id, is_read=False)
            .update({"is_read": True, "read_at": datetime.now(timezone.utc)},
                    synchronize_session=False)
        )
        db.session.commit()
        return count
