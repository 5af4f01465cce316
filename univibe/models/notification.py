"""
UniVibe Campus Platform
In-app notifications.

Written by the approval chain (next approver, final outcome), membership
decisions and the maintenance jobs.  Delivery beyond the inbox is out of
scope; the UI polls ``/notifications/mine``.
"""

from datetime import datetime, timezone

from univibe.models import db


class Notification(db.Model):
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("idx_notification_inbox", "recipient_id", "is_read"),
    )

    id = db.Column(db.Integer, primary_key=True)
    recipient_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"),
                             nullable=False)
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, default="")
    category = db.Column(db.String(30), default="system",
                         comment="approval | event | application | reservation | system")
    severity = db.Column(db.String(20), default="info")

    # what the notification is about, for deep links
    entity_type = db.Column(db.String(30), default="")
    entity_id = db.Column(db.Integer, nullable=True)

    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        data = {c: getattr(self, c) for c in (
            "id", "recipient_id", "title", "message", "category", "severity",
            "entity_type", "entity_id", "is_read",
        )}
        data["read_at"] = self.read_at.isoformat() if self.read_at else None
        data["created_at"] = self.created_at.isoformat() if self.created_at else None
        return data

    def __repr__(self):
        state = "read" if self.is_read else "unread"
        return f"<Notification {self.id} to user {self.recipient_id} ({state})>"
