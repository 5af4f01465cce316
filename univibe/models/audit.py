"""
UniVibe Campus Platform
Append-only audit trail.

Every lifecycle transition, maintenance correction and directory change
leaves one AuditLog row.  Rows are never updated; ``write_audit`` is the
only writer and it flushes inside the caller's transaction, so a rolled
back transition leaves no trace.
"""

from datetime import UTC, datetime

from univibe.models import db

SYSTEM_ACTOR = "system"


class AuditLog(db.Model):
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_action", "action"),
    )

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(30), nullable=False)
    # stored as text so one column fits every entity's key
    entity_id = db.Column(db.String(36), nullable=False)
    action = db.Column(db.String(60), nullable=False,
                       comment="<entity>.<verb>, e.g. event.approve, reservation.expire")

    actor = db.Column(db.String(150), nullable=False, default=SYSTEM_ACTOR)
    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"),
                              nullable=True, index=True)

    changes = db.Column(db.JSON, nullable=False, default=dict,
                        comment="{field: {old, new}} or a free-form summary")
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False,
                          default=lambda: datetime.now(UTC))

    def to_dict(self):
        return {
            "id": self.id,
            "entity": f"{self.entity_type}/{self.entity_id}",
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor": self.actor,
            "actor_user_id": self.actor_user_id,
            "changes": self.changes or {},
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.action} {self.entity_type}/{self.entity_id} by {self.actor}>"


def write_audit(*, entity_type: str, entity_id, action: str, actor=None,
                diff: dict | None = None) -> AuditLog:
    """Record ``action`` on an entity.  ``actor`` is a User, or None for jobs."""
    row = AuditLog(
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor=actor.email if actor is not None else SYSTEM_ACTOR,
        actor_user_id=getattr(actor, "id", None),
        # round-trip dates and enums to plain JSON values
        changes={k: _plain(v) for k, v in (diff or {}).items()},
    )
    db.session.add(row)
    db.session.flush()
    return row


def _plain(value):
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return str(getattr(value, "value", value))
