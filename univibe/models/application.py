"""
UniVibe Campus Platform
Community-join application model.

Models:
    - ApplicationForm: request by a user to join a community

Lifecycle:
    PENDING → APPROVED | REJECTED
    REJECTED → PENDING  (re-application reuses the same row)
"""

from datetime import datetime, timezone

from univibe.models import db

# ── Constants ────────────────────────────────────────────────────────────────

APPLICATION_PENDING = "PENDING"
APPLICATION_APPROVED = "APPROVED"
APPLICATION_REJECTED = "REJECTED"

APPLICATION_STATUSES = {APPLICATION_PENDING, APPLICATION_APPROVED, APPLICATION_REJECTED}


class ApplicationForm(db.Model):
    """One application row per (user, community)."""

    __tablename__ = "application_forms"
    __table_args__ = (
        db.UniqueConstraint("user_id", "community_id", name="uq_application_user_community"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    community_id = db.Column(
        db.Integer, db.ForeignKey("communities.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    status = db.Column(db.String(20), nullable=False, default=APPLICATION_PENDING)
    motivation = db.Column(db.Text, nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)
    decided_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    community = db.relationship("Community")

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "community_id": self.community_id,
            "status": self.status,
            "motivation": self.motivation,
            "rejection_reason": self.rejection_reason,
            "decided_by": self.decided_by,
            "decided_at": self.decided_at.isoformat() if self.decided_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ApplicationForm {self.id} u={self.user_id} c={self.community_id} {self.status}>"
