"""
UniVibe Campus Platform
Event domain models.

Models:
    - Event:              campus event routed through the approval chain
    - EventRegistration:  attendee registration counted against Event.capacity
    - SavedEvent:         bookmark; savers receive start reminders like registrants

Lifecycle states:
    Event:  DRAFT → PENDING_CLUB_LEADER → PENDING_FACULTY_LEADER → PENDING_DEAN
            → PENDING_DEANSHIP → APPROVED
            PENDING_<STAGE> → REJECTED_<STAGE>   (terminal)
            DRAFT | PENDING_* → CANCELLED        (terminal)

Invariant:
    community_id set  ⇒  college_id == community.college_id
    (restored by event_lifecycle.reconcile_event_colleges)

Concurrency:
    version_id is the SQLAlchemy version counter; every UPDATE is a
    compare-and-set on (id, version_id).
"""

from datetime import datetime, timezone

from univibe.models import db

# ── Constants ────────────────────────────────────────────────────────────────

EVENT_DRAFT = "DRAFT"
EVENT_PENDING_CLUB_LEADER = "PENDING_CLUB_LEADER"
EVENT_PENDING_FACULTY_LEADER = "PENDING_FACULTY_LEADER"
EVENT_PENDING_DEAN = "PENDING_DEAN"
EVENT_PENDING_DEANSHIP = "PENDING_DEANSHIP"
EVENT_APPROVED = "APPROVED"
EVENT_REJECTED_CLUB_LEADER = "REJECTED_CLUB_LEADER"
EVENT_REJECTED_FACULTY_LEADER = "REJECTED_FACULTY_LEADER"
EVENT_REJECTED_DEAN = "REJECTED_DEAN"
EVENT_REJECTED_DEANSHIP = "REJECTED_DEANSHIP"
EVENT_CANCELLED = "CANCELLED"

PENDING_STATUSES = frozenset({
    EVENT_PENDING_CLUB_LEADER,
    EVENT_PENDING_FACULTY_LEADER,
    EVENT_PENDING_DEAN,
    EVENT_PENDING_DEANSHIP,
})

REJECTED_STATUSES = frozenset({
    EVENT_REJECTED_CLUB_LEADER,
    EVENT_REJECTED_FACULTY_LEADER,
    EVENT_REJECTED_DEAN,
    EVENT_REJECTED_DEANSHIP,
})

TERMINAL_STATUSES = REJECTED_STATUSES | {EVENT_APPROVED, EVENT_CANCELLED}

EVENT_STATUSES = PENDING_STATUSES | TERMINAL_STATUSES | {EVENT_DRAFT}

EVENT_TRANSITIONS = {
    EVENT_DRAFT: [EVENT_PENDING_CLUB_LEADER, EVENT_PENDING_FACULTY_LEADER, EVENT_CANCELLED],
    EVENT_PENDING_CLUB_LEADER: [
        EVENT_PENDING_FACULTY_LEADER, EVENT_REJECTED_CLUB_LEADER, EVENT_CANCELLED,
    ],
    EVENT_PENDING_FACULTY_LEADER: [
        EVENT_PENDING_DEAN, EVENT_REJECTED_FACULTY_LEADER, EVENT_CANCELLED,
    ],
    EVENT_PENDING_DEAN: [EVENT_PENDING_DEANSHIP, EVENT_REJECTED_DEAN, EVENT_CANCELLED],
    EVENT_PENDING_DEANSHIP: [EVENT_APPROVED, EVENT_REJECTED_DEANSHIP, EVENT_CANCELLED],
    EVENT_APPROVED: [],
    EVENT_REJECTED_CLUB_LEADER: [],
    EVENT_REJECTED_FACULTY_LEADER: [],
    EVENT_REJECTED_DEAN: [],
    EVENT_REJECTED_DEANSHIP: [],
    EVENT_CANCELLED: [],
}


def validate_event_transition(old_status, new_status):
    """Check if an event status transition is allowed."""
    return new_status in EVENT_TRANSITIONS.get(old_status, [])


class Event(db.Model):
    """Campus event.  Owned by its creator, mutated by the approval chain."""

    __tablename__ = "events"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    location = db.Column(db.String(200), nullable=True)
    start_at = db.Column(db.DateTime(timezone=True), nullable=True)
    end_at = db.Column(db.DateTime(timezone=True), nullable=True)

    creator_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=False, index=True,
    )
    community_id = db.Column(
        db.Integer,
        db.ForeignKey("communities.id"),
        nullable=True,
        index=True,
        comment="NULL for events independent of a community",
    )
    college_id = db.Column(
        db.Integer,
        db.ForeignKey("colleges.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Derived copy of community.college_id (set directly for independent events)",
    )
    capacity = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(40), nullable=False, default=EVENT_DRAFT, index=True)

    # Stage-specific rejection reasons
    club_leader_rejection_reason = db.Column(db.Text, nullable=True)
    faculty_leader_rejection_reason = db.Column(db.Text, nullable=True)
    dean_rejection_reason = db.Column(db.Text, nullable=True)
    deanship_rejection_reason = db.Column(db.Text, nullable=True)

    cancelled_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    creator = db.relationship("User", foreign_keys=[creator_id])
    community = db.relationship("Community")
    college = db.relationship("College")
    registrations = db.relationship(
        "EventRegistration", back_populates="event",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    saved_by = db.relationship(
        "SavedEvent", back_populates="event",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    __mapper_args__ = {"version_id_col": version_id}

    __table_args__ = (
        db.Index("ix_events_location_window", "location", "start_at", "end_at"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "location": self.location,
            "start_at": self.start_at.isoformat() if self.start_at else None,
            "end_at": self.end_at.isoformat() if self.end_at else None,
            "creator_id": self.creator_id,
            "community_id": self.community_id,
            "college_id": self.college_id,
            "capacity": self.capacity,
            "status": self.status,
            "club_leader_rejection_reason": self.club_leader_rejection_reason,
            "faculty_leader_rejection_reason": self.faculty_leader_rejection_reason,
            "dean_rejection_reason": self.dean_rejection_reason,
            "deanship_rejection_reason": self.deanship_rejection_reason,
            "cancelled_by": self.cancelled_by,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "version": self.version_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Event {self.id} {self.title!r} [{self.status}]>"


class EventRegistration(db.Model):
    """One registration per (event, user)."""

    __tablename__ = "event_registrations"
    __table_args__ = (
        db.UniqueConstraint("event_id", "user_id", name="uq_registration_event_user"),
    )

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(
        db.Integer, db.ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    registered_at = db.Column(db.DateTime(timezone=True),
                              default=lambda: datetime.now(timezone.utc))

    event = db.relationship("Event", back_populates="registrations")

    def to_dict(self):
        return {
            "id": self.id,
            "event_id": self.event_id,
            "user_id": self.user_id,
            "registered_at": self.registered_at.isoformat() if self.registered_at else None,
        }

    def __repr__(self):
        return f"<EventRegistration e={self.event_id} u={self.user_id}>"


class SavedEvent(db.Model):
    """A user's bookmark on an event."""

    __tablename__ = "saved_events"
    __table_args__ = (
        db.UniqueConstraint("user_id", "event_id", name="uq_saved_event_user_event"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    event_id = db.Column(
        db.Integer, db.ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    saved_at = db.Column(db.DateTime(timezone=True),
                         default=lambda: datetime.now(timezone.utc))

    event = db.relationship("Event", back_populates="saved_by")

    def to_dict(self, with_event=False):
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "event_id": self.event_id,
            "saved_at": self.saved_at.isoformat() if self.saved_at else None,
        }
        if with_event:
            data["event"] = self.event.to_dict()
        return data

    def __repr__(self):
        return f"<SavedEvent e={self.event_id} u={self.user_id}>"
