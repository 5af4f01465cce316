"""
UniVibe Campus Platform
Study-space domain models.

Models:
    - StudySpace:             bookable space with a fixed seat capacity
    - StudySpaceReservation:  one seat for one student on one day

Lifecycle states:
    StudySpaceReservation:  ACTIVE → COMPLETED  (date strictly before today)
                            ACTIVE → CANCELLED  (by the student)
    Neither terminal state ever reverts.
"""

from datetime import datetime, timezone

from univibe.models import db

# ── Constants ────────────────────────────────────────────────────────────────

RESERVATION_ACTIVE = "ACTIVE"
RESERVATION_COMPLETED = "COMPLETED"
RESERVATION_CANCELLED = "CANCELLED"

RESERVATION_STATUSES = {RESERVATION_ACTIVE, RESERVATION_COMPLETED, RESERVATION_CANCELLED}


class StudySpace(db.Model):
    """Bookable study space."""

    __tablename__ = "study_spaces"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), unique=True, nullable=False)
    location = db.Column(db.String(200), nullable=True)
    capacity = db.Column(db.Integer, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.CheckConstraint("capacity > 0", name="ck_study_space_capacity_positive"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "capacity": self.capacity,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<StudySpace {self.id} {self.name!r} cap={self.capacity}>"


class StudySpaceReservation(db.Model):
    """
    Day-granular seat reservation.

    At most one ACTIVE reservation per (student, space, date); enforced by a
    partial unique index so concurrent duplicates fail at INSERT time.
    """

    __tablename__ = "study_space_reservations"

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    space_id = db.Column(
        db.Integer, db.ForeignKey("study_spaces.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    date = db.Column(db.Date, nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default=RESERVATION_ACTIVE,
                       comment="ACTIVE | COMPLETED | CANCELLED")
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    space = db.relationship("StudySpace")

    __table_args__ = (
        db.Index("ix_reservation_space_date_status", "space_id", "date", "status"),
        db.Index(
            "uq_reservation_active_student_space_date",
            "student_id", "space_id", "date",
            unique=True,
            sqlite_where=db.text("status = 'ACTIVE'"),
            postgresql_where=db.text("status = 'ACTIVE'"),
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "student_id": self.student_id,
            "space_id": self.space_id,
            "date": self.date.isoformat() if self.date else None,
            "status": self.status,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<StudySpaceReservation {self.id} s={self.space_id} {self.date} [{self.status}]>"
