"""
UniVibe Campus Platform
Identity domain model.

Models:
    - User: platform account holding exactly one role and an optional college

Role rules:
    FACULTY_LEADER and DEAN_OF_FACULTY are college-scoped approver roles and
    require college_id.  DEANSHIP_OF_STUDENT_AFFAIRS is a single global
    approver role.  Uniqueness of approver roles per college is NOT enforced
    at write time; multiplicity is detected by the approval chain resolver.
"""

from datetime import datetime, timezone

from univibe.models import db

# ── Constants ────────────────────────────────────────────────────────────────

ROLE_STUDENT = "STUDENT"
ROLE_CLUB_LEADER = "CLUB_LEADER"
ROLE_FACULTY_LEADER = "FACULTY_LEADER"
ROLE_DEAN_OF_FACULTY = "DEAN_OF_FACULTY"
ROLE_DEANSHIP = "DEANSHIP_OF_STUDENT_AFFAIRS"
ROLE_ADMIN = "ADMIN"

USER_ROLES = frozenset({
    ROLE_STUDENT,
    ROLE_CLUB_LEADER,
    ROLE_FACULTY_LEADER,
    ROLE_DEAN_OF_FACULTY,
    ROLE_DEANSHIP,
    ROLE_ADMIN,
})

# Roles that only make sense together with a college_id
COLLEGE_SCOPED_ROLES = frozenset({ROLE_FACULTY_LEADER, ROLE_DEAN_OF_FACULTY})

# Seniority used for cancellation rights (higher outranks lower)
ROLE_RANK = {
    ROLE_STUDENT: 0,
    ROLE_CLUB_LEADER: 1,
    ROLE_FACULTY_LEADER: 2,
    ROLE_DEAN_OF_FACULTY: 3,
    ROLE_DEANSHIP: 4,
    ROLE_ADMIN: 5,
}


class User(db.Model):
    """Platform account.  One role per user."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    full_name = db.Column(db.String(200), nullable=True)
    role = db.Column(
        db.String(40), nullable=False, default=ROLE_STUDENT,
        comment="STUDENT | CLUB_LEADER | FACULTY_LEADER | DEAN_OF_FACULTY | "
                "DEANSHIP_OF_STUDENT_AFFAIRS | ADMIN",
    )
    college_id = db.Column(
        db.Integer,
        db.ForeignKey("colleges.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Required for FACULTY_LEADER and DEAN_OF_FACULTY",
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    college = db.relationship("College", back_populates="users")
    memberships = db.relationship(
        "CommunityMember", back_populates="user",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    __table_args__ = (
        db.Index("ix_users_role_college", "role", "college_id"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "college_id": self.college_id,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User {self.id} {self.email} [{self.role}]>"
