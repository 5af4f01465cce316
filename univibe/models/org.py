"""
UniVibe Campus Platform
Organizational domain models.

Models:
    - College:          top-level organizational unit, scopes two approver roles
    - Community:        club / student group belonging to one college
    - CommunityMember:  user ↔ community membership (join entity)

Architecture:
    College ──1:N──▶ Community ──1:N──▶ CommunityMember ◀──N:1── User
    College ──1:N──▶ User (faculty leaders, deans, affiliated students)

A community may temporarily have no college.  Such a community blocks
approval routing for its events until it is linked.
"""

from datetime import datetime, timezone

from univibe.models import db

# ── Constants ────────────────────────────────────────────────────────────────

MEMBER_ROLES = {"admin", "moderator", "member"}


class College(db.Model):
    """Root of the organizational hierarchy.  Immutable except name/capacity."""

    __tablename__ = "colleges"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(20), unique=True, nullable=False,
                     comment="Short unique key, e.g. ENG, MED, LAW")
    name = db.Column(db.String(200), nullable=False)
    capacity = db.Column(db.Integer, nullable=True,
                         comment="Default capacity for events in this college")

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    communities = db.relationship("Community", back_populates="college")
    users = db.relationship("User", back_populates="college")

    def to_dict(self):
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "capacity": self.capacity,
        }

    def __repr__(self):
        return f"<College {self.code}>"


class Community(db.Model):
    """
    Student community (club).

    club_leader_id is the current leader and may change;
    created_by is the original creator and is never rewritten.
    """

    __tablename__ = "communities"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), unique=True, nullable=False)
    description = db.Column(db.Text, default="")
    college_id = db.Column(
        db.Integer,
        db.ForeignKey("colleges.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="NULL blocks approval routing for this community's events",
    )
    club_leader_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    created_by = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        comment="Original creator; preserved when leadership changes",
    )

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    college = db.relationship("College", back_populates="communities")
    club_leader = db.relationship("User", foreign_keys=[club_leader_id])
    creator = db.relationship("User", foreign_keys=[created_by])
    members = db.relationship(
        "CommunityMember", back_populates="community",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "college_id": self.college_id,
            "club_leader_id": self.club_leader_id,
            "created_by": self.created_by,
            "member_count": len(self.members),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Community {self.id} {self.name!r}>"


class CommunityMember(db.Model):
    """One membership row per (user, community)."""

    __tablename__ = "community_members"
    __table_args__ = (
        db.UniqueConstraint("user_id", "community_id", name="uq_member_user_community"),
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
    role = db.Column(db.String(20), nullable=False, default="member",
                     comment="admin | moderator | member")
    join_date = db.Column(db.DateTime(timezone=True),
                          default=lambda: datetime.now(timezone.utc))

    user = db.relationship("User", back_populates="memberships")
    community = db.relationship("Community", back_populates="members")

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "community_id": self.community_id,
            "role": self.role,
            "join_date": self.join_date.isoformat() if self.join_date else None,
        }

    def __repr__(self):
        return f"<CommunityMember u={self.user_id} c={self.community_id} {self.role}>"
