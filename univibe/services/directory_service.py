"""
Organizational Directory Service.

Colleges, communities and the community → college linkage.

Design decisions:
    - Linking a community to a college never touches existing events.
      Events keep their own college_id copy until
      event_lifecycle.reconcile_event_colleges() re-syncs them.
    - Re-linking to the same college is a no-op reported as "verified".
    - A community without a college is a visible, blocking condition;
      nothing here guesses a college for it.

Usage:
    from univibe.services import directory_service as directory

    college = directory.create_college("ENG", "College of Engineering")
    outcome = directory.link_community_to_college(community.id, college.id)
    outcome["outcome"]   # "linked" | "relinked" | "verified"
"""

from __future__ import annotations

import logging

from univibe.core.exceptions import ConflictError, NotFoundError, ValidationError
from univibe.models import db
from univibe.models.audit import write_audit
from univibe.models.auth import User
from univibe.models.event import Event
from univibe.models.org import College, Community

logger = logging.getLogger(__name__)

LINK_LINKED = "linked"
LINK_RELINKED = "relinked"
LINK_VERIFIED = "verified"


class _NotAssigned:
    """Sentinel returned when a community has no college."""

    __slots__ = ()

    def __bool__(self):
        return False

    def __repr__(self):
        return "NOT_ASSIGNED"


NOT_ASSIGNED = _NotAssigned()


# ── Colleges ─────────────────────────────────────────────────────────────────


def get_college(college_id: int) -> College:
    college = db.session.get(College, college_id)
    if college is None:
        raise NotFoundError(resource="College", resource_id=college_id)
    return college


def get_college_by_code(code: str) -> College:
    college = College.query.filter_by(code=(code or "").strip().upper()).first()
    if college is None:
        raise NotFoundError(resource="College", resource_id=code)
    return college


def create_college(code: str, name: str, capacity: int | None = None) -> College:
    """Create a college.  ``code`` is normalised to upper case and must be unique."""
    code = (code or "").strip().upper()
    name = (name or "").strip()
    if not code:
        raise ValidationError("code is required", details={"code": "required"})
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    _validate_capacity(capacity)
    if College.query.filter_by(code=code).first():
        raise ConflictError(resource="College", field="code", value=code)

    college = College(code=code, name=name, capacity=capacity)
    db.session.add(college)
    db.session.commit()
    logger.info("College created: %s", code, extra={"college_id": college.id})
    return college


def rename_college(college_id: int, name: str) -> College:
    college = get_college(college_id)
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    college.name = name
    db.session.commit()
    return college


def set_college_capacity(college_id: int, capacity: int | None) -> College:
    """Set the default event capacity for events of this college (None clears it)."""
    college = get_college(college_id)
    _validate_capacity(capacity)
    college.capacity = capacity
    db.session.commit()
    return college


def list_colleges() -> list[College]:
    return College.query.order_by(College.code).all()


def _validate_capacity(capacity):
    if capacity is None:
        return
    if not isinstance(capacity, int) or isinstance(capacity, bool) or capacity <= 0:
        raise ValidationError("capacity must be a positive integer",
                              details={"capacity": capacity})


# ── Communities ──────────────────────────────────────────────────────────────


def get_community(community_id: int) -> Community:
    community = db.session.get(Community, community_id)
    if community is None:
        raise NotFoundError(resource="Community", resource_id=community_id)
    return community


def create_community(
    name: str,
    created_by: int,
    college_id: int | None = None,
    description: str = "",
) -> Community:
    """Create a community.  The creator is recorded once and never rewritten."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    if db.session.get(User, created_by) is None:
        raise NotFoundError(resource="User", resource_id=created_by)
    if college_id is not None:
        get_college(college_id)
    if Community.query.filter_by(name=name).first():
        raise ConflictError(resource="Community", field="name", value=name)

    community = Community(
        name=name,
        description=description or "",
        college_id=college_id,
        created_by=created_by,
    )
    db.session.add(community)
    db.session.commit()
    logger.info("Community created: %s", name, extra={"community_id": community.id})
    return community


def delete_community(community_id: int) -> None:
    """Delete a community and (by cascade) its memberships and applications.

    Communities that still own events cannot be deleted.
    """
    community = get_community(community_id)
    if Event.query.filter_by(community_id=community.id).first() is not None:
        raise ConflictError(resource="Community", field="events", value=community.name)
    db.session.delete(community)
    db.session.commit()


def resolve_college_for_community(community_id: int) -> College | _NotAssigned:
    """Return the community's college, or ``NOT_ASSIGNED`` when it has none."""
    community = get_community(community_id)
    if community.college_id is None:
        return NOT_ASSIGNED
    return community.college


def link_community_to_college(community_id: int, college_id: int, actor: User | None = None) -> dict:
    """Link a community to a college.  Idempotent.

    Does not propagate to existing events.

    Returns:
        {"community_id", "college_id", "previous_college_id", "outcome"}
    """
    community = get_community(community_id)
    college = get_college(college_id)
    previous = community.college_id

    if previous == college.id:
        logger.info(
            "Community %s already linked to %s, verified",
            community.name, college.code,
            extra={"community_id": community.id, "college_id": college.id},
        )
        return {
            "community_id": community.id,
            "college_id": college.id,
            "previous_college_id": previous,
            "outcome": LINK_VERIFIED,
        }

    community.college_id = college.id
    outcome = LINK_LINKED if previous is None else LINK_RELINKED
    write_audit(
        entity_type="community",
        entity_id=community.id,
        action="community.link_college",
        actor=actor,
        diff={"college_id": {"old": previous, "new": college.id}},
    )
    db.session.commit()
    logger.info(
        "Community %s %s to %s (previous college id=%s)",
        community.name, outcome, college.code, previous,
        extra={"community_id": community.id, "college_id": college.id},
    )
    return {
        "community_id": community.id,
        "college_id": college.id,
        "previous_college_id": previous,
        "outcome": outcome,
    }


def list_unassigned_communities() -> list[Community]:
    """Communities with no college.  Their events cannot be submitted."""
    return (
        Community.query
        .filter(Community.college_id.is_(None))
        .order_by(Community.name)
        .all()
    )
