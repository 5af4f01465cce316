"""
Role & Membership Registry Service.

Users and their single role, community memberships, club leadership and
community-join applications.

Role rules:
    - FACULTY_LEADER and DEAN_OF_FACULTY must carry a college_id.
    - Uniqueness of an approver role per college is not enforced here.
      find_approver() detects and reports multiplicity instead of picking
      one arbitrarily.

Application rules:
    - One ApplicationForm row per (user, community).
    - PENDING / APPROVED applications, or an existing membership, block a
      new application.  A REJECTED application may be re-submitted; the
      same row goes back to PENDING.
    - Only the community's club leader or an ADMIN decides.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.exc import IntegrityError

from univibe.core.exceptions import (
    AmbiguousApproverError,
    ConflictError,
    DuplicateApplicationError,
    InvalidRoleError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from univibe.models import db
from univibe.models.application import (
    APPLICATION_APPROVED,
    APPLICATION_PENDING,
    APPLICATION_REJECTED,
    ApplicationForm,
)
from univibe.models.audit import write_audit
from univibe.models.auth import (
    COLLEGE_SCOPED_ROLES,
    ROLE_ADMIN,
    ROLE_CLUB_LEADER,
    ROLE_DEANSHIP,
    USER_ROLES,
    User,
)
from univibe.models.event import Event
from univibe.models.org import MEMBER_ROLES, College, Community, CommunityMember
from univibe.services.notification import NotificationService

logger = logging.getLogger(__name__)

# Roles find_approver() can look up.  CLUB_LEADER is resolved through
# Community.club_leader_id, not through a role scan.
APPROVER_LOOKUP_ROLES = COLLEGE_SCOPED_ROLES | {ROLE_DEANSHIP}


# ── Users ────────────────────────────────────────────────────────────────────


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(resource="User", resource_id=user_id)
    return user


def _validate_role_scope(role: str, college_id: int | None) -> None:
    if role not in USER_ROLES:
        raise ValidationError(
            f"Unknown role: {role}",
            details={"role": role, "allowed": sorted(USER_ROLES)},
        )
    if role in COLLEGE_SCOPED_ROLES and college_id is None:
        raise ValidationError(
            f"{role} requires a college",
            details={"college_id": "required"},
        )
    if college_id is not None and db.session.get(College, college_id) is None:
        raise NotFoundError(resource="College", resource_id=college_id)


def create_user(
    email: str,
    role: str,
    full_name: str | None = None,
    college_id: int | None = None,
) -> User:
    """Create a user.  Email must be syntactically valid and unique."""
    try:
        email = validate_email(email or "", check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise ValidationError(str(e), details={"email": email}) from e

    _validate_role_scope(role, college_id)
    if User.query.filter_by(email=email).first():
        raise ConflictError(resource="User", field="email", value=email)

    user = User(email=email, role=role, college_id=college_id, full_name=full_name)
    db.session.add(user)
    db.session.commit()
    logger.info("User created: %s [%s]", email, role, extra={"user_id": user.id})
    return user


def change_role(user_id: int, role: str, college_id: int | None = None) -> User:
    """Replace a user's role (and college).  Every user holds exactly one role."""
    user = get_user(user_id)
    _validate_role_scope(role, college_id)
    old = {"role": user.role, "college_id": user.college_id}
    user.role = role
    user.college_id = college_id
    write_audit(
        entity_type="user",
        entity_id=user.id,
        action="update",
        diff={
            "role": {"old": old["role"], "new": role},
            "college_id": {"old": old["college_id"], "new": college_id},
        },
    )
    db.session.commit()
    logger.info("Role changed for %s: %s -> %s", user.email, old["role"], role,
                extra={"user_id": user.id})
    return user


def deactivate_user(user_id: int) -> User:
    """Deactivated users no longer resolve as approvers."""
    user = get_user(user_id)
    user.is_active = False
    db.session.commit()
    return user


def delete_user(user_id: int) -> None:
    """Delete a user and, by cascade, their memberships.

    Users who created events cannot be deleted; events need their creator.
    """
    user = get_user(user_id)
    if Event.query.filter_by(creator_id=user.id).first() is not None:
        raise ConflictError(resource="User", field="events", value=user.email)
    db.session.delete(user)
    db.session.commit()


def find_approver(role: str, college_id: int | None = None) -> User | None:
    """
    Return the single active holder of an approver role.

    FACULTY_LEADER / DEAN_OF_FACULTY are looked up within ``college_id``;
    DEANSHIP_OF_STUDENT_AFFAIRS is global and ignores ``college_id``.

    Returns:
        The user, or None when nobody holds the role (a blocked stage).

    Raises:
        AmbiguousApproverError: more than one active holder.
        ValidationError: role is not a lookup-able approver role.
    """
    if role not in APPROVER_LOOKUP_ROLES:
        raise ValidationError(
            f"{role} is not a college or global approver role",
            details={"role": role},
        )

    q = User.query.filter(User.role == role, User.is_active.is_(True))
    if role in COLLEGE_SCOPED_ROLES:
        if college_id is None:
            return None
        q = q.filter(User.college_id == college_id)
        scope = college_id
    else:
        scope = None

    matches = q.order_by(User.id).all()
    if len(matches) > 1:
        raise AmbiguousApproverError(role, scope, [u.id for u in matches])
    return matches[0] if matches else None


# ── Memberships ──────────────────────────────────────────────────────────────


def _get_community(community_id: int) -> Community:
    community = db.session.get(Community, community_id)
    if community is None:
        raise NotFoundError(resource="Community", resource_id=community_id)
    return community


def get_membership(user_id: int, community_id: int) -> CommunityMember | None:
    return CommunityMember.query.filter_by(
        user_id=user_id, community_id=community_id,
    ).first()


def add_member(community_id: int, user_id: int, role: str = "member") -> CommunityMember:
    """Add a membership.  A second membership for the same pair is a conflict."""
    if role not in MEMBER_ROLES:
        raise ValidationError(
            f"Unknown membership role: {role}",
            details={"role": role, "allowed": sorted(MEMBER_ROLES)},
        )
    get_user(user_id)
    _get_community(community_id)
    if get_membership(user_id, community_id) is not None:
        raise ConflictError(resource="CommunityMember", field="user/community",
                            value=f"{user_id}/{community_id}")

    member = CommunityMember(user_id=user_id, community_id=community_id, role=role)
    db.session.add(member)
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise ConflictError(resource="CommunityMember", field="user/community",
                            value=f"{user_id}/{community_id}") from e
    return member


def remove_member(community_id: int, user_id: int) -> None:
    member = get_membership(user_id, community_id)
    if member is None:
        raise NotFoundError(resource="CommunityMember", resource_id=f"{user_id}/{community_id}")
    db.session.delete(member)
    db.session.commit()


def list_members(community_id: int) -> list[CommunityMember]:
    _get_community(community_id)
    return (
        CommunityMember.query
        .filter_by(community_id=community_id)
        .order_by(CommunityMember.join_date, CommunityMember.id)
        .all()
    )


def set_club_leader(community_id: int, user_id: int, actor: User | None = None) -> Community:
    """
    Assign the community's club leader.

    Eligible: a user whose role is CLUB_LEADER, or an ``admin`` member of
    this community.  ``created_by`` is left untouched.
    """
    community = _get_community(community_id)
    user = get_user(user_id)
    membership = get_membership(user.id, community.id)
    if user.role != ROLE_CLUB_LEADER and (membership is None or membership.role != "admin"):
        raise InvalidRoleError(
            f"User id={user.id} cannot lead community {community.name!r}",
            user_id=user.id,
            required=ROLE_CLUB_LEADER,
        )

    previous = community.club_leader_id
    community.club_leader_id = user.id
    write_audit(
        entity_type="community",
        entity_id=community.id,
        action="community.set_club_leader",
        actor=actor,
        diff={"club_leader_id": {"old": previous, "new": user.id}},
    )
    db.session.commit()
    logger.info("Club leader of %s set to %s", community.name, user.email,
                extra={"community_id": community.id, "user_id": user.id})
    return community


# ── Applications ─────────────────────────────────────────────────────────────


def get_application(application_id: int) -> ApplicationForm:
    application = db.session.get(ApplicationForm, application_id)
    if application is None:
        raise NotFoundError(resource="ApplicationForm", resource_id=application_id)
    return application


def apply_to_community(user_id: int, community_id: int, motivation: str | None = None) -> ApplicationForm:
    """Submit (or re-submit after rejection) a request to join a community."""
    get_user(user_id)
    community = _get_community(community_id)

    if get_membership(user_id, community.id) is not None:
        raise DuplicateApplicationError(user_id, community.id, "member")

    application = ApplicationForm.query.filter_by(
        user_id=user_id, community_id=community.id,
    ).first()
    if application is not None:
        if application.status != APPLICATION_REJECTED:
            raise DuplicateApplicationError(user_id, community.id, application.status)
        application.status = APPLICATION_PENDING
        application.motivation = motivation
        application.rejection_reason = None
        application.decided_by = None
        application.decided_at = None
    else:
        application = ApplicationForm(
            user_id=user_id,
            community_id=community.id,
            motivation=motivation,
            status=APPLICATION_PENDING,
        )
        db.session.add(application)

    if community.club_leader_id is not None:
        db.session.flush()
        NotificationService.create(
            recipient_id=community.club_leader_id,
            title=f"New application to {community.name}",
            message=motivation or "",
            category="application",
            entity_type="application",
            entity_id=application.id,
        )

    db.session.commit()
    return application


def decide_application(
    application_id: int,
    actor: User,
    approve: bool,
    reason: str | None = None,
) -> ApplicationForm:
    """
    Approve or reject a PENDING application.

    Approval creates the membership in the same transaction.
    """
    application = get_application(application_id)
    community = application.community
    if actor.role != ROLE_ADMIN and community.club_leader_id != actor.id:
        raise InvalidRoleError(
            f"Only the club leader of {community.name!r} can decide applications",
            user_id=actor.id,
            required=ROLE_CLUB_LEADER,
        )
    if application.status != APPLICATION_PENDING:
        raise InvalidTransitionError(
            "Application", application.id, "decide", application.status,
            reason="already decided",
        )

    now = datetime.now(timezone.utc)
    application.decided_by = actor.id
    application.decided_at = now
    if approve:
        application.status = APPLICATION_APPROVED
        if get_membership(application.user_id, community.id) is None:
            db.session.add(CommunityMember(
                user_id=application.user_id,
                community_id=community.id,
                role="member",
            ))
        title = f"Welcome to {community.name}"
    else:
        application.status = APPLICATION_REJECTED
        application.rejection_reason = reason
        title = f"Your application to {community.name} was declined"

    write_audit(
        entity_type="application",
        entity_id=application.id,
        action="application.decide",
        actor=actor,
        diff={"status": {"old": APPLICATION_PENDING, "new": application.status}},
    )
    NotificationService.create(
        recipient_id=application.user_id,
        title=title,
        message=reason or "",
        category="application",
        entity_type="application",
        entity_id=application.id,
    )
    db.session.commit()
    return application


def list_applications(community_id: int, status: str | None = None) -> list[ApplicationForm]:
    _get_community(community_id)
    q = ApplicationForm.query.filter_by(community_id=community_id)
    if status:
        q = q.filter_by(status=status)
    return q.order_by(ApplicationForm.created_at, ApplicationForm.id).all()
