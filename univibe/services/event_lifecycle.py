"""
Event Lifecycle Service.

Manages event status transitions along the approval chain with:
  - Transition validation (EVENT_TRANSITIONS)
  - Identity-matched approver checks (user id, never role alone)
  - Optimistic concurrency on Event.version_id
  - Audit rows + notifications for every transition

Actions:
  submit, approve, reject, cancel   (plus create / update while DRAFT)

Maintenance:
  reconcile_event_colleges()   re-sync event.college_id from its community
  backfill_event_capacities()  apply the capacity default to NULL rows

Usage:
    from univibe.services import event_lifecycle

    event = event_lifecycle.create_event(creator.id, "Robotics Night",
                                         community_id=ieee.id)
    event_lifecycle.submit(event.id, creator)
    event_lifecycle.approve(event.id, club_leader, expected_version=2)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy.orm.exc import StaleDataError

from univibe.core.exceptions import (
    ConflictError,
    InvalidRoleError,
    InvalidTransitionError,
    NotFoundError,
    StaleStateError,
    UnresolvedCollegeError,
    ValidationError,
)
from univibe.models import db
from univibe.models.audit import write_audit
from univibe.models.auth import COLLEGE_SCOPED_ROLES, ROLE_ADMIN, ROLE_RANK, User
from univibe.models.event import (
    EVENT_APPROVED,
    EVENT_CANCELLED,
    EVENT_DRAFT,
    EVENT_PENDING_CLUB_LEADER,
    PENDING_STATUSES,
    TERMINAL_STATUSES,
    Event,
    validate_event_transition,
)
from univibe.models.org import College, Community
from univibe.services import approval_chain
from univibe.services.approval_chain import ApprovalStage
from univibe.services.notification import NotificationService

logger = logging.getLogger(__name__)

FALLBACK_EVENT_CAPACITY = 100

_STAGE_ROLES = frozenset(stage.role for stage in ApprovalStage)

UPDATABLE_FIELDS = ("title", "description", "location", "start_at", "end_at", "capacity")


# ── Helpers ──────────────────────────────────────────────────────────────────


def get_event(event_id: int) -> Event:
    event = db.session.get(Event, event_id)
    if event is None:
        raise NotFoundError(resource="Event", resource_id=event_id)
    return event


def _load_for_update(event_id: int, expected_version: int | None) -> Event:
    event = get_event(event_id)
    if expected_version is not None and event.version_id != expected_version:
        raise StaleStateError("Event", event.id, expected_version, event.version_id)
    return event


@contextmanager
def _versioned(event: Event):
    """Commit the block's changes; a lost version race becomes StaleStateError.

    Any failure inside the block rolls the whole transition back.
    """
    event_id = event.id
    try:
        yield
        db.session.commit()
    except StaleDataError as e:
        db.session.rollback()
        raise StaleStateError("Event", event_id) from e
    except Exception:
        db.session.rollback()
        raise


def _set_status(event: Event, new_status: str, action: str) -> str:
    old_status = event.status
    if not validate_event_transition(old_status, new_status):
        raise InvalidTransitionError("Event", event.id, action, old_status)
    event.status = new_status
    return old_status


def _log_transition(event: Event, action: str, old: str, actor: User | None) -> None:
    logger.info(
        "Event %s %s: %s -> %s", event.id, action, old, event.status,
        extra={
            "event_id": event.id,
            "from_status": old,
            "to_status": event.status,
            "user_id": actor.id if actor is not None else None,
        },
    )


def _validate_window(start_at, end_at) -> None:
    if start_at is not None and end_at is not None and end_at < start_at:
        raise ValidationError(
            "end_at must not precede start_at",
            details={"start_at": str(start_at), "end_at": str(end_at)},
        )


def _validate_capacity(capacity) -> None:
    if capacity is None:
        return
    if not isinstance(capacity, int) or isinstance(capacity, bool) or capacity <= 0:
        raise ValidationError("capacity must be a positive integer",
                              details={"capacity": capacity})


def default_capacity_for(college_id: int | None) -> int:
    """College capacity when defined, else the configured platform default."""
    if college_id is not None:
        college = db.session.get(College, college_id)
        if college is not None and college.capacity:
            return college.capacity
    return current_app.config.get("DEFAULT_EVENT_CAPACITY", FALLBACK_EVENT_CAPACITY)


def _resolved_college_or_none(event: Event) -> int | None:
    try:
        return approval_chain.resolve_event_college(event)
    except UnresolvedCollegeError:
        return None


def _notify_stage(event: Event, stage: ApprovalStage) -> None:
    """Notify the approver of ``stage``; warn when nobody can act."""
    approver = approval_chain.resolve_stage_approver(event, stage)
    if approver is None:
        logger.warning(
            "Event %s waiting at %s: no approver assigned", event.id, stage.name,
            extra={"event_id": event.id, "college_id": event.college_id},
        )
        return
    NotificationService.create(
        recipient_id=approver.id,
        title=f"Approval needed: {event.title}",
        message=f"Event awaits your decision as {stage.role}.",
        category="approval",
        severity="warning",
        entity_type="event",
        entity_id=event.id,
    )


def _notify_creator(event: Event, title: str, message: str = "", severity: str = "info") -> None:
    NotificationService.create(
        recipient_id=event.creator_id,
        title=title,
        message=message,
        category="event",
        severity=severity,
        entity_type="event",
        entity_id=event.id,
    )


def _require_current_approver(event: Event, actor: User, action: str) -> ApprovalStage:
    stage = approval_chain.current_stage(event)
    if stage is None:
        raise InvalidTransitionError("Event", event.id, action, event.status,
                                     reason="event is not awaiting approval")
    approver = approval_chain.resolve_stage_approver(event, stage)
    if approver is None:
        raise InvalidRoleError(
            f"No approver assigned for {stage.name} on event id={event.id}",
            user_id=actor.id,
            required=stage.role,
        )
    if approver.id != actor.id:
        raise InvalidRoleError(
            f"User id={actor.id} is not the {stage.role} approver for event id={event.id}",
            user_id=actor.id,
            required=stage.role,
        )
    return stage


# ── Create / update ──────────────────────────────────────────────────────────


def create_event(
    creator_id: int,
    title: str,
    community_id: int | None = None,
    college_id: int | None = None,
    capacity: int | None = None,
    description: str = "",
    location: str | None = None,
    start_at: datetime | None = None,
    end_at: datetime | None = None,
) -> Event:
    """
    Create a DRAFT event.

    Community events take their college from the community; passing a
    different college_id is rejected.  Capacity defaults once, here.
    """
    title = (title or "").strip()
    if not title:
        raise ValidationError("title is required", details={"title": "required"})
    creator = db.session.get(User, creator_id)
    if creator is None:
        raise NotFoundError(resource="User", resource_id=creator_id)
    _validate_window(start_at, end_at)
    _validate_capacity(capacity)

    if community_id is not None:
        community = db.session.get(Community, community_id)
        if community is None:
            raise NotFoundError(resource="Community", resource_id=community_id)
        if college_id is not None and college_id != community.college_id:
            raise ValidationError(
                "college_id does not match the community's college",
                details={"college_id": college_id, "community_college_id": community.college_id},
            )
        college_id = community.college_id
    elif college_id is not None and db.session.get(College, college_id) is None:
        raise NotFoundError(resource="College", resource_id=college_id)

    if capacity is None:
        capacity = default_capacity_for(college_id)

    event = Event(
        title=title,
        description=description or "",
        location=location,
        start_at=start_at,
        end_at=end_at,
        creator_id=creator.id,
        community_id=community_id,
        college_id=college_id,
        capacity=capacity,
        status=EVENT_DRAFT,
    )
    db.session.add(event)
    db.session.flush()
    write_audit(entity_type="event", entity_id=event.id, action="event.create",
                actor=creator, diff={"status": {"old": None, "new": EVENT_DRAFT}})
    db.session.commit()
    logger.info("Event created: %s", title, extra={"event_id": event.id, "user_id": creator.id})
    return event


def update_event(event_id: int, actor: User, expected_version: int | None = None, **fields) -> Event:
    """Edit a DRAFT event.  Only the creator may edit."""
    event = _load_for_update(event_id, expected_version)
    unknown = set(fields) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Fields cannot be updated: {sorted(unknown)}",
                              details={"fields": sorted(unknown)})
    if actor.id != event.creator_id:
        raise InvalidRoleError("Only the creator can edit an event", user_id=actor.id)
    if event.status != EVENT_DRAFT:
        raise InvalidTransitionError("Event", event.id, "update", event.status,
                                     reason="only drafts can be edited")

    if "title" in fields and not (fields["title"] or "").strip():
        raise ValidationError("title is required", details={"title": "required"})
    if "capacity" in fields:
        _validate_capacity(fields["capacity"])
    _validate_window(fields.get("start_at", event.start_at), fields.get("end_at", event.end_at))

    with _versioned(event):
        diff = {}
        for key, value in fields.items():
            old = getattr(event, key)
            if old != value:
                diff[key] = {"old": old, "new": value}
                setattr(event, key, value)
        if diff:
            write_audit(entity_type="event", entity_id=event.id, action="event.update",
                        actor=actor, diff=diff)
    return event


# ── Transitions ──────────────────────────────────────────────────────────────


def _find_schedule_conflict(event: Event) -> Event | None:
    if not event.location or event.start_at is None or event.end_at is None:
        return None
    return (
        Event.query
        .filter(
            Event.id != event.id,
            Event.status == EVENT_APPROVED,
            Event.location == event.location,
            Event.start_at < event.end_at,
            Event.end_at > event.start_at,
        )
        .first()
    )


def submit(event_id: int, actor: User, expected_version: int | None = None) -> Event:
    """DRAFT → first stage of the resolved chain.  Creator only."""
    event = _load_for_update(event_id, expected_version)
    if actor.id != event.creator_id:
        raise InvalidRoleError("Only the creator can submit an event", user_id=actor.id)
    if event.status != EVENT_DRAFT:
        raise InvalidTransitionError("Event", event.id, "submit", event.status)

    college_id = approval_chain.resolve_event_college(event)
    chain = approval_chain.resolve_chain(event)

    clash = _find_schedule_conflict(event)
    if clash is not None:
        raise ConflictError(resource="Event", field="location/time",
                            value=f"{event.location} (clashes with event id={clash.id})")

    first = chain[0]
    with _versioned(event):
        if event.college_id != college_id:
            logger.info("Event %s college re-derived: %s -> %s", event.id, event.college_id,
                        college_id, extra={"event_id": event.id, "college_id": college_id})
            event.college_id = college_id
        old = _set_status(event, first.pending_status, "submit")
        event.submitted_at = datetime.now(timezone.utc)
        write_audit(entity_type="event", entity_id=event.id, action="event.submit", actor=actor,
                    diff={"status": {"old": old, "new": event.status}})
        _notify_stage(event, first)
    _log_transition(event, "submit", old, actor)
    return event


def approve(event_id: int, actor: User, expected_version: int | None = None) -> Event:
    """Advance the event one stage.  The actor must BE the resolved approver."""
    event = _load_for_update(event_id, expected_version)
    stage = _require_current_approver(event, actor, "approve")
    following = approval_chain.next_stage(event, stage)

    with _versioned(event):
        if following is not None:
            old = _set_status(event, following.pending_status, "approve")
        else:
            old = _set_status(event, EVENT_APPROVED, "approve")
            event.approved_at = datetime.now(timezone.utc)

        write_audit(entity_type="event", entity_id=event.id, action="event.approve", actor=actor,
                    diff={"status": {"old": old, "new": event.status}, "stage": stage.name})
        if following is not None:
            _notify_stage(event, following)
        else:
            _notify_creator(event, f"Event approved: {event.title}", severity="success")
    _log_transition(event, "approve", old, actor)
    return event


def reject(event_id: int, actor: User, reason: str, expected_version: int | None = None) -> Event:
    """Reject at the current stage.  Terminal; a resubmission is a new event."""
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A rejection reason is required", details={"reason": "required"})
    event = _load_for_update(event_id, expected_version)
    stage = _require_current_approver(event, actor, "reject")

    with _versioned(event):
        old = _set_status(event, stage.rejected_status, "reject")
        setattr(event, stage.reason_field, reason)
        write_audit(entity_type="event", entity_id=event.id, action="event.reject", actor=actor,
                    diff={"status": {"old": old, "new": event.status}, "reason": reason})
        _notify_creator(event, f"Event rejected: {event.title}", message=reason, severity="error")
    _log_transition(event, "reject", old, actor)
    return event


def _may_cancel(event: Event, actor: User) -> bool:
    if actor.id == event.creator_id:
        return True
    if event.status == EVENT_DRAFT:
        return actor.role == ROLE_ADMIN
    stage = approval_chain.current_stage(event)
    if stage is None or ROLE_RANK.get(actor.role, 0) <= ROLE_RANK[stage.role]:
        return False
    if actor.role in COLLEGE_SCOPED_ROLES:
        return actor.college_id is not None and actor.college_id == _resolved_college_or_none(event)
    return True


def cancel(event_id: int, actor: User, expected_version: int | None = None) -> Event:
    """
    Cancel a DRAFT or pending event.

    Allowed for the creator, or a role ranked above the current stage's
    role (college-scoped roles only within the event's college).
    """
    event = _load_for_update(event_id, expected_version)
    if event.status in TERMINAL_STATUSES:
        raise InvalidTransitionError("Event", event.id, "cancel", event.status)
    if not _may_cancel(event, actor):
        raise InvalidRoleError(
            f"User id={actor.id} cannot cancel event id={event.id}", user_id=actor.id,
        )

    with _versioned(event):
        old = _set_status(event, EVENT_CANCELLED, "cancel")
        event.cancelled_by = actor.id
        write_audit(entity_type="event", entity_id=event.id, action="event.cancel", actor=actor,
                    diff={"status": {"old": old, "new": EVENT_CANCELLED}})
        if actor.id != event.creator_id:
            _notify_creator(event, f"Event cancelled: {event.title}", severity="warning")
    _log_transition(event, "cancel", old, actor)
    return event


# ── Queries ──────────────────────────────────────────────────────────────────


def pending_approvals_for(user: User) -> list[Event]:
    """
    Events whose current stage resolves to ``user``.

    Club-leader stages follow Community.club_leader_id whatever the user's
    role (admin members can lead); the college and global stages follow
    the user's role.
    """
    led = db.session.query(Community.id).filter(Community.club_leader_id == user.id)
    condition = db.and_(Event.status == EVENT_PENDING_CLUB_LEADER, Event.community_id.in_(led))
    if user.role in _STAGE_ROLES and user.role != ApprovalStage.CLUB_LEADER.role:
        condition = db.or_(condition, Event.status == ApprovalStage(user.role).pending_status)
    q = Event.query.filter(condition)

    events = []
    for event in q.order_by(Event.submitted_at, Event.id).all():
        try:
            approver = approval_chain.current_approver(event)
        except UnresolvedCollegeError:
            continue
        if approver is not None and approver.id == user.id:
            events.append(event)
    return events


def list_events(status: str | None = None, community_id: int | None = None,
                college_id: int | None = None):
    """Filtered event query (not executed) for paginated listings."""
    q = Event.query
    if status:
        q = q.filter(Event.status == status)
    if community_id is not None:
        q = q.filter(Event.community_id == community_id)
    if college_id is not None:
        q = q.filter(Event.college_id == college_id)
    return q.order_by(Event.created_at.desc(), Event.id.desc())


# ── Maintenance ──────────────────────────────────────────────────────────────


def _compare_and_set(event_id: int, version: int, values: dict) -> bool:
    """Single-row UPDATE guarded by version_id.  False when the row moved."""
    values = dict(values, version_id=version + 1)
    updated = (
        db.session.query(Event)
        .filter(Event.id == event_id, Event.version_id == version)
        .update(values, synchronize_session=False)
    )
    return updated == 1


def reconcile_event_colleges(apply: bool = True) -> dict:
    """
    Re-sync every community event's college_id from its community.

    Idempotent.  Events of communities without a college are counted in
    ``skipped_unassigned`` and left alone.  A row that changed under us
    is counted in ``conflicts`` and picked up by the next run.

    Returns:
        {"checked", "corrected", "skipped_unassigned", "conflicts",
         "affected_ids", "applied"}
    """
    summary = {
        "checked": 0,
        "corrected": 0,
        "skipped_unassigned": 0,
        "conflicts": 0,
        "affected_ids": [],
        "applied": apply,
    }
    rows = (
        db.session.query(Event.id, Event.version_id, Event.college_id, Community.college_id)
        .join(Community, Event.community_id == Community.id)
        .order_by(Event.id)
        .all()
    )
    for event_id, version, current, expected in rows:
        summary["checked"] += 1
        if expected is None:
            summary["skipped_unassigned"] += 1
            continue
        if current == expected:
            continue
        if apply:
            if not _compare_and_set(event_id, version, {"college_id": expected}):
                summary["conflicts"] += 1
                logger.warning("Event %s changed during reconciliation, skipped", event_id,
                               extra={"event_id": event_id})
                continue
            write_audit(entity_type="event", entity_id=event_id,
                        action="event.reconcile_college",
                        diff={"college_id": {"old": current, "new": expected}})
            logger.info("Event %s college corrected: %s -> %s", event_id, current, expected,
                        extra={"event_id": event_id, "college_id": expected})
        summary["corrected"] += 1
        summary["affected_ids"].append(event_id)

    if apply:
        db.session.commit()
    logger.info(
        "Reconciliation %s: checked=%d corrected=%d unassigned=%d conflicts=%d",
        "applied" if apply else "dry-run",
        summary["checked"], summary["corrected"],
        summary["skipped_unassigned"], summary["conflicts"],
    )
    return summary


def backfill_event_capacities(apply: bool = True) -> dict:
    """
    Apply the capacity default to events whose capacity is NULL.

    Never overwrites a set capacity.  Idempotent.

    Returns:
        {"checked", "updated", "conflicts", "affected_ids", "applied"}
    """
    summary = {"checked": 0, "updated": 0, "conflicts": 0, "affected_ids": [], "applied": apply}
    events = Event.query.filter(Event.capacity.is_(None)).order_by(Event.id).all()
    for event in events:
        summary["checked"] += 1
        capacity = default_capacity_for(_resolved_college_or_none(event))
        if apply:
            if not _compare_and_set(event.id, event.version_id, {"capacity": capacity}):
                summary["conflicts"] += 1
                continue
            write_audit(entity_type="event", entity_id=event.id,
                        action="event.default_capacity",
                        diff={"capacity": {"old": None, "new": capacity}})
            logger.info("Event %s capacity defaulted to %d", event.id, capacity,
                        extra={"event_id": event.id})
        summary["updated"] += 1
        summary["affected_ids"].append(event.id)

    if apply:
        db.session.commit()
    return summary
