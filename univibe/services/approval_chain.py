"""
Approval Chain Resolver.

Given an event, determine the ordered approval stages and who the approver
is at each stage.

Chain (fixed order, never reordered, never skipped):

    CLUB_LEADER               community events only, scoped to the community
    FACULTY_LEADER            scoped to the event's college
    DEAN_OF_FACULTY           scoped to the event's college
    DEANSHIP_OF_STUDENT_AFFAIRS   global

The event's college is always re-derived from its community when it has
one; the event's own college_id copy is only used for independent events.

A stage with no resolvable approver is *blocked*: the event waits there.
More than one holder of a scoped role is an AmbiguousApproverError.

Usage:
    from univibe.services import approval_chain

    stages = approval_chain.resolve_chain(event)
    approver = approval_chain.current_approver(event)
"""

from __future__ import annotations

import logging
from enum import Enum

from univibe.core.exceptions import AmbiguousApproverError, UnresolvedCollegeError
from univibe.models.auth import (
    ROLE_CLUB_LEADER,
    ROLE_DEAN_OF_FACULTY,
    ROLE_DEANSHIP,
    ROLE_FACULTY_LEADER,
    User,
)
from univibe.models.event import (
    EVENT_PENDING_CLUB_LEADER,
    EVENT_PENDING_DEAN,
    EVENT_PENDING_DEANSHIP,
    EVENT_PENDING_FACULTY_LEADER,
    EVENT_REJECTED_CLUB_LEADER,
    EVENT_REJECTED_DEAN,
    EVENT_REJECTED_DEANSHIP,
    EVENT_REJECTED_FACULTY_LEADER,
    Event,
)
from univibe.models.org import College, Community
from univibe.services.membership_service import find_approver

logger = logging.getLogger(__name__)


class StageScope(str, Enum):
    COMMUNITY = "community"
    COLLEGE = "college"
    GLOBAL = "global"


class ApprovalStage(str, Enum):
    """One position in the approval chain.  Value is the approver role."""

    CLUB_LEADER = ROLE_CLUB_LEADER
    FACULTY_LEADER = ROLE_FACULTY_LEADER
    DEAN_OF_FACULTY = ROLE_DEAN_OF_FACULTY
    DEANSHIP = ROLE_DEANSHIP

    @property
    def role(self) -> str:
        return self.value

    @property
    def scope(self) -> StageScope:
        return _STAGE_META[self]["scope"]

    @property
    def position(self) -> int:
        return _STAGE_META[self]["position"]

    @property
    def pending_status(self) -> str:
        return _STAGE_META[self]["pending"]

    @property
    def rejected_status(self) -> str:
        return _STAGE_META[self]["rejected"]

    @property
    def reason_field(self) -> str:
        return _STAGE_META[self]["reason_field"]


_STAGE_META = {
    ApprovalStage.CLUB_LEADER: {
        "scope": StageScope.COMMUNITY,
        "position": 1,
        "pending": EVENT_PENDING_CLUB_LEADER,
        "rejected": EVENT_REJECTED_CLUB_LEADER,
        "reason_field": "club_leader_rejection_reason",
    },
    ApprovalStage.FACULTY_LEADER: {
        "scope": StageScope.COLLEGE,
        "position": 2,
        "pending": EVENT_PENDING_FACULTY_LEADER,
        "rejected": EVENT_REJECTED_FACULTY_LEADER,
        "reason_field": "faculty_leader_rejection_reason",
    },
    ApprovalStage.DEAN_OF_FACULTY: {
        "scope": StageScope.COLLEGE,
        "position": 3,
        "pending": EVENT_PENDING_DEAN,
        "rejected": EVENT_REJECTED_DEAN,
        "reason_field": "dean_rejection_reason",
    },
    ApprovalStage.DEANSHIP: {
        "scope": StageScope.GLOBAL,
        "position": 4,
        "pending": EVENT_PENDING_DEANSHIP,
        "rejected": EVENT_REJECTED_DEANSHIP,
        "reason_field": "deanship_rejection_reason",
    },
}

_STAGE_BY_PENDING = {meta["pending"]: stage for stage, meta in _STAGE_META.items()}

FULL_CHAIN = sorted(ApprovalStage, key=lambda s: s.position)


def stage_for_status(status: str) -> ApprovalStage | None:
    """Stage whose pending status is ``status`` (None for non-pending statuses)."""
    return _STAGE_BY_PENDING.get(status)


# ── College resolution ───────────────────────────────────────────────────────


def resolve_event_college(event: Event) -> int:
    """
    Return the college id that scopes this event's approvals.

    Community events use the community's current college, never the
    event's stored copy.  Independent events use event.college_id.

    Raises:
        UnresolvedCollegeError: no college can be determined.
    """
    if event.community_id is not None:
        community = event.community
        if community is None or community.college_id is None:
            raise UnresolvedCollegeError(event.id, event.community_id)
        return community.college_id
    if event.college_id is None:
        raise UnresolvedCollegeError(event.id)
    return event.college_id


# ── Chain ────────────────────────────────────────────────────────────────────


def resolve_chain(event: Event) -> list[ApprovalStage]:
    """Ordered stages for ``event``.  Raises UnresolvedCollegeError first."""
    resolve_event_college(event)
    if event.community_id is not None:
        return list(FULL_CHAIN)
    return [s for s in FULL_CHAIN if s.scope is not StageScope.COMMUNITY]


def resolve_chain_roles(event: Event) -> list[str]:
    return [stage.role for stage in resolve_chain(event)]


def resolve_stage_approver(event: Event, stage: ApprovalStage) -> User | None:
    """
    Resolve the approver for one stage.

    Returns None when the stage is blocked.  AmbiguousApproverError
    propagates.
    """
    if stage.scope is StageScope.COMMUNITY:
        community = event.community
        if community is None:
            return None
        leader = community.club_leader
        if leader is None or not leader.is_active:
            return None
        return leader
    if stage.scope is StageScope.COLLEGE:
        return find_approver(stage.role, resolve_event_college(event))
    return find_approver(stage.role, None)


def current_stage(event: Event) -> ApprovalStage | None:
    return stage_for_status(event.status)


def current_approver(event: Event) -> User | None:
    stage = current_stage(event)
    if stage is None:
        return None
    return resolve_stage_approver(event, stage)


def next_stage(event: Event, stage: ApprovalStage) -> ApprovalStage | None:
    """Stage after ``stage`` in this event's chain, or None when exhausted."""
    chain = resolve_chain(event)
    idx = chain.index(stage)
    if idx + 1 < len(chain):
        return chain[idx + 1]
    return None


def describe_chain(event: Event) -> list[dict]:
    """
    Chain with the resolved approver per stage, for display.

    Ambiguous stages are reported instead of raised.
    """
    current = current_stage(event)
    rows = []
    for stage in resolve_chain(event):
        row = {
            "stage": stage.name,
            "role": stage.role,
            "position": stage.position,
            "scope": stage.scope.value,
            "current": stage is current,
            "approver_id": None,
            "status": "ok",
        }
        try:
            approver = resolve_stage_approver(event, stage)
        except AmbiguousApproverError as e:
            row["status"] = "ambiguous"
            row["candidate_ids"] = e.user_ids
        else:
            if approver is None:
                row["status"] = "blocked"
            else:
                row["approver_id"] = approver.id
        rows.append(row)
    return rows


def chain_overview(event: Event) -> dict:
    """
    Read-only view of the event's chain.

    An unresolvable college is reported as ``blocked`` with no stages
    rather than raised; only transitions refuse to proceed.
    """
    stage = current_stage(event)
    overview = {
        "event_id": event.id,
        "status": event.status,
        "current_stage": stage.name if stage else None,
        "college_id": None,
        "chain_status": "ok",
        "blocked_reason": None,
        "stages": [],
    }
    try:
        overview["college_id"] = resolve_event_college(event)
    except UnresolvedCollegeError as e:
        overview["chain_status"] = "blocked"
        overview["blocked_reason"] = (
            "unassigned community" if e.community_id is not None else "no college"
        )
        return overview
    overview["stages"] = describe_chain(event)
    return overview


# ── Coverage report ──────────────────────────────────────────────────────────


def _role_status(role: str, college_id: int | None) -> dict:
    try:
        user = find_approver(role, college_id)
    except AmbiguousApproverError as e:
        logger.error("Ambiguous approver: %s", e, extra={"college_id": college_id})
        return {"status": "ambiguous", "user_ids": e.user_ids}
    if user is None:
        return {"status": "missing", "user_ids": []}
    return {"status": "ok", "user_ids": [user.id]}


def approver_coverage() -> dict:
    """
    Report which approver roles are missing or ambiguous.

    Reporting only; nothing is repaired.

    Returns:
        {"colleges": [{college_id, code, faculty_leader, dean}],
         "deanship": {status, user_ids},
         "unassigned_communities": [{id, name}],
         "leaderless_communities": [{id, name}],
         "ok": bool}
    """
    colleges = []
    for college in College.query.order_by(College.code).all():
        colleges.append({
            "college_id": college.id,
            "code": college.code,
            "faculty_leader": _role_status(ROLE_FACULTY_LEADER, college.id),
            "dean": _role_status(ROLE_DEAN_OF_FACULTY, college.id),
        })
    deanship = _role_status(ROLE_DEANSHIP, None)

    unassigned = (
        Community.query.filter(Community.college_id.is_(None))
        .order_by(Community.name).all()
    )
    leaderless = (
        Community.query.filter(Community.club_leader_id.is_(None))
        .order_by(Community.name).all()
    )

    ok = (
        deanship["status"] == "ok"
        and not unassigned
        and not leaderless
        and all(
            c["faculty_leader"]["status"] == "ok" and c["dean"]["status"] == "ok"
            for c in colleges
        )
    )
    return {
        "colleges": colleges,
        "deanship": deanship,
        "unassigned_communities": [{"id": c.id, "name": c.name} for c in unassigned],
        "leaderless_communities": [{"id": c.id, "name": c.name} for c in leaderless],
        "ok": ok,
    }
