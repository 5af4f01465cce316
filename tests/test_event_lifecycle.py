"""
Event lifecycle tests.

Tests cover:
  - Creation: capacity defaulting, college derivation, validation
  - Draft edits (creator only, drafts only)
  - Submit: college re-derivation, chain entry, unresolved colleges, clashes
  - Approve / reject: identity-matched approvers, terminal rejections
  - Stage with no approver stays pending until one is assigned
  - Cancel permissions
  - Optimistic concurrency (expected_version, concurrent writers)
  - Approval queues
  - Maintenance: college reconciliation and capacity backfill
"""

from datetime import datetime

import pytest
from sqlalchemy import text

from univibe.core.exceptions import (
    AmbiguousApproverError,
    ConflictError,
    InvalidRoleError,
    InvalidTransitionError,
    NotFoundError,
    StaleStateError,
    UnresolvedCollegeError,
    ValidationError,
)
from univibe.models import db as _db
from univibe.models.audit import AuditLog
from univibe.models.auth import ROLE_DEAN_OF_FACULTY, ROLE_FACULTY_LEADER
from univibe.models.event import (
    EVENT_APPROVED,
    EVENT_CANCELLED,
    EVENT_DRAFT,
    EVENT_PENDING_CLUB_LEADER,
    EVENT_PENDING_DEAN,
    EVENT_PENDING_DEANSHIP,
    EVENT_PENDING_FACULTY_LEADER,
    EVENT_REJECTED_FACULTY_LEADER,
    PENDING_STATUSES,
    Event,
)
from univibe.models.notification import Notification
from univibe.services import approval_chain, directory_service, event_lifecycle, membership_service


def _ieee_event(campus, **kw):
    return event_lifecycle.create_event(campus.leader.id, "Robotics Night",
                                        community_id=campus.ieee.id, **kw)


def _approve_through(event_id):
    """Approve with whoever the chain resolves to until the event leaves PENDING."""
    event = event_lifecycle.get_event(event_id)
    while event.status in PENDING_STATUSES:
        approver = approval_chain.current_approver(event)
        event = event_lifecycle.approve(event.id, approver)
    return event


# ═════════════════════════════════════════════════════════════════════════
# CREATE / UPDATE
# ═════════════════════════════════════════════════════════════════════════

class TestCreate:
    def test_community_event_takes_community_college(self, campus):
        event = _ieee_event(campus)
        assert event.status == EVENT_DRAFT
        assert event.college_id == campus.eng.id
        assert event.version_id == 1

    def test_capacity_defaults_from_college(self, campus):
        directory_service.set_college_capacity(campus.eng.id, 250)
        assert _ieee_event(campus).capacity == 250

    def test_capacity_falls_back_to_platform_default(self, campus):
        event = event_lifecycle.create_event(campus.student.id, "Picnic")
        assert event.capacity == 100

    def test_explicit_capacity_kept(self, campus):
        directory_service.set_college_capacity(campus.eng.id, 250)
        assert _ieee_event(campus, capacity=40).capacity == 40

    def test_mismatched_college_rejected(self, campus):
        with pytest.raises(ValidationError):
            _ieee_event(campus, college_id=campus.law.id)

    def test_end_before_start_rejected(self, campus):
        with pytest.raises(ValidationError):
            _ieee_event(campus, start_at=datetime(2026, 5, 1, 18), end_at=datetime(2026, 5, 1, 17))

    def test_blank_title_rejected(self, campus):
        with pytest.raises(ValidationError):
            event_lifecycle.create_event(campus.leader.id, "  ")

    def test_unknown_community(self, campus):
        with pytest.raises(NotFoundError):
            event_lifecycle.create_event(campus.leader.id, "Ghost", community_id=404)

    def test_create_is_audited(self, campus):
        event = _ieee_event(campus)
        assert AuditLog.query.filter_by(entity_id=str(event.id), action="event.create").count() == 1


class TestUpdate:
    def test_creator_edits_draft(self, campus):
        event = _ieee_event(campus)
        updated = event_lifecycle.update_event(event.id, campus.leader, title="Robotics Night II",
                                               location="Hall A")
        assert updated.title == "Robotics Night II"
        assert updated.version_id == 2

    def test_other_user_cannot_edit(self, campus):
        event = _ieee_event(campus)
        with pytest.raises(InvalidRoleError):
            event_lifecycle.update_event(event.id, campus.student, title="Hijacked")

    def test_submitted_event_is_frozen(self, campus):
        event = _ieee_event(campus)
        event_lifecycle.submit(event.id, campus.leader)
        with pytest.raises(InvalidTransitionError):
            event_lifecycle.update_event(event.id, campus.leader, title="Late edit")

    def test_unknown_field_rejected(self, campus):
        event = _ieee_event(campus)
        with pytest.raises(ValidationError):
            event_lifecycle.update_event(event.id, campus.leader, status=EVENT_APPROVED)


# ═════════════════════════════════════════════════════════════════════════
# SUBMIT / APPROVE / REJECT
# ═════════════════════════════════════════════════════════════════════════

class TestSubmit:
    def test_submit_rederives_college(self, campus):
        event = _ieee_event(campus)
        event.college_id = campus.law.id
        _db.session.commit()

        submitted = event_lifecycle.submit(event.id, campus.leader)

        assert submitted.status == EVENT_PENDING_CLUB_LEADER
        assert submitted.college_id == campus.eng.id
        assert submitted.submitted_at is not None

    def test_submit_notifies_first_approver(self, campus):
        event = _ieee_event(campus)
        event_lifecycle.submit(event.id, campus.leader)
        assert Notification.query.filter_by(recipient_id=campus.leader.id,
                                             entity_id=event.id).count() == 1

    def test_independent_event_enters_at_faculty_leader(self, campus):
        event = event_lifecycle.create_event(campus.student.id, "Study Jam",
                                             college_id=campus.law.id)
        assert event_lifecycle.submit(event.id, campus.student).status == EVENT_PENDING_FACULTY_LEADER

    def test_only_creator_submits(self, campus):
        event = _ieee_event(campus)
        with pytest.raises(InvalidRoleError):
            event_lifecycle.submit(event.id, campus.admin)

    def test_unassigned_community_cannot_submit(self, campus):
        chess = directory_service.create_community("Chess", created_by=campus.leader.id)
        event = event_lifecycle.create_event(campus.leader.id, "Blitz", community_id=chess.id)
        with pytest.raises(UnresolvedCollegeError):
            event_lifecycle.submit(event.id, campus.leader)
        assert event_lifecycle.get_event(event.id).status == EVENT_DRAFT

    def test_double_submit_rejected(self, campus):
        event = _ieee_event(campus)
        event_lifecycle.submit(event.id, campus.leader)
        with pytest.raises(InvalidTransitionError):
            event_lifecycle.submit(event.id, campus.leader)

    def test_schedule_clash_with_approved_event(self, campus):
        window = {"location": "Hall A", "start_at": datetime(2026, 5, 1, 18),
                  "end_at": datetime(2026, 5, 1, 20)}
        first = _ieee_event(campus, **window)
        event_lifecycle.submit(first.id, campus.leader)
        _approve_through(first.id)

        second = event_lifecycle.create_event(
            campus.student.id, "Moot Court", college_id=campus.law.id,
            location="Hall A", start_at=datetime(2026, 5, 1, 19), end_at=datetime(2026, 5, 1, 21),
        )
        with pytest.raises(ConflictError):
            event_lifecycle.submit(second.id, campus.student)


class TestApprovalFlow:
    def test_ieee_event_walks_full_chain(self, campus):
        event = _ieee_event(campus)
        event_lifecycle.submit(event.id, campus.leader)

        event = event_lifecycle.approve(event.id, campus.leader)
        assert event.status == EVENT_PENDING_FACULTY_LEADER
        event = event_lifecycle.approve(event.id, campus.fl_eng)
        assert event.status == EVENT_PENDING_DEAN
        event = event_lifecycle.approve(event.id, campus.dean_eng)
        assert event.status == EVENT_PENDING_DEANSHIP
        event = event_lifecycle.approve(event.id, campus.deanship)

        assert event.status == EVENT_APPROVED
        assert event.approved_at is not None
        assert Notification.query.filter_by(recipient_id=campus.leader.id,
                                             title="Event approved: Robotics Night").count() == 1

    def test_other_college_approver_rejected(self, campus):
        event = _ieee_event(campus)
        event_lifecycle.submit(event.id, campus.leader)
        event_lifecycle.approve(event.id, campus.leader)
        with pytest.raises(InvalidRoleError):
            event_lifecycle.approve(event.id, campus.fl_law)
        assert event_lifecycle.get_event(event.id).status == EVENT_PENDING_FACULTY_LEADER

    def test_higher_role_cannot_skip_ahead(self, campus):
        event = _ieee_event(campus)
        event_lifecycle.submit(event.id, campus.leader)
        with pytest.raises(InvalidRoleError):
            event_lifecycle.approve(event.id, campus.dean_eng)

    def test_draft_cannot_be_approved(self, campus):
        event = _ieee_event(campus)
        with pytest.raises(InvalidTransitionError):
            event_lifecycle.approve(event.id, campus.leader)

    def test_ambiguous_approver_blocks_transition(self, campus):
        membership_service.create_user("fl2.eng@uni.edu", ROLE_FACULTY_LEADER,
                                       college_id=campus.eng.id)
        event = _ieee_event(campus)
        event_lifecycle.submit(event.id, campus.leader)
        with pytest.raises(AmbiguousApproverError):
            event_lifecycle.approve(event.id, campus.leader)
        assert event_lifecycle.get_event(event.id).status == EVENT_PENDING_CLUB_LEADER

    def test_missing_dean_waits_until_assigned(self, campus):
        med = directory_service.create_college("MED", "Medicine")
        fl_med = membership_service.create_user("fl.med@uni.edu", ROLE_FACULTY_LEADER,
                                                college_id=med.id)
        event = event_lifecycle.create_event(campus.student.id, "Health Fair", college_id=med.id)
        event_lifecycle.submit(event.id, campus.student)
        event = event_lifecycle.approve(event.id, fl_med)
        assert event.status == EVENT_PENDING_DEAN

        with pytest.raises(InvalidRoleError):
            event_lifecycle.approve(event.id, campus.dean_eng)
        assert event_lifecycle.get_event(event.id).status == EVENT_PENDING_DEAN

        dean_med = membership_service.create_user("dean.med@uni.edu", ROLE_DEAN_OF_FACULTY,
                                                  college_id=med.id)
        assert event_lifecycle.approve(event.id, dean_med).status == EVENT_PENDING_DEANSHIP


class TestReject:
    def test_reject_records_stage_reason(self, campus):
        event = _ieee_event(campus)
        event_lifecycle.submit(event.id, campus.leader)
        event_lifecycle.approve(event.id, campus.leader)

        event = event_lifecycle.reject(event.id, campus.fl_eng, "Clashes with exams")

        assert event.status == EVENT_REJECTED_FACULTY_LEADER
        assert event.faculty_leader_rejection_reason == "Clashes with exams"
        assert event.dean_rejection_reason is None

    def test_rejection_is_terminal(self, campus):
        event = _ieee_event(campus)
        event_lifecycle.submit(event.id, campus.leader)
        event_lifecycle.reject(event.id, campus.leader, "Not this term")
        with pytest.raises(InvalidTransitionError):
            event_lifecycle.approve(event.id, campus.leader)
        with pytest.raises(InvalidTransitionError):
            event_lifecycle.cancel(event.id, campus.leader)

    def test_reason_required(self, campus):
        event = _ieee_event(campus)
        event_lifecycle.submit(event.id, campus.leader)
        with pytest.raises(ValidationError):
            event_lifecycle.reject(event.id, campus.leader, "   ")

    def test_only_current_approver_rejects(self, campus):
        event = _ieee_event(campus)
        event_lifecycle.submit(event.id, campus.leader)
        with pytest.raises(InvalidRoleError):
            event_lifecycle.reject(event.id, campus.fl_eng, "No")


# ═════════════════════════════════════════════════════════════════════════
# CANCEL
# ═════════════════════════════════════════════════════════════════════════

class TestCancel:
    def test_creator_cancels_pending(self, campus):
        event = _ieee_event(campus)
        event_lifecycle.submit(event.id, campus.leader)
        event = event_lifecycle.cancel(event.id, campus.leader)
        assert event.status == EVENT_CANCELLED
        assert event.cancelled_by == campus.leader.id

    def test_admin_cancels_draft(self, campus):
        event = _ieee_event(campus)
        assert event_lifecycle.cancel(event.id, campus.admin).status == EVENT_CANCELLED

    def test_approver_cannot_cancel_draft(self, campus):
        event = _ieee_event(campus)
        with pytest.raises(InvalidRoleError):
            event_lifecycle.cancel(event.id, campus.fl_eng)

    def test_higher_rank_same_college_cancels(self, campus):
        event = _ieee_event(campus)
        event_lifecycle.submit(event.id, campus.leader)
        event_lifecycle.approve(event.id, campus.leader)
        event = event_lifecycle.cancel(event.id, campus.dean_eng)
        assert event.status == EVENT_CANCELLED
        assert Notification.query.filter_by(recipient_id=campus.leader.id,
                                             title="Event cancelled: Robotics Night").count() == 1

    def test_equal_rank_cannot_cancel(self, campus):
        event = _ieee_event(campus)
        event_lifecycle.submit(event.id, campus.leader)
        event_lifecycle.approve(event.id, campus.leader)
        with pytest.raises(InvalidRoleError):
            event_lifecycle.cancel(event.id, campus.fl_eng)

    def test_other_college_cannot_cancel(self, campus):
        event = _ieee_event(campus)
        event_lifecycle.submit(event.id, campus.leader)
        event_lifecycle.approve(event.id, campus.leader)
        with pytest.raises(InvalidRoleError):
            event_lifecycle.cancel(event.id, campus.dean_law)

    def test_deanship_cancels_anywhere(self, campus):
        event = _ieee_event(campus)
        event_lifecycle.submit(event.id, campus.leader)
        assert event_lifecycle.cancel(event.id, campus.deanship).status == EVENT_CANCELLED

    def test_approved_event_cannot_be_cancelled(self, campus):
        event = _ieee_event(campus)
        event_lifecycle.submit(event.id, campus.leader)
        _approve_through(event.id)
        with pytest.raises(InvalidTransitionError):
            event_lifecycle.cancel(event.id, campus.leader)


# ═════════════════════════════════════════════════════════════════════════
# CONCURRENCY
# ═════════════════════════════════════════════════════════════════════════

class TestOptimisticConcurrency:
    def test_expected_version_mismatch(self, campus):
        event = _ieee_event(campus)
        event_lifecycle.submit(event.id, campus.leader)
        with pytest.raises(StaleStateError):
            event_lifecycle.approve(event.id, campus.leader, expected_version=1)

    def test_expected_version_match(self, campus):
        event = _ieee_event(campus)
        event_lifecycle.submit(event.id, campus.leader, expected_version=1)
        event = event_lifecycle.approve(event.id, campus.leader, expected_version=2)
        assert event.version_id == 3

    def test_concurrent_writer_detected(self, campus):
        event = _ieee_event(campus)
        event_lifecycle.submit(event.id, campus.leader)
        loaded = event_lifecycle.get_event(event.id)
        assert loaded.version_id == 2

        # Another writer moves the row without this session noticing.
        _db.session.execute(
            text("UPDATE events SET version_id = version_id + 1 WHERE id = :id"),
            {"id": event.id},
        )

        with pytest.raises(StaleStateError):
            event_lifecycle.approve(event.id, campus.leader)
        assert event_lifecycle.get_event(event.id).status == EVENT_PENDING_CLUB_LEADER


# ═════════════════════════════════════════════════════════════════════════
# QUERIES & MAINTENANCE
# ═════════════════════════════════════════════════════════════════════════

class TestPendingApprovals:
    def test_queue_follows_the_event(self, campus):
        event = _ieee_event(campus)
        event_lifecycle.submit(event.id, campus.leader)
        assert [e.id for e in event_lifecycle.pending_approvals_for(campus.leader)] == [event.id]
        assert event_lifecycle.pending_approvals_for(campus.fl_eng) == []

        event_lifecycle.approve(event.id, campus.leader)
        assert [e.id for e in event_lifecycle.pending_approvals_for(campus.fl_eng)] == [event.id]
        assert event_lifecycle.pending_approvals_for(campus.fl_law) == []

    def test_student_has_no_queue(self, campus):
        assert event_lifecycle.pending_approvals_for(campus.student) == []

    def test_admin_member_leading_club_sees_queue(self, campus):
        membership_service.add_member(campus.ieee.id, campus.student.id, role="admin")
        membership_service.set_club_leader(campus.ieee.id, campus.student.id)
        event = _ieee_event(campus)
        event_lifecycle.submit(event.id, campus.leader)

        assert approval_chain.current_approver(event).id == campus.student.id
        assert [e.id for e in event_lifecycle.pending_approvals_for(campus.student)] == [event.id]
        assert event_lifecycle.pending_approvals_for(campus.leader) == []

    def test_faculty_leader_also_leading_club(self, campus):
        acm = directory_service.create_community("ACM", created_by=campus.fl_eng.id,
                                                 college_id=campus.eng.id)
        membership_service.add_member(acm.id, campus.fl_eng.id, role="admin")
        membership_service.set_club_leader(acm.id, campus.fl_eng.id)
        event = event_lifecycle.create_event(campus.fl_eng.id, "Hack Night", community_id=acm.id)
        event_lifecycle.submit(event.id, campus.fl_eng)

        assert [e.id for e in event_lifecycle.pending_approvals_for(campus.fl_eng)] == [event.id]
        event_lifecycle.approve(event.id, campus.fl_eng)
        assert event.status == EVENT_PENDING_FACULTY_LEADER
        assert [e.id for e in event_lifecycle.pending_approvals_for(campus.fl_eng)] == [event.id]


class TestReconcile:
    def test_relinked_community_events_corrected(self, campus):
        event = _ieee_event(campus)
        directory_service.link_community_to_college(campus.ieee.id, campus.law.id)

        summary = event_lifecycle.reconcile_event_colleges()

        assert summary["checked"] == 1
        assert summary["corrected"] == 1
        assert summary["affected_ids"] == [event.id]
        refreshed = event_lifecycle.get_event(event.id)
        assert refreshed.college_id == campus.law.id
        assert refreshed.version_id == 2
        assert AuditLog.query.filter_by(action="event.reconcile_college").count() == 1

    def test_second_run_changes_nothing(self, campus):
        _ieee_event(campus)
        directory_service.link_community_to_college(campus.ieee.id, campus.law.id)
        event_lifecycle.reconcile_event_colleges()
        summary = event_lifecycle.reconcile_event_colleges()
        assert summary["corrected"] == 0
        assert summary["affected_ids"] == []

    def test_dry_run_writes_nothing(self, campus):
        event = _ieee_event(campus)
        directory_service.link_community_to_college(campus.ieee.id, campus.law.id)

        summary = event_lifecycle.reconcile_event_colleges(apply=False)
        _db.session.expire_all()

        assert summary["corrected"] == 1
        assert summary["applied"] is False
        assert event_lifecycle.get_event(event.id).college_id == campus.eng.id

    def test_unassigned_community_skipped(self, campus):
        chess = directory_service.create_community("Chess", created_by=campus.leader.id)
        event_lifecycle.create_event(campus.leader.id, "Blitz", community_id=chess.id)
        summary = event_lifecycle.reconcile_event_colleges()
        assert summary["skipped_unassigned"] == 1
        assert summary["corrected"] == 0

    def test_independent_events_untouched(self, campus):
        event_lifecycle.create_event(campus.student.id, "Study Jam", college_id=campus.law.id)
        assert event_lifecycle.reconcile_event_colleges()["checked"] == 0


class TestBackfillCapacities:
    def _clear_capacity(self, event_id):
        Event.query.filter_by(id=event_id).update({"capacity": None})
        _db.session.commit()

    def test_null_capacities_defaulted(self, campus):
        directory_service.set_college_capacity(campus.eng.id, 250)
        ieee_event = _ieee_event(campus)
        picnic = event_lifecycle.create_event(campus.student.id, "Picnic")
        self._clear_capacity(ieee_event.id)
        self._clear_capacity(picnic.id)

        summary = event_lifecycle.backfill_event_capacities()

        assert summary["updated"] == 2
        assert event_lifecycle.get_event(ieee_event.id).capacity == 250
        assert event_lifecycle.get_event(picnic.id).capacity == 100

    def test_set_capacities_never_overwritten(self, campus):
        event = _ieee_event(campus, capacity=40)
        summary = event_lifecycle.backfill_event_capacities()
        assert summary["checked"] == 0
        assert event_lifecycle.get_event(event.id).capacity == 40
