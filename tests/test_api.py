"""
HTTP API tests.

Tests cover:
  - Identity header handling (401 / 403)
  - Exception → status / code mapping
  - Event workflow end to end over HTTP, including stale versions
  - Study-space reservations
  - Admin job endpoints, coverage report, audit trail
  - Notifications and health endpoints
"""

from datetime import date, timedelta

from univibe.models.auth import ROLE_FACULTY_LEADER, ROLE_STUDENT
from univibe.services import (
    directory_service,
    event_lifecycle,
    membership_service,
    reservation_service,
)


def _create_ieee_event(client, campus, auth_headers, **extra):
    body = {"title": "Robotics Night", "community_id": campus.ieee.id, **extra}
    res = client.post("/api/v1/events", json=body, headers=auth_headers(campus.leader))
    assert res.status_code == 201
    return res.get_json()


# ═════════════════════════════════════════════════════════════════════════
# IDENTITY & ERROR MAPPING
# ═════════════════════════════════════════════════════════════════════════

class TestIdentity:
    def test_missing_header_is_401(self, client, campus):
        res = client.post("/api/v1/events", json={"title": "x"})
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHENTICATED"

    def test_inactive_user_is_401(self, client, campus, auth_headers):
        membership_service.deactivate_user(campus.student.id)
        res = client.get("/api/v1/approvals/pending", headers=auth_headers(campus.student))
        assert res.status_code == 401

    def test_non_admin_is_403(self, client, campus, auth_headers):
        res = client.post("/api/v1/colleges", json={"code": "MED", "name": "Medicine"},
                          headers=auth_headers(campus.student))
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"


class TestErrorMapping:
    def test_not_found(self, client):
        res = client.get("/api/v1/events/999")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_validation(self, client, campus, auth_headers):
        res = client.post("/api/v1/events", json={"title": ""}, headers=auth_headers(campus.leader))
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_BUSINESS_RULE"

    def test_duplicate_college(self, client, campus, auth_headers):
        res = client.post("/api/v1/colleges", json={"code": "ENG", "name": "Again"},
                          headers=auth_headers(campus.admin))
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"

    def test_unresolved_college(self, client, campus, auth_headers):
        res = client.post("/api/v1/events", json={"title": "Picnic"},
                          headers=auth_headers(campus.student))
        event_id = res.get_json()["id"]
        res = client.post(f"/api/v1/events/{event_id}/submit", headers=auth_headers(campus.student))
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_UNRESOLVED_COLLEGE"

    def test_ambiguous_approver_is_server_error(self, client, campus, auth_headers):
        membership_service.create_user("fl2.eng@uni.edu", ROLE_FACULTY_LEADER,
                                       college_id=campus.eng.id)
        event = _create_ieee_event(client, campus, auth_headers)
        client.post(f"/api/v1/events/{event['id']}/submit", headers=auth_headers(campus.leader))
        res = client.post(f"/api/v1/events/{event['id']}/approve",
                          headers=auth_headers(campus.leader))
        assert res.status_code == 500
        assert res.get_json()["code"] == "ERR_AMBIGUOUS_APPROVER"

    def test_unknown_route_json_404(self, client):
        res = client.get("/api/v1/nowhere")
        assert res.status_code == 404
        assert "error" in res.get_json()


# ═════════════════════════════════════════════════════════════════════════
# EVENT WORKFLOW
# ═════════════════════════════════════════════════════════════════════════

class TestEventWorkflow:
    def test_full_chain_over_http(self, client, campus, auth_headers):
        event = _create_ieee_event(client, campus, auth_headers)
        assert event["status"] == "DRAFT"
        assert event["college_id"] == campus.eng.id
        assert event["capacity"] == 100

        res = client.post(f"/api/v1/events/{event['id']}/submit", json={"version": event["version"]},
                          headers=auth_headers(campus.leader))
        assert res.get_json()["status"] == "PENDING_CLUB_LEADER"

        for approver in (campus.leader, campus.fl_eng, campus.dean_eng, campus.deanship):
            res = client.post(f"/api/v1/events/{event['id']}/approve",
                              headers=auth_headers(approver))
            assert res.status_code == 200

        assert res.get_json()["status"] == "APPROVED"

    def test_wrong_approver_is_403(self, client, campus, auth_headers):
        event = _create_ieee_event(client, campus, auth_headers)
        client.post(f"/api/v1/events/{event['id']}/submit", headers=auth_headers(campus.leader))
        res = client.post(f"/api/v1/events/{event['id']}/approve",
                          headers=auth_headers(campus.fl_law))
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_INVALID_ROLE"

    def test_stale_version_is_409(self, client, campus, auth_headers):
        event = _create_ieee_event(client, campus, auth_headers)
        client.post(f"/api/v1/events/{event['id']}/submit", headers=auth_headers(campus.leader))
        res = client.post(f"/api/v1/events/{event['id']}/approve", json={"version": event["version"]},
                          headers=auth_headers(campus.leader))
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_STALE_STATE"

    def test_reject_requires_reason(self, client, campus, auth_headers):
        event = _create_ieee_event(client, campus, auth_headers)
        client.post(f"/api/v1/events/{event['id']}/submit", headers=auth_headers(campus.leader))

        res = client.post(f"/api/v1/events/{event['id']}/reject", json={},
                          headers=auth_headers(campus.leader))
        assert res.status_code == 400

        res = client.post(f"/api/v1/events/{event['id']}/reject", json={"reason": "Budget"},
                          headers=auth_headers(campus.leader))
        body = res.get_json()
        assert body["status"] == "REJECTED_CLUB_LEADER"
        assert body["club_leader_rejection_reason"] == "Budget"

    def test_reject_terminal_then_approve_is_409(self, client, campus, auth_headers):
        event = _create_ieee_event(client, campus, auth_headers)
        client.post(f"/api/v1/events/{event['id']}/submit", headers=auth_headers(campus.leader))
        client.post(f"/api/v1/events/{event['id']}/reject", json={"reason": "No"},
                    headers=auth_headers(campus.leader))
        res = client.post(f"/api/v1/events/{event['id']}/approve",
                          headers=auth_headers(campus.leader))
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_STATE"

    def test_approval_chain_view(self, client, campus, auth_headers):
        event = _create_ieee_event(client, campus, auth_headers)
        client.post(f"/api/v1/events/{event['id']}/submit", headers=auth_headers(campus.leader))
        body = client.get(f"/api/v1/events/{event['id']}/approval-chain").get_json()
        assert body["current_stage"] == "CLUB_LEADER"
        assert [s["stage"] for s in body["stages"]] == [
            "CLUB_LEADER", "FACULTY_LEADER", "DEAN_OF_FACULTY", "DEANSHIP",
        ]
        assert body["stages"][1]["approver_id"] == campus.fl_eng.id
        assert body["chain_status"] == "ok"
        assert body["college_id"] == campus.eng.id

    def test_approval_chain_view_for_unassigned_community(self, client, campus):
        chess = directory_service.create_community("Chess", created_by=campus.leader.id)
        event = event_lifecycle.create_event(campus.leader.id, "Blitz Night", community_id=chess.id)

        res = client.get(f"/api/v1/events/{event.id}/approval-chain")

        assert res.status_code == 200
        body = res.get_json()
        assert body["college_id"] is None
        assert body["stages"] == []
        assert body["chain_status"] == "blocked"
        assert body["blocked_reason"] == "unassigned community"

    def test_pending_queue(self, client, campus, auth_headers):
        event = _create_ieee_event(client, campus, auth_headers)
        client.post(f"/api/v1/events/{event['id']}/submit", headers=auth_headers(campus.leader))
        res = client.get("/api/v1/approvals/pending", headers=auth_headers(campus.leader))
        assert [e["id"] for e in res.get_json()] == [event["id"]]

    def test_list_filters_by_status(self, client, campus, auth_headers):
        _create_ieee_event(client, campus, auth_headers)
        body = client.get("/api/v1/events?status=DRAFT").get_json()
        assert body["total"] == 1
        assert client.get("/api/v1/events?status=APPROVED").get_json()["total"] == 0

    def test_registration_over_http(self, client, campus, auth_headers):
        event = _create_ieee_event(client, campus, auth_headers, capacity=1)
        client.post(f"/api/v1/events/{event['id']}/submit", headers=auth_headers(campus.leader))
        for approver in (campus.leader, campus.fl_eng, campus.dean_eng, campus.deanship):
            client.post(f"/api/v1/events/{event['id']}/approve", headers=auth_headers(approver))

        res = client.post(f"/api/v1/events/{event['id']}/registrations",
                          headers=auth_headers(campus.student))
        assert res.status_code == 201
        attendance = client.get(f"/api/v1/events/{event['id']}/attendance").get_json()
        assert attendance["registered"] == 1
        assert attendance["available"] == 0

    def test_saved_events_over_http(self, client, campus, auth_headers):
        event = _create_ieee_event(client, campus, auth_headers)
        url = f"/api/v1/events/{event['id']}/save"
        headers = auth_headers(campus.student)

        assert client.post(url, headers=headers).status_code == 409
        client.post(f"/api/v1/events/{event['id']}/submit", headers=auth_headers(campus.leader))
        for approver in (campus.leader, campus.fl_eng, campus.dean_eng, campus.deanship):
            client.post(f"/api/v1/events/{event['id']}/approve", headers=auth_headers(approver))

        assert client.post(url, headers=headers).status_code == 201
        assert client.get(url, headers=headers).get_json()["is_saved"] is True
        mine = client.get("/api/v1/saved-events/mine", headers=headers).get_json()
        assert [s["event"]["title"] for s in mine] == ["Robotics Night"]

        assert client.delete(url, headers=headers).status_code == 200
        assert client.delete(url, headers=headers).status_code == 404
        assert client.get(url, headers=headers).get_json()["is_saved"] is False


# ═════════════════════════════════════════════════════════════════════════
# ORGANISATION
# ═════════════════════════════════════════════════════════════════════════

class TestOrganisation:
    def test_link_community(self, client, campus, auth_headers):
        res = client.put(f"/api/v1/communities/{campus.ieee.id}/college",
                         json={"college_id": campus.law.id}, headers=auth_headers(campus.admin))
        assert res.status_code == 200
        assert res.get_json()["outcome"] == "relinked"

    def test_unassigned_listing(self, client, campus, auth_headers):
        client.post("/api/v1/communities", json={"name": "Chess"},
                    headers=auth_headers(campus.leader))
        names = [c["name"] for c in client.get("/api/v1/communities?unassigned=1").get_json()]
        assert names == ["Chess"]

    def test_application_flow(self, client, campus, auth_headers):
        res = client.post(f"/api/v1/communities/{campus.ieee.id}/applications",
                          json={"motivation": "Robots"}, headers=auth_headers(campus.student))
        assert res.status_code == 201
        application_id = res.get_json()["id"]

        res = client.post(f"/api/v1/communities/{campus.ieee.id}/applications", json={},
                          headers=auth_headers(campus.student))
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_DUPLICATE_APPLICATION"

        res = client.post(f"/api/v1/applications/{application_id}/decide",
                          json={"approve": True}, headers=auth_headers(campus.leader))
        assert res.get_json()["status"] == "APPROVED"


# ═════════════════════════════════════════════════════════════════════════
# STUDY SPACES
# ═════════════════════════════════════════════════════════════════════════

class TestStudySpaces:
    def test_reservation_capacity_over_http(self, client, campus, auth_headers):
        res = client.post("/api/v1/study-spaces", json={"name": "Room 1", "capacity": 1},
                          headers=auth_headers(campus.admin))
        assert res.status_code == 201
        space_id = res.get_json()["id"]
        day = (date.today() + timedelta(days=1)).isoformat()

        res = client.post(f"/api/v1/study-spaces/{space_id}/reservations", json={"date": day},
                          headers=auth_headers(campus.student))
        assert res.status_code == 201
        reservation_id = res.get_json()["id"]

        res = client.post(f"/api/v1/study-spaces/{space_id}/reservations", json={"date": day},
                          headers=auth_headers(campus.student))
        assert res.get_json()["code"] == "ERR_DUPLICATE_RESERVATION"

        classmate = membership_service.create_user("classmate@uni.edu", ROLE_STUDENT)
        res = client.post(f"/api/v1/study-spaces/{space_id}/reservations", json={"date": day},
                          headers=auth_headers(classmate))
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CAPACITY_EXCEEDED"

        res = client.post(f"/api/v1/reservations/{reservation_id}/cancel",
                          headers=auth_headers(campus.student))
        assert res.get_json()["status"] == "CANCELLED"

        avail = client.get(f"/api/v1/study-spaces/{space_id}/availability?date={day}").get_json()
        assert avail["available"] == 1

    def test_staff_cannot_reserve(self, client, campus, auth_headers):
        space = reservation_service.create_study_space("Room 1", capacity=1)
        day = (date.today() + timedelta(days=1)).isoformat()
        res = client.post(f"/api/v1/study-spaces/{space.id}/reservations", json={"date": day},
                          headers=auth_headers(campus.dean_eng))
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_INVALID_ROLE"

    def test_bad_date(self, client, campus, auth_headers):
        space = reservation_service.create_study_space("Room 1", capacity=1)
        res = client.post(f"/api/v1/study-spaces/{space.id}/reservations",
                          json={"date": "tomorrow"}, headers=auth_headers(campus.student))
        assert res.status_code == 422

    def test_my_reservations(self, client, campus, auth_headers):
        space = reservation_service.create_study_space("Room 1", capacity=2)
        day = date.today() + timedelta(days=2)
        reservation_service.create_reservation(campus.student.id, space.id, day)
        res = client.get("/api/v1/reservations/mine", headers=auth_headers(campus.student))
        assert [r["date"] for r in res.get_json()] == [day.isoformat()]


# ═════════════════════════════════════════════════════════════════════════
# ADMIN, NOTIFICATIONS, HEALTH
# ═════════════════════════════════════════════════════════════════════════

class TestAdmin:
    def test_run_job(self, client, campus, auth_headers):
        from univibe.services.scheduler_service import SchedulerService

        SchedulerService.ensure_jobs_registered()
        res = client.post("/api/v1/admin/jobs/reconcile_event_colleges/run",
                          headers=auth_headers(campus.admin))
        assert res.status_code == 200
        assert res.get_json()["status"] == "success"

    def test_unknown_job_404(self, client, campus, auth_headers):
        res = client.post("/api/v1/admin/jobs/make_coffee/run", headers=auth_headers(campus.admin))
        assert res.status_code == 404

    def test_jobs_require_admin(self, client, campus, auth_headers):
        res = client.get("/api/v1/admin/jobs", headers=auth_headers(campus.deanship))
        assert res.status_code == 403

    def test_coverage(self, client, campus, auth_headers):
        body = client.get("/api/v1/admin/approver-coverage",
                          headers=auth_headers(campus.admin)).get_json()
        assert body["ok"] is True

    def test_audit_trail(self, client, campus, auth_headers):
        event = _create_ieee_event(client, campus, auth_headers)
        client.post(f"/api/v1/events/{event['id']}/submit", headers=auth_headers(campus.leader))
        rows = client.get(f"/api/v1/admin/audit/event/{event['id']}",
                          headers=auth_headers(campus.admin)).get_json()
        assert [r["action"] for r in rows] == ["event.create", "event.submit"]


class TestNotifications:
    def test_mine_and_mark_read(self, client, campus, auth_headers):
        event = _create_ieee_event(client, campus, auth_headers)
        client.post(f"/api/v1/events/{event['id']}/submit", headers=auth_headers(campus.leader))

        body = client.get("/api/v1/notifications/mine?unread=1",
                          headers=auth_headers(campus.leader)).get_json()
        assert body["total"] == 1

        res = client.post("/api/v1/notifications/mark-all-read", headers=auth_headers(campus.leader))
        assert res.get_json()["marked"] == 1


class TestHealth:
    def test_live(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        assert res.get_json()["checks"]["database"]["status"] == "ok"

    def test_ready(self, client):
        assert client.get("/api/v1/health/ready").status_code == 200
