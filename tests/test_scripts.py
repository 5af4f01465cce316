import importlib
from datetime import date, timedelta

from univibe.models import db as _db
from univibe.models.auth import ROLE_STUDENT
from univibe.models.study_space import RESERVATION_ACTIVE, StudySpaceReservation
from univibe.services import directory_service, event_lifecycle, membership_service, reservation_service


def test_link_dry_run_does_not_persist(campus):
    chess = directory_service.create_community("Chess", created_by=campus.leader.id)

    mod = importlib.import_module("scripts.link_communities_to_colleges")
    result = mod.link_communities({"Chess": "law", "IEEE": "ENG"}, apply=False)

    assert result["processed"] == 2
    assert result["would_link"] == 1
    assert result["verified"] == 1
    _db.session.expire_all()
    assert directory_service.get_community(chess.id).college_id is None


def test_link_apply_is_idempotent(campus):
    directory_service.create_community("Chess", created_by=campus.leader.id)
    mod = importlib.import_module("scripts.link_communities_to_colleges")

    first = mod.link_communities({"Chess": "LAW", "IEEE": "LAW"}, apply=True)
    assert first["linked"] == 1
    assert first["relinked"] == 1
    assert first["errors"] == 0

    second = mod.link_communities({"Chess": "LAW", "IEEE": "LAW"}, apply=True)
    assert second["verified"] == 2
    assert second["linked"] == 0


def test_link_reports_unknown_names(campus):
    mod = importlib.import_module("scripts.link_communities_to_colleges")
    result = mod.link_communities({"Nope": "ENG", "IEEE": "XYZ"}, apply=True)
    assert result["errors"] == 2
    assert len(result["error_details"]) == 2


def test_reconcile_script_dry_run_then_apply(campus):
    event = event_lifecycle.create_event(campus.leader.id, "Robotics", community_id=campus.ieee.id)
    directory_service.link_community_to_college(campus.ieee.id, campus.law.id)
    mod = importlib.import_module("scripts.reconcile_event_colleges")

    planned = mod.run(apply=False)
    _db.session.expire_all()
    assert planned["affected_ids"] == [event.id]
    assert event_lifecycle.get_event(event.id).college_id == campus.eng.id

    applied = mod.run(apply=True)
    assert applied["corrected"] == 1
    assert event_lifecycle.get_event(event.id).college_id == campus.law.id
    assert mod.run(apply=True)["corrected"] == 0


def test_expire_script_dry_run_then_apply():
    today = date(2026, 3, 10)
    yesterday = today - timedelta(days=1)
    student = membership_service.create_user("s@uni.edu", ROLE_STUDENT)
    space = reservation_service.create_study_space("Room 1", capacity=2)
    reservation = reservation_service.create_reservation(student.id, space.id, yesterday,
                                                         today=yesterday)
    mod = importlib.import_module("scripts.expire_reservations")

    planned = mod.run(today=today, apply=False)
    assert planned["affected_ids"] == [reservation.id]
    assert _db.session.get(StudySpaceReservation, reservation.id).status == RESERVATION_ACTIVE

    applied = mod.run(today=today, apply=True)
    assert applied["count"] == 1
    assert mod.run(today=today, apply=True)["count"] == 0


def test_coverage_script(campus):
    mod = importlib.import_module("scripts.check_approver_coverage")
    assert mod.run()["ok"] is True

    directory_service.create_college("MED", "Medicine")
    assert mod.run()["ok"] is False
