"""
Shared pytest fixtures for the UniVibe test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - campus: a small seeded university (colleges, approvers, IEEE community)
    - auth_headers: builds the X-User-Id header for a user
"""

from types import SimpleNamespace

import pytest

from univibe import create_app
from univibe.middleware.identity import USER_HEADER
from univibe.models import db as _db
from univibe.models.auth import (
    ROLE_ADMIN,
    ROLE_CLUB_LEADER,
    ROLE_DEAN_OF_FACULTY,
    ROLE_DEANSHIP,
    ROLE_FACULTY_LEADER,
    ROLE_STUDENT,
)
from univibe.services import directory_service, membership_service


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def auth_headers():
    def _headers(user):
        return {USER_HEADER: str(user.id)}
    return _headers


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def campus():
    """
    Two colleges with a full set of approvers.

    ENG: faculty leader + dean.   LAW: faculty leader + dean.
    One global deanship user.  IEEE community in ENG led by ``leader``.
    """
    eng = directory_service.create_college("eng", "College of Engineering")
    law = directory_service.create_college("LAW", "College of Law")

    admin = membership_service.create_user("admin@uni.edu", ROLE_ADMIN, full_name="Admin")
    student = membership_service.create_user("student@uni.edu", ROLE_STUDENT)
    leader = membership_service.create_user("leader@uni.edu", ROLE_CLUB_LEADER)
    fl_eng = membership_service.create_user("fl.eng@uni.edu", ROLE_FACULTY_LEADER,
                                            college_id=eng.id)
    dean_eng = membership_service.create_user("dean.eng@uni.edu", ROLE_DEAN_OF_FACULTY,
                                              college_id=eng.id)
    fl_law = membership_service.create_user("fl.law@uni.edu", ROLE_FACULTY_LEADER,
                                            college_id=law.id)
    dean_law = membership_service.create_user("dean.law@uni.edu", ROLE_DEAN_OF_FACULTY,
                                              college_id=law.id)
    deanship = membership_service.create_user("deanship@uni.edu", ROLE_DEANSHIP)

    ieee = directory_service.create_community("IEEE", created_by=leader.id, college_id=eng.id)
    membership_service.set_club_leader(ieee.id, leader.id)

    return SimpleNamespace(
        eng=eng, law=law, ieee=ieee,
        admin=admin, student=student, leader=leader,
        fl_eng=fl_eng, dean_eng=dean_eng, fl_law=fl_law, dean_law=dean_law,
        deanship=deanship,
    )
