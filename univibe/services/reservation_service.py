"""
Study-Space Reservation Ledger.

Day-granular seat reservations with capacity enforcement.

Rules:
    - ACTIVE reservations for (space, date) never exceed space.capacity.
    - At most one ACTIVE reservation per (student, space, date); the
      partial unique index uq_reservation_active_student_space_date backs
      this under concurrency.
    - create_reservation checks and inserts in one transaction while
      holding a row lock on the space (SELECT ... FOR UPDATE on dialects
      that support it; SQLite serialises writers anyway).
    - expire_stale() moves past ACTIVE reservations to COMPLETED in one
      guarded UPDATE.  Running it twice for the same day changes nothing.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from univibe.core.exceptions import (
    CapacityExceededError,
    ConflictError,
    DuplicateReservationError,
    InvalidRoleError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from univibe.models import db
from univibe.models.audit import write_audit
from univibe.models.auth import ROLE_STUDENT, User
from univibe.models.study_space import (
    RESERVATION_ACTIVE,
    RESERVATION_CANCELLED,
    RESERVATION_COMPLETED,
    RESERVATION_STATUSES,
    StudySpace,
    StudySpaceReservation,
)

logger = logging.getLogger(__name__)


def _as_day(value) -> date:
    """Truncate datetimes to their calendar day."""
    if isinstance(value, datetime):
        return value.date()
    return value


# ── Spaces ───────────────────────────────────────────────────────────────────


def create_study_space(name: str, capacity: int, location: str | None = None) -> StudySpace:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    if not isinstance(capacity, int) or isinstance(capacity, bool) or capacity <= 0:
        raise ValidationError("capacity must be a positive integer",
                              details={"capacity": capacity})
    if StudySpace.query.filter_by(name=name).first():
        raise ConflictError(resource="StudySpace", field="name", value=name)

    space = StudySpace(name=name, capacity=capacity, location=location)
    db.session.add(space)
    db.session.commit()
    return space


def get_study_space(space_id: int) -> StudySpace:
    space = db.session.get(StudySpace, space_id)
    if space is None:
        raise NotFoundError(resource="StudySpace", resource_id=space_id)
    return space


def _active_count(space_id: int, day: date) -> int:
    return (
        db.session.query(func.count(StudySpaceReservation.id))
        .filter(
            StudySpaceReservation.space_id == space_id,
            StudySpaceReservation.date == day,
            StudySpaceReservation.status == RESERVATION_ACTIVE,
        )
        .scalar()
    ) or 0


def space_availability(space_id: int, day) -> dict:
    """Seat usage for one space on one day."""
    space = get_study_space(space_id)
    day = _as_day(day)
    active = _active_count(space.id, day)
    return {
        "space_id": space.id,
        "date": day.isoformat(),
        "capacity": space.capacity,
        "active": active,
        "available": max(space.capacity - active, 0),
        "percent_full": round(active * 100.0 / space.capacity, 1),
    }


# ── Reservations ─────────────────────────────────────────────────────────────


def create_reservation(student_id: int, space_id: int, day, today=None) -> StudySpaceReservation:
    """
    Reserve one seat in ``space_id`` on ``day`` for ``student_id``.

    Raises:
        NotFoundError, InvalidRoleError (not a student),
        ValidationError (past date / inactive space),
        DuplicateReservationError, CapacityExceededError
    """
    day = _as_day(day)
    today = _as_day(today) or date.today()

    space = (
        db.session.query(StudySpace)
        .filter(StudySpace.id == space_id)
        .with_for_update()
        .first()
    )
    if space is None:
        raise NotFoundError(resource="StudySpace", resource_id=space_id)
    student = db.session.get(User, student_id)
    if student is None:
        raise NotFoundError(resource="User", resource_id=student_id)
    if student.role != ROLE_STUDENT:
        raise InvalidRoleError("Only students can reserve study-space seats",
                               user_id=student.id, required=ROLE_STUDENT)
    if day < today:
        raise ValidationError("Cannot reserve a past date",
                              details={"date": day.isoformat(), "today": today.isoformat()})
    if not space.is_active:
        raise ValidationError(f"Study space {space.name!r} is not active",
                              details={"space_id": space.id})

    duplicate = StudySpaceReservation.query.filter_by(
        student_id=student_id, space_id=space.id, date=day, status=RESERVATION_ACTIVE,
    ).first()
    if duplicate is not None:
        raise DuplicateReservationError(student_id, space.id, day)

    if _active_count(space.id, day) >= space.capacity:
        raise CapacityExceededError("StudySpace", space.id, space.capacity)

    reservation = StudySpaceReservation(
        student_id=student_id, space_id=space.id, date=day, status=RESERVATION_ACTIVE,
    )
    db.session.add(reservation)
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise DuplicateReservationError(student_id, space_id, day) from e

    logger.info("Reservation %s created for space %s on %s", reservation.id, space.id, day,
                extra={"user_id": student_id})
    return reservation


def cancel_reservation(reservation_id: int, actor: User) -> StudySpaceReservation:
    """Cancel the actor's own ACTIVE reservation, freeing its seat."""
    reservation = db.session.get(StudySpaceReservation, reservation_id)
    if reservation is None:
        raise NotFoundError(resource="StudySpaceReservation", resource_id=reservation_id)
    if reservation.student_id != actor.id:
        raise InvalidRoleError("Only the reserving student can cancel a reservation",
                               user_id=actor.id)
    if reservation.status != RESERVATION_ACTIVE:
        raise InvalidTransitionError("StudySpaceReservation", reservation.id, "cancel",
                                     reservation.status)

    reservation.status = RESERVATION_CANCELLED
    reservation.cancelled_at = datetime.now(timezone.utc)
    db.session.commit()
    return reservation


def expire_stale(today=None) -> dict:
    """
    Mark every ACTIVE reservation dated before ``today`` as COMPLETED.

    Returns:
        {"count": int, "affected": [reservation dicts]}
    """
    today = _as_day(today) or date.today()
    candidate_ids = [
        row.id for row in (
            db.session.query(StudySpaceReservation.id)
            .filter(
                StudySpaceReservation.status == RESERVATION_ACTIVE,
                StudySpaceReservation.date < today,
            )
            .all()
        )
    ]
    if not candidate_ids:
        logger.info("Reservation expiry for %s: nothing to do", today)
        return {"count": 0, "affected": []}

    stamp = datetime.now(timezone.utc)
    (
        db.session.query(StudySpaceReservation)
        .filter(
            StudySpaceReservation.id.in_(candidate_ids),
            StudySpaceReservation.status == RESERVATION_ACTIVE,
        )
        .update(
            {"status": RESERVATION_COMPLETED, "completed_at": stamp},
            synchronize_session=False,
        )
    )
    db.session.expire_all()

    # Rows another run completed first carry a different stamp.
    affected = (
        StudySpaceReservation.query
        .filter(
            StudySpaceReservation.id.in_(candidate_ids),
            StudySpaceReservation.status == RESERVATION_COMPLETED,
            StudySpaceReservation.completed_at == stamp,
        )
        .order_by(StudySpaceReservation.id)
        .all()
    )
    for reservation in affected:
        write_audit(entity_type="reservation", entity_id=reservation.id,
                    action="reservation.expire",
                    diff={"status": {"old": RESERVATION_ACTIVE, "new": RESERVATION_COMPLETED}})
    db.session.commit()

    logger.info("Reservation expiry for %s: %d completed", today, len(affected))
    return {"count": len(affected), "affected": [r.to_dict() for r in affected]}


def list_reservations(student_id: int, status: str | None = None) -> list[StudySpaceReservation]:
    if status is not None and status not in RESERVATION_STATUSES:
        raise ValidationError(f"Unknown reservation status: {status}",
                              details={"status": status})
    q = StudySpaceReservation.query.filter_by(student_id=student_id)
    if status:
        q = q.filter_by(status=status)
    return q.order_by(StudySpaceReservation.date.desc(), StudySpaceReservation.id.desc()).all()
