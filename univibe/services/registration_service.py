"""
Event Registration Service.

Attendee registrations for APPROVED events, capped by Event.capacity,
and saved-event bookmarks.
"""

from __future__ import annotations

import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from univibe.core.exceptions import (
    CapacityExceededError,
    ConflictError,
    InvalidRoleError,
    InvalidTransitionError,
    NotFoundError,
)
from univibe.models import db
from univibe.models.auth import ROLE_STUDENT, User
from univibe.models.event import EVENT_APPROVED, Event, EventRegistration, SavedEvent

logger = logging.getLogger(__name__)


def _registered_count(event_id: int) -> int:
    return (
        db.session.query(func.count(EventRegistration.id))
        .filter(EventRegistration.event_id == event_id)
        .scalar()
    ) or 0


def register_for_event(event_id: int, user_id: int) -> EventRegistration:
    event = (
        db.session.query(Event)
        .filter(Event.id == event_id)
        .with_for_update()
        .first()
    )
    if event is None:
        raise NotFoundError(resource="Event", resource_id=event_id)
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(resource="User", resource_id=user_id)
    if event.status != EVENT_APPROVED:
        raise InvalidTransitionError("Event", event.id, "register", event.status,
                                     reason="registration opens after approval")
    if user.role != ROLE_STUDENT:
        raise InvalidRoleError("Only students can register for events",
                               user_id=user.id, required=ROLE_STUDENT)
    if EventRegistration.query.filter_by(event_id=event.id, user_id=user.id).first():
        raise ConflictError(resource="EventRegistration", field="event/user",
                            value=f"{event.id}/{user.id}")
    if event.capacity is not None and _registered_count(event.id) >= event.capacity:
        raise CapacityExceededError("Event", event.id, event.capacity)

    registration = EventRegistration(event_id=event.id, user_id=user.id)
    db.session.add(registration)
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise ConflictError(resource="EventRegistration", field="event/user",
                            value=f"{event_id}/{user_id}") from e
    logger.info("User %s registered for event %s", user.id, event.id,
                extra={"event_id": event.id, "user_id": user.id})
    return registration


def unregister_from_event(event_id: int, user_id: int) -> None:
    registration = EventRegistration.query.filter_by(event_id=event_id, user_id=user_id).first()
    if registration is None:
        raise NotFoundError(resource="EventRegistration", resource_id=f"{event_id}/{user_id}")
    db.session.delete(registration)
    db.session.commit()


def event_attendance(event_id: int) -> dict:
    event = db.session.get(Event, event_id)
    if event is None:
        raise NotFoundError(resource="Event", resource_id=event_id)
    registered = _registered_count(event.id)
    return {
        "event_id": event.id,
        "capacity": event.capacity,
        "registered": registered,
        "available": None if event.capacity is None else max(event.capacity - registered, 0),
    }


# ── Saved events ─────────────────────────────────────────────────────────────


def save_event(event_id: int, user_id: int) -> SavedEvent:
    """Bookmark an APPROVED event.  Saving twice is a conflict."""
    event = db.session.get(Event, event_id)
    if event is None:
        raise NotFoundError(resource="Event", resource_id=event_id)
    if db.session.get(User, user_id) is None:
        raise NotFoundError(resource="User", resource_id=user_id)
    if event.status != EVENT_APPROVED:
        raise InvalidTransitionError("Event", event.id, "save", event.status,
                                     reason="only approved events can be saved")
    if SavedEvent.query.filter_by(event_id=event.id, user_id=user_id).first():
        raise ConflictError(resource="SavedEvent", field="event/user",
                            value=f"{event.id}/{user_id}")

    saved = SavedEvent(event_id=event.id, user_id=user_id)
    db.session.add(saved)
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise ConflictError(resource="SavedEvent", field="event/user",
                            value=f"{event_id}/{user_id}") from e
    return saved


def unsave_event(event_id: int, user_id: int) -> None:
    saved = SavedEvent.query.filter_by(event_id=event_id, user_id=user_id).first()
    if saved is None:
        raise NotFoundError(resource="SavedEvent", resource_id=f"{event_id}/{user_id}")
    db.session.delete(saved)
    db.session.commit()


def is_saved(event_id: int, user_id: int) -> bool:
    return SavedEvent.query.filter_by(event_id=event_id, user_id=user_id).first() is not None


def list_saved_events(user_id: int) -> list[SavedEvent]:
    """Most recently saved first."""
    return (
        SavedEvent.query
        .filter_by(user_id=user_id)
        .order_by(SavedEvent.saved_at.desc(), SavedEvent.id.desc())
        .all()
    )
