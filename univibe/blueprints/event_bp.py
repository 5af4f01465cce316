"""
Event Blueprint.

Event CRUD, approval workflow actions, attendee registration and saved events.

Every mutating action accepts an optional ``version`` in the JSON body;
when given, the action fails with 409 ERR_STALE_STATE if the event has
moved on since the client last read it.
"""

import logging

from flask import Blueprint, g, jsonify, request

from univibe.blueprints import optional_int, paginate_query, parse_datetime
from univibe.middleware.identity import require_user
from univibe.services import approval_chain, event_lifecycle, registration_service
from univibe.utils.errors import E, api_error

logger = logging.getLogger(__name__)

event_bp = Blueprint("event_bp", __name__, url_prefix="/api/v1")


def _expected_version(data):
    return optional_int(data, "version")


# ═══════════════════════════════════════════════════════════════════════════
#  EVENTS
# ═══════════════════════════════════════════════════════════════════════════

@event_bp.route("/events", methods=["POST"])
@require_user
def create_event():
    data = request.get_json(silent=True) or {}
    event = event_lifecycle.create_event(
        g.current_user.id,
        data.get("title", ""),
        community_id=optional_int(data, "community_id"),
        college_id=optional_int(data, "college_id"),
        capacity=optional_int(data, "capacity"),
        description=data.get("description", ""),
        location=data.get("location"),
        start_at=parse_datetime(data.get("start_at"), "start_at"),
        end_at=parse_datetime(data.get("end_at"), "end_at"),
    )
    return jsonify(event.to_dict()), 201


@event_bp.route("/events", methods=["GET"])
def list_events():
    q = event_lifecycle.list_events(
        status=request.args.get("status"),
        community_id=request.args.get("community_id", type=int),
        college_id=request.args.get("college_id", type=int),
    )
    items, total = paginate_query(q)
    return jsonify({"items": [e.to_dict() for e in items], "total": total})


@event_bp.route("/events/<int:event_id>", methods=["GET"])
def get_event(event_id):
    return jsonify(event_lifecycle.get_event(event_id).to_dict())


@event_bp.route("/events/<int:event_id>", methods=["PATCH"])
@require_user
def update_event(event_id):
    data = request.get_json(silent=True) or {}
    fields = {k: data[k] for k in event_lifecycle.UPDATABLE_FIELDS if k in data}
    for key in ("start_at", "end_at"):
        if key in fields:
            fields[key] = parse_datetime(fields[key], key)
    if "capacity" in fields:
        fields["capacity"] = optional_int(fields, "capacity")
    event = event_lifecycle.update_event(
        event_id, g.current_user, expected_version=_expected_version(data), **fields,
    )
    return jsonify(event.to_dict())


# ═══════════════════════════════════════════════════════════════════════════
#  WORKFLOW ACTIONS
# ═══════════════════════════════════════════════════════════════════════════

@event_bp.route("/events/<int:event_id>/submit", methods=["POST"])
@require_user
def submit_event(event_id):
    data = request.get_json(silent=True) or {}
    event = event_lifecycle.submit(event_id, g.current_user,
                                   expected_version=_expected_version(data))
    return jsonify(event.to_dict())


@event_bp.route("/events/<int:event_id>/approve", methods=["POST"])
@require_user
def approve_event(event_id):
    data = request.get_json(silent=True) or {}
    event = event_lifecycle.approve(event_id, g.current_user,
                                    expected_version=_expected_version(data))
    return jsonify(event.to_dict())


@event_bp.route("/events/<int:event_id>/reject", methods=["POST"])
@require_user
def reject_event(event_id):
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip()
    if not reason:
        return api_error(E.VALIDATION_REQUIRED, "reason is required")
    event = event_lifecycle.reject(event_id, g.current_user, reason,
                                   expected_version=_expected_version(data))
    return jsonify(event.to_dict())


@event_bp.route("/events/<int:event_id>/cancel", methods=["POST"])
@require_user
def cancel_event(event_id):
    data = request.get_json(silent=True) or {}
    event = event_lifecycle.cancel(event_id, g.current_user,
                                   expected_version=_expected_version(data))
    return jsonify(event.to_dict())


@event_bp.route("/events/<int:event_id>/approval-chain", methods=["GET"])
def get_approval_chain(event_id):
    event = event_lifecycle.get_event(event_id)
    return jsonify(approval_chain.chain_overview(event))


@event_bp.route("/approvals/pending", methods=["GET"])
@require_user
def pending_approvals():
    events = event_lifecycle.pending_approvals_for(g.current_user)
    return jsonify([e.to_dict() for e in events])


# ═══════════════════════════════════════════════════════════════════════════
#  REGISTRATIONS
# ═══════════════════════════════════════════════════════════════════════════

@event_bp.route("/events/<int:event_id>/registrations", methods=["POST"])
@require_user
def register(event_id):
    registration = registration_service.register_for_event(event_id, g.current_user.id)
    return jsonify(registration.to_dict()), 201


@event_bp.route("/events/<int:event_id>/registrations", methods=["DELETE"])
@require_user
def unregister(event_id):
    registration_service.unregister_from_event(event_id, g.current_user.id)
    return jsonify({"deleted": True, "event_id": event_id})


@event_bp.route("/events/<int:event_id>/attendance", methods=["GET"])
def attendance(event_id):
    return jsonify(registration_service.event_attendance(event_id))


# ═══════════════════════════════════════════════════════════════════════════
#  SAVED EVENTS
# ═══════════════════════════════════════════════════════════════════════════

@event_bp.route("/events/<int:event_id>/save", methods=["POST"])
@require_user
def save_event(event_id):
    saved = registration_service.save_event(event_id, g.current_user.id)
    return jsonify(saved.to_dict()), 201


@event_bp.route("/events/<int:event_id>/save", methods=["DELETE"])
@require_user
def unsave_event(event_id):
    registration_service.unsave_event(event_id, g.current_user.id)
    return jsonify({"deleted": True, "event_id": event_id})


@event_bp.route("/events/<int:event_id>/save", methods=["GET"])
@require_user
def saved_status(event_id):
    return jsonify({"event_id": event_id,
                    "is_saved": registration_service.is_saved(event_id, g.current_user.id)})


@event_bp.route("/saved-events/mine", methods=["GET"])
@require_user
def my_saved_events():
    saved = registration_service.list_saved_events(g.current_user.id)
    return jsonify([s.to_dict(with_event=True) for s in saved])
