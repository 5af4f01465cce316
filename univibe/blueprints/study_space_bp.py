"""
Study Space Blueprint.

Endpoints (prefix /api/v1):
    POST /study-spaces                              ADMIN
    GET  /study-spaces
    GET  /study-spaces/<id>/availability?date=YYYY-MM-DD
    POST /study-spaces/<id>/reservations            rate limited
    POST /reservations/<id>/cancel
    GET  /reservations/mine[?status=]
"""

import logging
from datetime import date

from flask import Blueprint, current_app, g, jsonify, request

from univibe import limiter
from univibe.blueprints import optional_int, parse_date
from univibe.middleware.identity import require_role, require_user
from univibe.models.auth import ROLE_ADMIN
from univibe.models.study_space import StudySpace
from univibe.services import reservation_service
from univibe.utils.errors import E, api_error

logger = logging.getLogger(__name__)

study_space_bp = Blueprint("study_space_bp", __name__, url_prefix="/api/v1")


def _reservation_limit():
    return current_app.config.get("RESERVATION_RATE_LIMIT", "30/minute")


@study_space_bp.route("/study-spaces", methods=["POST"])
@require_role(ROLE_ADMIN)
def create_space():
    data = request.get_json(silent=True) or {}
    capacity = optional_int(data, "capacity")
    if capacity is None:
        return api_error(E.VALIDATION_REQUIRED, "capacity is required")
    space = reservation_service.create_study_space(
        data.get("name", ""), capacity, location=data.get("location"),
    )
    return jsonify(space.to_dict()), 201


@study_space_bp.route("/study-spaces", methods=["GET"])
def list_spaces():
    spaces = StudySpace.query.filter_by(is_active=True).order_by(StudySpace.name).all()
    return jsonify([s.to_dict() for s in spaces])


@study_space_bp.route("/study-spaces/<int:space_id>/availability", methods=["GET"])
def availability(space_id):
    raw = request.args.get("date")
    day = parse_date(raw, "date") if raw else date.today()
    return jsonify(reservation_service.space_availability(space_id, day))


@study_space_bp.route("/study-spaces/<int:space_id>/reservations", methods=["POST"])
@limiter.limit(_reservation_limit)
@require_user
def reserve(space_id):
    data = request.get_json(silent=True) or {}
    if not data.get("date"):
        return api_error(E.VALIDATION_REQUIRED, "date is required")
    reservation = reservation_service.create_reservation(
        g.current_user.id, space_id, parse_date(data["date"], "date"),
    )
    return jsonify(reservation.to_dict()), 201


@study_space_bp.route("/reservations/<int:reservation_id>/cancel", methods=["POST"])
@require_user
def cancel(reservation_id):
    reservation = reservation_service.cancel_reservation(reservation_id, g.current_user)
    return jsonify(reservation.to_dict())


@study_space_bp.route("/reservations/mine", methods=["GET"])
@require_user
def my_reservations():
    items = reservation_service.list_reservations(
        g.current_user.id, status=request.args.get("status"),
    )
    return jsonify([r.to_dict() for r in items])

