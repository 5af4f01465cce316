"""
Organization Blueprint.

Colleges, communities, memberships, club leadership, join applications
and user accounts.

Endpoints (prefix /api/v1):
    POST   /colleges                              ADMIN
    GET    /colleges
    PATCH  /colleges/<id>                         ADMIN
    POST   /communities
    GET    /communities[?unassigned=1]
    GET    /communities/<id>
    PUT    /communities/<id>/college              ADMIN
    PUT    /communities/<id>/club-leader          ADMIN
    POST   /communities/<id>/members              club leader / ADMIN
    DELETE /communities/<id>/members/<uid>        club leader / ADMIN / self
    POST   /communities/<id>/applications
    POST   /applications/<id>/decide              club leader / ADMIN
    POST   /users                                 ADMIN
    GET    /users/<id>
"""

import logging

from flask import Blueprint, g, jsonify, request

from univibe.blueprints import optional_int
from univibe.middleware.identity import require_role, require_user
from univibe.models.auth import ROLE_ADMIN
from univibe.services import directory_service, membership_service
from univibe.utils.errors import E, api_error

logger = logging.getLogger(__name__)

org_bp = Blueprint("org_bp", __name__, url_prefix="/api/v1")


def _can_manage_members(community) -> bool:
    user = g.current_user
    return user.role == ROLE_ADMIN or community.club_leader_id == user.id


# ═══════════════════════════════════════════════════════════════════════════
#  COLLEGES
# ═══════════════════════════════════════════════════════════════════════════

@org_bp.route("/colleges", methods=["POST"])
@require_role(ROLE_ADMIN)
def create_college():
    data = request.get_json(silent=True) or {}
    college = directory_service.create_college(
        data.get("code", ""), data.get("name", ""), capacity=optional_int(data, "capacity"),
    )
    return jsonify(college.to_dict()), 201


@org_bp.route("/colleges", methods=["GET"])
def list_colleges():
    return jsonify([c.to_dict() for c in directory_service.list_colleges()])


@org_bp.route("/colleges/<int:college_id>", methods=["PATCH"])
@require_role(ROLE_ADMIN)
def update_college(college_id):
    data = request.get_json(silent=True) or {}
    college = directory_service.get_college(college_id)
    if "name" in data:
        college = directory_service.rename_college(college_id, data["name"])
    if "capacity" in data:
        college = directory_service.set_college_capacity(college_id, optional_int(data, "capacity"))
    return jsonify(college.to_dict())


# ═══════════════════════════════════════════════════════════════════════════
#  COMMUNITIES
# ═══════════════════════════════════════════════════════════════════════════

@org_bp.route("/communities", methods=["POST"])
@require_user
def create_community():
    data = request.get_json(silent=True) or {}
    community = directory_service.create_community(
        data.get("name", ""),
        created_by=g.current_user.id,
        college_id=optional_int(data, "college_id"),
        description=data.get("description", ""),
    )
    return jsonify(community.to_dict()), 201


@org_bp.route("/communities", methods=["GET"])
def list_communities():
    from univibe.models.org import Community

    if request.args.get("unassigned") in ("1", "true"):
        communities = directory_service.list_unassigned_communities()
    else:
        communities = Community.query.order_by(Community.name).all()
    return jsonify([c.to_dict() for c in communities])


@org_bp.route("/communities/<int:community_id>", methods=["GET"])
def get_community(community_id):
    return jsonify(directory_service.get_community(community_id).to_dict())


@org_bp.route("/communities/<int:community_id>/college", methods=["PUT"])
@require_role(ROLE_ADMIN)
def link_college(community_id):
    data = request.get_json(silent=True) or {}
    college_id = optional_int(data, "college_id")
    if college_id is None:
        return api_error(E.VALIDATION_REQUIRED, "college_id is required")
    outcome = directory_service.link_community_to_college(
        community_id, college_id, actor=g.current_user,
    )
    return jsonify(outcome)


@org_bp.route("/communities/<int:community_id>/club-leader", methods=["PUT"])
@require_role(ROLE_ADMIN)
def set_club_leader(community_id):
    data = request.get_json(silent=True) or {}
    user_id = optional_int(data, "user_id")
    if user_id is None:
        return api_error(E.VALIDATION_REQUIRED, "user_id is required")
    community = membership_service.set_club_leader(community_id, user_id, actor=g.current_user)
    return jsonify(community.to_dict())


@org_bp.route("/communities/<int:community_id>/members", methods=["POST"])
@require_user
def add_member(community_id):
    community = directory_service.get_community(community_id)
    if not _can_manage_members(community):
        return api_error(E.FORBIDDEN, "Only the club leader or an admin can add members")
    data = request.get_json(silent=True) or {}
    user_id = optional_int(data, "user_id")
    if user_id is None:
        return api_error(E.VALIDATION_REQUIRED, "user_id is required")
    member = membership_service.add_member(community.id, user_id, role=data.get("role", "member"))
    return jsonify(member.to_dict()), 201


@org_bp.route("/communities/<int:community_id>/members/<int:user_id>", methods=["DELETE"])
@require_user
def remove_member(community_id, user_id):
    community = directory_service.get_community(community_id)
    if g.current_user.id != user_id and not _can_manage_members(community):
        return api_error(E.FORBIDDEN, "Only the club leader or an admin can remove members")
    membership_service.remove_member(community.id, user_id)
    return jsonify({"deleted": True, "community_id": community.id, "user_id": user_id})


@org_bp.route("/communities/<int:community_id>/applications", methods=["POST"])
@require_user
def apply(community_id):
    data = request.get_json(silent=True) or {}
    application = membership_service.apply_to_community(
        g.current_user.id, community_id, motivation=data.get("motivation"),
    )
    return jsonify(application.to_dict()), 201


@org_bp.route("/communities/<int:community_id>/applications", methods=["GET"])
@require_user
def list_applications(community_id):
    community = directory_service.get_community(community_id)
    if not _can_manage_members(community):
        return api_error(E.FORBIDDEN, "Only the club leader or an admin can view applications")
    apps = membership_service.list_applications(community.id, status=request.args.get("status"))
    return jsonify([a.to_dict() for a in apps])


@org_bp.route("/applications/<int:application_id>/decide", methods=["POST"])
@require_user
def decide_application(application_id):
    data = request.get_json(silent=True) or {}
    if not isinstance(data.get("approve"), bool):
        return api_error(E.VALIDATION_REQUIRED, "approve (true/false) is required")
    application = membership_service.decide_application(
        application_id, g.current_user, data["approve"], reason=data.get("reason"),
    )
    return jsonify(application.to_dict())


# ═══════════════════════════════════════════════════════════════════════════
#  USERS
# ═══════════════════════════════════════════════════════════════════════════

@org_bp.route("/users", methods=["POST"])
@require_role(ROLE_ADMIN)
def create_user():
    data = request.get_json(silent=True) or {}
    if not data.get("role"):
        return api_error(E.VALIDATION_REQUIRED, "role is required")
    user = membership_service.create_user(
        data.get("email", ""),
        data["role"],
        full_name=data.get("full_name"),
        college_id=optional_int(data, "college_id"),
    )
    return jsonify(user.to_dict()), 201


@org_bp.route("/users/<int:user_id>", methods=["GET"])
@require_user
def get_user(user_id):
    return jsonify(membership_service.get_user(user_id).to_dict())
