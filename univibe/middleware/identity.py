"""
Acting-user resolution for API routes.

Authentication transport (JWT, SSO, sessions) lives outside this service.
The upstream identity layer forwards the authenticated user's id in the
``X-User-Id`` header; this module turns it into an active ``User`` row.

Usage:
    @bp.route("/events/<int:event_id>/approve", methods=["POST"])
    @require_user
    def approve(event_id):
        actor = g.current_user

    @bp.route("/colleges", methods=["POST"])
    @require_role(ROLE_ADMIN)
    def create_college():
        ...
"""

import functools
import logging

from flask import g, request

from univibe.models import db
from univibe.models.auth import User
from univibe.utils.errors import E, api_error

logger = logging.getLogger(__name__)

USER_HEADER = "X-User-Id"


def _resolve_user() -> User | None:
    raw = request.headers.get(USER_HEADER, "").strip()
    if not raw.isdigit():
        return None
    user = db.session.get(User, int(raw))
    if user is None or not user.is_active:
        return None
    return user


def require_user(f):
    """Decorator: resolve the acting user into ``g.current_user`` or return 401."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        user = _resolve_user()
        if user is None:
            return api_error(E.UNAUTHENTICATED, f"{USER_HEADER} header must name an active user")
        g.current_user = user
        return f(*args, **kwargs)
    return decorated


def require_role(*roles: str):
    """Decorator: like ``require_user`` but the user must hold one of ``roles``."""
    def decorator(f):
        @functools.wraps(f)
        @require_user
        def decorated(*args, **kwargs):
            user = g.current_user
            if user.role not in roles:
                logger.warning(
                    "User %d denied: role %s not in %s on %s",
                    user.id, user.role, sorted(roles), f.__name__,
                )
                return api_error(E.FORBIDDEN, "Permission denied",
                                 details={"required": sorted(roles)})
            return f(*args, **kwargs)
        return decorated
    return decorator
