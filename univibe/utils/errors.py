"""JSON error responses.

Views return ``api_error(E.NOT_FOUND, "Event not found")`` for request
problems they detect themselves.  Everything raised by the services
(``univibe.core.exceptions``) is mapped once, in
``register_error_handlers``, so views never catch domain errors.

Body shape: ``{"error": <message>, "code": <E.*>, "details"?: {...}}``.
"""

from __future__ import annotations

import logging

from flask import jsonify, request

from univibe.core import exceptions as exc
from univibe.models import db

logger = logging.getLogger(__name__)


class E:
    """Machine-readable error codes."""

    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    BUSINESS_RULE = "ERR_BUSINESS_RULE"
    UNRESOLVED_COLLEGE = "ERR_UNRESOLVED_COLLEGE"

    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"
    FORBIDDEN = "ERR_FORBIDDEN"
    INVALID_ROLE = "ERR_INVALID_ROLE"

    NOT_FOUND = "ERR_NOT_FOUND"

    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    STALE_STATE = "ERR_STALE_STATE"
    CAPACITY_EXCEEDED = "ERR_CAPACITY_EXCEEDED"
    DUPLICATE_RESERVATION = "ERR_DUPLICATE_RESERVATION"
    DUPLICATE_APPLICATION = "ERR_DUPLICATE_APPLICATION"

    AMBIGUOUS_APPROVER = "ERR_AMBIGUOUS_APPROVER"
    INTERNAL = "ERR_INTERNAL"


_STATUS_BY_CODE: dict[str, int] = {}
for _status, _codes in {
    400: (E.VALIDATION_REQUIRED, E.VALIDATION_INVALID),
    401: (E.UNAUTHENTICATED,),
    403: (E.FORBIDDEN, E.INVALID_ROLE),
    404: (E.NOT_FOUND,),
    409: (E.CONFLICT_DUPLICATE, E.CONFLICT_STATE, E.STALE_STATE, E.CAPACITY_EXCEEDED,
          E.DUPLICATE_RESERVATION, E.DUPLICATE_APPLICATION),
    422: (E.BUSINESS_RULE, E.UNRESOLVED_COLLEGE),
    # misconfigured approver data is the operator's problem, not the caller's
    500: (E.AMBIGUOUS_APPROVER, E.INTERNAL),
}.items():
    _STATUS_BY_CODE.update(dict.fromkeys(_codes, _status))


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """``(response, status)`` for a Flask view; status defaults from ``code``, else 400."""
    body = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or _STATUS_BY_CODE.get(code, 400)


# Checked in order, so subclasses come before their bases.
_EXCEPTION_CODES: list[tuple[type[Exception], str]] = [
    (exc.UnresolvedCollegeError, E.UNRESOLVED_COLLEGE),
    (exc.InvalidTransitionError, E.CONFLICT_STATE),
    (exc.ValidationError, E.BUSINESS_RULE),
    (exc.DuplicateReservationError, E.DUPLICATE_RESERVATION),
    (exc.DuplicateApplicationError, E.DUPLICATE_APPLICATION),
    (exc.ConflictError, E.CONFLICT_DUPLICATE),
    (exc.NotFoundError, E.NOT_FOUND),
    (exc.InvalidRoleError, E.INVALID_ROLE),
    (exc.StaleStateError, E.STALE_STATE),
    (exc.CapacityExceededError, E.CAPACITY_EXCEEDED),
    (exc.AmbiguousApproverError, E.AMBIGUOUS_APPROVER),
]


def code_for(error: Exception) -> str:
    return next((code for exc_type, code in _EXCEPTION_CODES if isinstance(error, exc_type)),
                E.INTERNAL)


def register_error_handlers(app) -> None:
    """Roll back the session and answer with the mapped code for any domain error."""

    def _handle(error: Exception):
        db.session.rollback()
        code = code_for(error)
        if code == E.AMBIGUOUS_APPROVER:
            logger.error("Approver misconfiguration on %s: %s", request.path, error)
        else:
            logger.info("%s on %s: %s", code, request.path, error)
        return api_error(code, str(error), details=getattr(error, "details", None) or None)

    for exc_type, _ in _EXCEPTION_CODES:
        app.register_error_handler(exc_type, _handle)
