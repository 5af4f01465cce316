"""
Platform-wide exception hierarchy.

Every service raises these types; the application registers one error
handler per type and gets consistent HTTP status codes everywhere.

Usage:
    from univibe.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Event", resource_id=42)
    raise ValidationError("Title is required", details={"title": "..."})

Domain taxonomy (approval engine):
    UnresolvedCollegeError    no college determinable, blocks submission
    AmbiguousApproverError    >1 active holder of a scoped approver role
    InvalidRoleError          actor lacks the role / identity for the action
    InvalidTransitionError    action not allowed from the current status
    StaleStateError           optimistic-concurrency loss
    CapacityExceededError     no seats / places left
    DuplicateReservationError second ACTIVE reservation for space/date
    DuplicateApplicationError second open application for a community
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "Event", "College").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    The data was well-formed but violated a business rule
    (e.g. missing college for a faculty leader, end before start).

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would create a duplicate unique constraint violation.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class UnresolvedCollegeError(ValidationError):
    """No college can be determined for an event; submission is blocked."""

    def __init__(self, event_id: int | None, community_id: int | None = None) -> None:
        self.event_id = event_id
        self.community_id = community_id
        if community_id is not None:
            msg = f"Community id={community_id} is not assigned to a college"
        else:
            msg = "Event has neither a community nor a college"
        super().__init__(msg, details={"event_id": event_id, "community_id": community_id})


class InvalidTransitionError(ValidationError):
    """Raised when a lifecycle action is not valid for the current status."""

    def __init__(self, entity: str, entity_id, action: str, current: str,
                 reason: str | None = None) -> None:
        self.entity = entity
        self.entity_id = entity_id
        self.action = action
        self.current_status = current
        msg = f"Cannot '{action}' {entity} id={entity_id} (status={current})"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, details={"action": action, "status": current})


class AmbiguousApproverError(Exception):
    """More than one active user holds a scoped approver role.

    Operational misconfiguration: reported, never resolved by picking one.
    """

    def __init__(self, role: str, college_id: int | None, user_ids: list[int]) -> None:
        self.role = role
        self.college_id = college_id
        self.user_ids = user_ids
        scope = f"college id={college_id}" if college_id is not None else "global scope"
        super().__init__(
            f"{len(user_ids)} active users hold {role} for {scope}: {user_ids}"
        )


class InvalidRoleError(Exception):
    """The acting user lacks the role or identity required for the action."""

    def __init__(self, message: str, user_id: int | None = None,
                 required: str | None = None) -> None:
        self.user_id = user_id
        self.required = required
        super().__init__(message)


class StaleStateError(Exception):
    """A concurrent writer modified the record first; the caller must reload."""

    def __init__(self, resource: str, resource_id, expected_version=None,
                 actual_version=None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        msg = f"{resource} id={resource_id} was modified concurrently"
        if expected_version is not None:
            msg += f" (expected version {expected_version}, found {actual_version})"
        super().__init__(msg)


class CapacityExceededError(Exception):
    """No capacity left for the requested reservation or registration."""

    def __init__(self, resource: str, resource_id, capacity: int) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.capacity = capacity
        super().__init__(f"{resource} id={resource_id} is at full capacity ({capacity})")


class DuplicateReservationError(ConflictError):
    """The student already holds an ACTIVE reservation for this space and date."""

    def __init__(self, student_id: int, space_id: int, day) -> None:
        self.student_id = student_id
        self.space_id = space_id
        self.day = day
        super().__init__("Reservation", "student/space/date", f"{student_id}/{space_id}/{day}")


class DuplicateApplicationError(ConflictError):
    """An open or accepted application already exists for this user and community."""

    def __init__(self, user_id: int, community_id: int, status: str) -> None:
        self.user_id = user_id
        self.community_id = community_id
        self.status = status
        super().__init__("Application", "user/community", f"{user_id}/{community_id}")
