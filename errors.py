"""
Exception hierarchy for the gate pass portal.

Every failure a user action can hit is one of these; the HTTP layer maps
them to status codes once, and each action site decides how to present it.

    ValidationError      -> 422  (bad input, nothing mutated)
    InvalidTransition    -> 409  (status or screen does not permit the action)
    NotFound             -> 404
    ProviderUnavailable  -> advisory only, never an HTTP error
    PersistenceFailure   -> logged, in-memory state kept
"""


class GatePassError(Exception):
    """Base class for all portal errors."""


class ValidationError(GatePassError):
    """Raised when a required field is missing or malformed.

    Args:
        message: Human-readable explanation shown next to the input.
        field: Name of the offending field, if there is one.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class InvalidTransition(GatePassError):
    """Raised when an action is attempted from a state that does not allow it."""

    def __init__(self, action: str, current: str, reason: str | None = None) -> None:
        msg = f"Cannot '{action}' from {current}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
        self.action = action
        self.current = current
        self.reason = reason


class RoleNotPermitted(InvalidTransition):
    """Raised when the active role is not offered the action."""

    def __init__(self, action: str, role: str | None) -> None:
        super().__init__(action, f"role={role or 'none'}", "action not available to this role")
        self.role = role


class NotFound(GatePassError):
    def __init__(self, resource: str, resource_id: str) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} id={resource_id} not found")


class ProviderUnavailable(GatePassError):
    """Raised by the place suggestion client.

    ``quota_exceeded`` separates a sticky quota exhaustion from a transient
    failure that the next keystroke may retry.
    """

    def __init__(self, message: str, quota_exceeded: bool = False) -> None:
        self.quota_exceeded = quota_exceeded
        super().__init__(message)


class PersistenceFailure(GatePassError):
    """Raised by storage adapters when the blob cannot be read or written."""
