"""
Engine-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
(see ``app.blueprints.register_error_handlers``) and get consistent HTTP
status codes everywhere.

Every exception carries a ``details`` dict with enough context (field,
current state, expected state) to explain the rejection. Internal
identifiers beyond what the caller supplied are never added.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Phase", resource_id=42)
    raise ValidationError("hours must be between 0.25 and 24", details={"field": "hours"})
"""


class EngineError(Exception):
    """Base class for every business-rule failure raised by the services."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(EngineError):
    """Malformed or out-of-range input (hours, percentages, required text).

    Maps to HTTP 400.
    """


class PreconditionError(EngineError):
    """Well-formed input that violates a business rule.

    Example: a manual progress override for an engineer with no logged work.
    Maps to HTTP 422.
    """


class InvalidTransitionError(EngineError):
    """Phase state machine violation.

    Args:
        action: The transition that was attempted (``start``, ``grant_early_access``…).
        current: The state the phase is actually in.
        expected: The state(s) the transition requires.
    """

    def __init__(
        self,
        action: str,
        current: str,
        expected: str | list[str] | tuple[str, ...],
        reason: str | None = None,
    ) -> None:
        if not isinstance(expected, str):
            expected = " | ".join(expected)
        self.action = action
        self.current = current
        self.expected = expected
        msg = f"Cannot {action.replace('_', ' ')}: status is '{current}', expected '{expected}'"
        if reason:
            msg += f" ({reason})"
        super().__init__(
            msg,
            details={"action": action, "current_state": current, "expected_state": expected},
        )


class NotFoundError(EngineError):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Phase", "Payment").
        resource_id: The key that was looked up (already known to the caller).
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg, details={"resource": resource})


class ConflictError(EngineError):
    """Ledger aggregation reached a state that cannot exist.

    Example: a negative derived paid amount. Maps to HTTP 409.
    """


class PermissionDenied(EngineError):
    """Principal lacks the role an operation requires. Maps to HTTP 403."""


class EarlyAccessStateError(InvalidTransitionError, PreconditionError):
    """Early-access sub-state machine violation.

    Catchable both as a state-machine violation and as an unmet business
    precondition; rendered as HTTP 409 like other transition failures.
    """
