"""
Phase Progress Engine
Principal type and role guard.

The auth collaborator authenticates the caller; this module turns the
verified token claims into an immutable ``Principal`` once per request
(see ``app.middleware.jwt_auth``) and offers a ``require_role`` decorator
for routes. Services receive the Principal by value and only re-check
business preconditions.

Roles form a closed set:
    engineer       — logs own hours, reads own progress
    supervisor     — lifecycle transitions, overrides, payments
    administrator  — everything a supervisor can do
"""

import functools
import logging
from dataclasses import dataclass

from flask import g

from app.core.exceptions import PermissionDenied
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# ── Roles ────────────────────────────────────────────────────────────────────

ENGINEER = "engineer"
SUPERVISOR = "supervisor"
ADMINISTRATOR = "administrator"

ROLES = frozenset({ENGINEER, SUPERVISOR, ADMINISTRATOR})

# Roles allowed to take supervisor actions
SUPERVISOR_ROLES = frozenset({SUPERVISOR, ADMINISTRATOR})


@dataclass(frozen=True)
class Principal:
    """Authenticated caller, checked once at the boundary."""

    user_id: int
    role: str

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"Unknown role: {self.role!r}")

    @property
    def is_supervisor(self) -> bool:
        return self.role in SUPERVISOR_ROLES

    @property
    def is_engineer(self) -> bool:
        return self.role == ENGINEER


def ensure_supervisor(principal: Principal, action: str) -> None:
    """Raise PermissionDenied unless *principal* holds supervisor authority."""
    if not principal.is_supervisor:
        raise PermissionDenied(
            f"Only supervisors can {action}",
            details={"role": principal.role, "required": sorted(SUPERVISOR_ROLES)},
        )


def current_principal() -> Principal | None:
    """Principal resolved by the JWT middleware for this request, if any."""
    return getattr(g, "principal", None)


def require_role(*roles):
    """
    Route decorator: reject the request unless the caller's role is in *roles*.

    With no arguments any authenticated principal is accepted.

    Usage:
        @bp.route("/phases/<int:phase_id>/submit", methods=["POST"])
        @require_role(SUPERVISOR, ADMINISTRATOR)
        def submit(phase_id): ...
    """
    allowed = frozenset(roles) if roles else ROLES

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            principal = current_principal()
            if principal is None:
                return api_error(E.UNAUTHENTICATED, "Authentication required")
            if principal.role not in allowed:
                logger.info(
                    "Role %s denied for %s", principal.role, fn.__name__,
                    extra={"event_type": "access_denied"},
                )
                return api_error(
                    E.FORBIDDEN,
                    "Insufficient permissions",
                    details={"role": principal.role, "required": sorted(allowed)},
                )
            return fn(*args, **kwargs)

        return wrapper

    return decorator
