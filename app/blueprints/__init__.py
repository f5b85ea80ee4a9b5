"""
Phase Progress Engine
Blueprint registry and shared error handlers.

Every engine blueprint calls ``register_error_handlers(bp)`` once so that
service exceptions map to the same JSON body and HTTP status everywhere:

    ValidationError        → 400 ERR_VALIDATION_INVALID
    PermissionDenied       → 403 ERR_FORBIDDEN
    NotFoundError          → 404 ERR_NOT_FOUND
    InvalidTransitionError → 409 ERR_INVALID_TRANSITION
    ConflictError          → 409 ERR_CONFLICT_STATE
    PreconditionError      → 422 ERR_PRECONDITION
    SQLAlchemyError        → 500 ERR_DATABASE
"""

import logging

from flask import request
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDenied,
    PreconditionError,
    ValidationError,
)
from app.models import db
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def json_body() -> dict:
    """Request JSON as a dict; anything else becomes an empty dict."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def register_error_handlers(bp):
    """Attach the engine's exception → response mapping to *bp*."""

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        db.session.rollback()
        return api_error(E.VALIDATION_INVALID, error.message, details=error.details)

    @bp.errorhandler(PermissionDenied)
    def _handle_permission(error: PermissionDenied):
        db.session.rollback()
        return api_error(E.FORBIDDEN, error.message, details=error.details)

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        db.session.rollback()
        return api_error(E.NOT_FOUND, error.message, details=error.details)

    @bp.errorhandler(InvalidTransitionError)
    def _handle_transition(error: InvalidTransitionError):
        db.session.rollback()
        return api_error(E.INVALID_TRANSITION, error.message, details=error.details)

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        db.session.rollback()
        return api_error(E.CONFLICT_STATE, error.message, details=error.details)

    @bp.errorhandler(PreconditionError)
    def _handle_precondition(error: PreconditionError):
        db.session.rollback()
        return api_error(E.PRECONDITION, error.message, details=error.details)

    @bp.errorhandler(SQLAlchemyError)
    def _handle_db(error: SQLAlchemyError):
        db.session.rollback()
        logger.exception("Database error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.DATABASE, "Database error")

    return bp
