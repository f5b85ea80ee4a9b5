"""
Lookup helpers shared by the engine services.

Every service fetches rows through these helpers so that a missing row
always surfaces as ``NotFoundError`` and phase writers always take the
phase row lock before they read ledger tables.

Usage:
    phase = get_phase(phase_id)                  # plain read
    phase = lock_phase(phase_id)                 # read for a read-modify-write
    engineer = get_engineer(engineer_id)
    log = get_or_raise(WorkLog, log_id, "Work log", active_only=True)
"""

import logging

from sqlalchemy import select

from app.core.exceptions import NotFoundError
from app.models import db
from app.models.auth import User
from app.models.project import Phase, Project

logger = logging.getLogger(__name__)


def get_or_raise(model, pk, label: str | None = None, *, active_only: bool = False):
    """Fetch a row by primary key or raise NotFoundError.

    Args:
        model: SQLAlchemy model class.
        pk: Primary key value.
        label: Name used in the error message (defaults to the class name).
        active_only: Treat soft-deleted rows as missing.
    """
    label = label or model.__name__
    obj = db.session.get(model, pk)
    if obj is None or (active_only and getattr(obj, "is_deleted", False)):
        raise NotFoundError(resource=label, resource_id=pk)
    return obj


def get_project(project_id: int) -> Project:
    return get_or_raise(Project, project_id, "Project")


def get_phase(phase_id: int) -> Phase:
    return get_or_raise(Phase, phase_id, "Phase")


def lock_phase(phase_id: int) -> Phase:
    """Load a phase with ``SELECT … FOR UPDATE``.

    The phase row is the contention point for every aggregate write; two
    writers on the same phase serialise here until the first commits.
    SQLite ignores the clause (single writer by construction).
    """
    phase = db.session.execute(
        select(Phase)
        .where(Phase.id == phase_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if phase is None:
        raise NotFoundError(resource="Phase", resource_id=phase_id)
    return phase


def get_engineer(engineer_id: int) -> User:
    """Fetch a user who holds the engineer role."""
    user = db.session.get(User, engineer_id)
    if user is None or not user.is_engineer:
        raise NotFoundError(resource="Engineer", resource_id=engineer_id)
    return user
