"""
Commit helper for the engine services.

Services own their transaction: they validate first, write, then call
``commit_or_rollback()``. A store failure rolls the whole unit back and
propagates to the caller; there are no automatic retries.
"""

import logging

from sqlalchemy.exc import IntegrityError, OperationalError

from app.models import db

logger = logging.getLogger(__name__)


def commit_or_rollback():
    """Commit the current session; on failure roll back and re-raise."""
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.warning("Commit rejected by a constraint", exc_info=True)
        raise
    except OperationalError:
        db.session.rollback()
        logger.error("Database operational error during commit", exc_info=True)
        raise
    except Exception:
        db.session.rollback()
        logger.exception("Unexpected error during commit")
        raise
