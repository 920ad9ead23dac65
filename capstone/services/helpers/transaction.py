"""
Unit of work for workflow operations.

Every Decide / Confirm / ConfirmTeam / verify / marks operation runs inside
``atomic(operation)``: the eligibility re-check, the status update and the
side effect commit together or not at all.

Usage:
    with atomic("guide.decide"):
        row = lock_one(select(GuideRequest).where(...))
        ...

Failure mapping:
    WorkflowError      → rollback, re-raised unchanged
    IntegrityError     → rollback, ConflictError (a concurrent writer won)
    SQLAlchemyError    → rollback, PersistenceError carrying a reference id
"""

import logging
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from capstone.core.exceptions import ConflictError, PersistenceError
from capstone.models import db
from capstone.utils.errors import new_reference

logger = logging.getLogger(__name__)


@contextmanager
def atomic(operation: str):
    """Commit on success, roll back on any exception."""
    try:
        yield db.session
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error during %s: %s", operation, exc.orig)
        raise ConflictError(
            "The operation clashed with a concurrent change. Reload and retry.",
            details={"operation": operation},
        ) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        reference = new_reference()
        logger.error(
            "Persistence failure during %s reference=%s", operation, reference,
            exc_info=True, extra={"reference": reference},
        )
        raise PersistenceError(reference, operation) from exc
    except Exception:
        db.session.rollback()
        raise


def lock_one(stmt):
    """Execute ``stmt`` with SELECT … FOR UPDATE and return one row or None.

    FOR UPDATE is ignored by SQLite; PostgreSQL serialises concurrent
    deciders on the locked row until commit.
    """
    return db.session.execute(stmt.with_for_update()).scalar_one_or_none()
