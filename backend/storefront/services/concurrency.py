# Overview: Row locking and bounded retry for the few read-modify-write paths (guest cart merge).

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from .errors import ConcurrencyConflictError

logger = logging.getLogger(__name__)

# Lost optimistic-lock races, lock timeouts/deadlocks, and the unique
# (cart_id, variant_id) constraint firing when two merges insert the same line.
CONFLICT_ERRORS = (OperationalError, StaleDataError, IntegrityError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 2, backoff_base: float = 0.05, operation: str = "operation"):
    """
    Execute a DB unit of work, retrying on concurrency conflicts.

    The session is rolled back before each retry so a failed attempt never
    leaves partial writes behind. When every attempt conflicts, a
    ConcurrencyConflictError is raised to the caller.
    """
    for attempt in range(attempts):
        try:
            return func()
        except CONFLICT_ERRORS as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                logger.warning("%s conflicted %d time(s); giving up", operation, attempts)
                raise ConcurrencyConflictError(
                    f"{operation} failed due to a concurrent update",
                    details={"attempts": attempts},
                ) from exc
            logger.info("%s conflicted (attempt %d/%d); retrying", operation, attempt + 1, attempts)
            time.sleep(backoff_base * (2 ** attempt))
    raise ValueError("attempts must be >= 1")
