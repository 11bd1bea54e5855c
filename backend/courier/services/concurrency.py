# Overview: Retry and row-locking helpers shared by the sequence, parcel and manifest services.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import ConcurrencyConflict


logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (OperationalError, StaleDataError, ConcurrencyConflict)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the database-wide write
    lock taken by the first UPDATE plays the same role.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a unit of work with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, lock timeouts), StaleDataError
    (optimistic locking conflicts) and ConcurrencyConflict. The session is
    rolled back before every retry, so func must be safe to run again from
    scratch.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            delay = backoff_base * (2 ** attempt)
            logger.warning("Retrying after %s (attempt %d/%d, sleeping %.3fs)", type(exc).__name__, attempt + 1, attempts, delay)
            time.sleep(delay)
    if last_exc:
        raise last_exc

