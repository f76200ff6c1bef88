# Overview: Service-layer operations for concurrency; units of work, row locks and conflict retry.

"""
Unit-of-work helpers.

Every mutating service operation runs as exactly one database transaction:

    run_in_transaction(_op)

- _op() does all reads, checks and writes (flush only, never commit)
- on success the session is committed once
- on ANY exception the session is rolled back, so a multi-line receive or
  shipment that fails halfway leaves nothing behind
- concurrency conflicts (deadlocks, lock timeouts, optimistic version
  mismatches, duplicate inserts racing each other) re-run _op from a clean
  session; domain errors are re-raised immediately and never retried
"""

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


class RetryableConflict(Exception):
    """Raised by in-transaction code that lost a race and must be re-run."""
    pass


RETRYABLE_ERRORS = (OperationalError, StaleDataError, RetryableConflict)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The version_id columns on Product / StockItem still detect lost updates
    on SQLite.
    """
    return query.with_for_update()


def _retry_settings(attempts: int | None, backoff_base: float | None) -> tuple[int, float]:
    config = current_app.config
    if attempts is None:
        attempts = int(config.get("DB_RETRY_ATTEMPTS", 3))
    if backoff_base is None:
        backoff_base = float(config.get("DB_RETRY_BACKOFF", 0.1))
    return max(1, attempts), backoff_base


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks), StaleDataError
    (optimistic locking conflicts) and RetryableConflict. Any other
    exception rolls the session back and propagates.
    """
    attempts, backoff_base = _retry_settings(attempts, backoff_base)
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Concurrency conflict (%s), retrying unit of work (attempt %d/%d)",
                type(exc).__name__, attempt + 2, attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc


def run_in_transaction(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """Run func() and commit once; roll everything back on failure."""
    def _op():
        result = func()
        db.session.commit()
        return result
    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
