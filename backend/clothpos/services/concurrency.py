# Overview: Service-layer helpers for concurrency; row locks, retries and atomic units of work.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import ConcurrencyConflictError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The version_id_col on Product/Sale/Supplier/Customer still catches lost
    updates there (StaleDataError on flush).
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute one unit of work with retry on concurrency-related failures.

    - OperationalError (deadlocks, locks) and StaleDataError (optimistic
      version conflicts) roll back and retry func from a fresh read.
    - When retries are exhausted a ConcurrencyConflictError is raised.
    - Any other exception rolls the session back and propagates, so a
      rejected operation never leaves a partial write behind.

    func must re-query every aggregate it touches; objects loaded before a
    rollback are expired.
    """
    if attempts is None:
        attempts = current_app.config.get("RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("RETRY_BACKOFF_BASE", 0.1)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            current_app.logger.warning(
                "Concurrency conflict (attempt %s/%s): %s", attempt + 1, attempts, exc
            )
            if attempt >= attempts - 1:
                raise ConcurrencyConflictError(
                    "Record was modified concurrently; reload and try again"
                ) from exc
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    raise ConcurrencyConflictError("No attempts were made")
