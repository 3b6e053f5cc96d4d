# Overview: Row locking and retry helpers for wallet writes.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


# Lock waits and version mismatches; anything else propagates immediately.
RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    SELECT ... FOR UPDATE on the rows of `query`.

    The lock is held until the enclosing session commits or rolls back.
    SQLite ignores the clause; its writer lock serializes instead.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.05, label: str | None = None):
    """
    Call func() and retry it with exponential backoff on RETRYABLE_ERRORS.

    The session is rolled back before every retry. Only wrap whole,
    repeatable units of work (bulk resets, reconciliation); a settlement
    is never wrapped because resubmitting it would charge twice.
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except RETRYABLE_ERRORS:
            db.session.rollback()
            if attempt == attempts:
                raise
            current_app.logger.warning(
                "Retrying %s after concurrency error (attempt %d/%d)",
                label or getattr(func, "__name__", "operation"), attempt, attempts,
            )
            time.sleep(backoff_base * (2 ** (attempt - 1)))
