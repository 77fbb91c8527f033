# Overview: Row locking and retry helpers for stock-moving transactions.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


RETRYABLE = (OperationalError, StaleDataError)


def lock_for_update(query):
    """SELECT ... FOR UPDATE. A no-op on SQLite, honored by Postgres/MySQL."""
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Call func(), retrying lock and stale-row failures with exponential backoff.

    The session is rolled back before every retry and before any error
    propagates, so callers never see a half-applied unit of work.
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except RETRYABLE:
            db.session.rollback()
            if attempt == attempts:
                raise
            time.sleep(backoff_base * (2 ** (attempt - 1)))
        except Exception:
            db.session.rollback()
            raise
