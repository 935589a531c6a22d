# Overview: Service-layer helpers for row locking, write transactions and contention retries.

from __future__ import annotations

import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def is_sqlite() -> bool:
    return db.engine.dialect.name == "sqlite"


def lock_for_update(query, *, skip_locked: bool = False):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    skip_locked lets concurrent allocators pass over rows another transaction
    already holds instead of queueing on them.
    """
    if is_sqlite():
        return query
    return query.with_for_update(skip_locked=skip_locked)


def begin_write() -> None:
    """
    Take the database write lock up front on SQLite.

    SQLite has no row locks; BEGIN IMMEDIATE serialises writers for the whole
    transaction so a multi-step operation cannot interleave with another one.
    Must be the first statement of the unit of work.
    """
    if is_sqlite():
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Any other exception rolls the session
    back and propagates unchanged.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc
