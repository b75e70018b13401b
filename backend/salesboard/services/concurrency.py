# Overview: Writer serialization and retry helpers for database-backed ledger writes.

from __future__ import annotations

import threading
import time

from sqlalchemy.exc import OperationalError

from ..extensions import db


_locks_guard = threading.Lock()
_writer_locks: dict[str, threading.RLock] = {}


def writer_lock(database_url: str) -> threading.RLock:
    """
    Process-wide writer lock for one database.

    Every repository instance pointing at the same database shares it, so
    concurrent uploads in this process take turns on dedup-check-then-append.
    Writers in other processes are fenced by the dedup unique constraint.
    """
    with _locks_guard:
        lock = _writer_locks.get(database_url)
        if lock is None:
            lock = threading.RLock()
            _writer_locks[database_url] = lock
        return lock


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on lock/deadlock failures.

    Retries on OperationalError ("database is locked", deadlocks).
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except OperationalError as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc

