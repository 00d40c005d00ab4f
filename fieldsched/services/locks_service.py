# fieldsched/services/locks_service.py
from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Iterator, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ..config import settings
from ..domain.errors import Busy
from ..models import ProcessingLock

log = logging.getLogger("fieldsched.locks")

# Single global key: only one batch may mutate schedule state at a time.
BATCH_LOCK_KEY = "schedule_batch"


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def acquire_lock(db: Session, *, lock_key: str, owner: Optional[str], ttl_seconds: int) -> bool:
    """
    Advisory lock in DB.
    - returns True if lock acquired/renewed
    - returns False if held by someone else (and not expired)
    Caller commits.

    Takeover of an expired row is a single conditional UPDATE, so two
    workers racing for the same released row cannot both win.
    """
    now = _now()
    expires = now + timedelta(seconds=int(ttl_seconds))

    res = db.execute(
        update(ProcessingLock)
        .where(ProcessingLock.lock_key == lock_key)
        .where(or_(ProcessingLock.expires_at <= now, ProcessingLock.owner == (owner or "")))
        .values(owner=owner or "", expires_at=expires)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 1:
        return True

    exists = db.scalar(select(ProcessingLock.id).where(ProcessingLock.lock_key == lock_key))
    if exists is not None:
        return False

    # first use of this key; a concurrent insert fails on the unique lock_key
    db.add(ProcessingLock(lock_key=lock_key, owner=owner or "", expires_at=expires, created_at=now))
    db.flush()
    return True


def release_lock(db: Session, *, lock_key: str, owner: Optional[str]) -> bool:
    """Expire the row if owner still holds it. False if someone else does."""
    stmt = update(ProcessingLock).where(ProcessingLock.lock_key == lock_key)
    if owner:
        stmt = stmt.where(ProcessingLock.owner == owner)
    res = db.execute(
        stmt.values(expires_at=_now() - timedelta(seconds=1)).execution_options(synchronize_session=False)
    )
    if res.rowcount == 1:
        return True
    # nothing to release, or held by another owner
    return db.scalar(select(ProcessingLock.id).where(ProcessingLock.lock_key == lock_key)) is None


def _try_once(factory: sessionmaker, *, lock_key: str, owner: str, ttl_seconds: int) -> bool:
    s = factory()
    try:
        got = acquire_lock(s, lock_key=lock_key, owner=owner, ttl_seconds=ttl_seconds)
        s.commit()
        return got
    except IntegrityError:
        # another worker inserted the row first
        s.rollback()
        return False
    finally:
        s.close()


@contextmanager
def processing_lock(
    bind: Engine | Connection,
    *,
    owner: str,
    lock_key: str = BATCH_LOCK_KEY,
    wait_seconds: Optional[float] = None,
    ttl_seconds: Optional[int] = None,
) -> Iterator[str]:
    """
    Hold the batch lock for the duration of the block.

    The lock row is written and released through its own short-lived
    sessions so it is visible to other workers immediately, independent of
    the caller's (still open) unit of work.

    Raises Busy when the lock is not acquired within wait_seconds.
    """
    factory = sessionmaker(bind=bind, autoflush=False, future=True)
    wait = settings.lock_wait_seconds if wait_seconds is None else float(wait_seconds)
    ttl = settings.lock_ttl_seconds if ttl_seconds is None else int(ttl_seconds)
    deadline = time.monotonic() + max(0.0, wait)

    while not _try_once(factory, lock_key=lock_key, owner=owner, ttl_seconds=ttl):
        if time.monotonic() >= deadline:
            raise Busy(f"another batch is being processed; retry shortly (lock '{lock_key}')")
        time.sleep(settings.lock_poll_seconds)

    log.debug("lock acquired", extra={"event": "lock_acquired"})
    try:
        yield owner
    finally:
        s = factory()
        try:
            release_lock(s, lock_key=lock_key, owner=owner)
            s.commit()
        finally:
            s.close()
        log.debug("lock released", extra={"event": "lock_released"})
