"""Risk cache — precomputed aggregates stored in the notification_cache table.

Used for: per-account risk status, the global at-risk list and the
neglected-accounts list.

Entries live in the same database as the notifications so a refresh run can
commit an account's cache entry and its notifications together. There is no
TTL: entries are deleted by the session hook in cache/invalidation.py when an
estimate, account or interaction changes. A payload computed on an earlier
calendar day is treated as a miss because its day counts have moved on.

Nothing here commits. Callers own the transaction.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.cache import NotificationCache
from ..services.renewal_resolver import local_today

log = logging.getLogger("renewal.cache")


def get_cached(db: Session, cache_key: str, now: datetime | None = None) -> Any | None:
    """Return the cached payload, or None on miss."""
    row = db.get(NotificationCache, cache_key)
    if row is None:
        return None
    now = now or datetime.now(timezone.utc)
    if local_today(row.computed_at) < local_today(now):
        log.debug("Cache entry %s is from an earlier day", cache_key)
        return None
    return row.payload


def set_cached(db: Session, cache_key: str, payload: Any, computed_at: datetime) -> bool:
    """Write a payload inside a savepoint. Returns False if the write failed.

    A failed write only degrades the cache; the caller still has its payload.
    """
    try:
        with db.begin_nested():
            row = db.get(NotificationCache, cache_key)
            if row is None:
                db.add(NotificationCache(cache_key=cache_key, payload=payload, computed_at=computed_at))
            else:
                row.payload = payload
                row.computed_at = computed_at
        return True
    except SQLAlchemyError as e:
        log.warning("Cache write failed for %s: %s", cache_key, e)
        return False


def invalidate(db: Session, keys: Iterable[str]) -> int:
    """Delete cache entries by key. Returns the number of rows removed."""
    keys = list(keys)
    if not keys:
        return 0
    rows = db.query(NotificationCache).filter(NotificationCache.cache_key.in_(keys)).all()
    for row in rows:
        db.delete(row)
    if rows:
        db.flush()
        log.debug("Invalidated %d cache entries", len(rows))
    return len(rows)


def read_through(
    db: Session,
    cache_key: str,
    compute: Callable[[], Any],
    now: datetime | None = None,
) -> Any:
    """Serve from cache, or compute, write back and return."""
    now = now or datetime.now(timezone.utc)
    cached = get_cached(db, cache_key, now)
    if cached is not None:
        log.debug("Cache HIT: %s", cache_key)
        return cached

    log.debug("Cache MISS: %s", cache_key)
    payload = compute()
    set_cached(db, cache_key, payload, now)
    return payload
