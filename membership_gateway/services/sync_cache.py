"""Sync cache — "remote already matches this payload" fingerprints.

Advisory only. A hit lets plan/coupon sync skip the Stripe call; a miss,
an expired row, or a mismatched value just means one more (idempotent)
upsert. Losing the whole table is harmless.
"""

import logging
from datetime import datetime, timedelta, timezone

from membership_gateway.extensions import db
from membership_gateway.models.sync_cache import SyncCacheEntry

logger = logging.getLogger(__name__)

NAMESPACE = "ms-stripe"
MAX_KEY_LENGTH = 45
DEFAULT_TTL = timedelta(hours=1)


def cache_key(external_id):
    """Bounded-length cache key for an external id.

    Truncation can make two ids share a key; callers compare the stored
    value, so a collision only ever causes an extra sync.
    """
    return f"{NAMESPACE}-{external_id}"[:MAX_KEY_LENGTH]


def get(key):
    """Return the cached value, or None if absent or expired."""
    now = datetime.now(timezone.utc)
    entry = (
        SyncCacheEntry.query
        .filter(SyncCacheEntry.key == key)
        .filter(SyncCacheEntry.expires_at > now)
        .first()
    )
    if entry is None:
        return None
    return entry.value


def set(key, value, ttl=DEFAULT_TTL):  # noqa: A001
    """Store value under key for ttl, replacing any previous entry."""
    expires_at = datetime.now(timezone.utc) + ttl
    entry = db.session.get(SyncCacheEntry, key)
    if entry is None:
        entry = SyncCacheEntry(key=key, value=value, expires_at=expires_at)
        db.session.add(entry)
    else:
        entry.value = value
        entry.expires_at = expires_at
    db.session.flush()


def delete(key):
    entry = db.session.get(SyncCacheEntry, key)
    if entry is not None:
        db.session.delete(entry)
        db.session.flush()


def purge_expired():
    """Drop expired rows. Returns the number removed."""
    now = datetime.now(timezone.utc)
    removed = (
        SyncCacheEntry.query
        .filter(SyncCacheEntry.expires_at <= now)
        .delete(synchronize_session=False)
    )
    if removed:
        logger.info(f"Purged {removed} expired sync cache entries")
    return removed
