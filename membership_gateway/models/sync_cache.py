"""Sync cache entry model.

Time-bounded key/value rows backing the plan/coupon fingerprint cache.
Stored in the database so every worker process shares it.
"""

from membership_gateway.extensions import db


class SyncCacheEntry(db.Model):
    __tablename__ = "sync_cache"

    key = db.Column(db.String(45), primary_key=True)
    value = db.Column(db.Text, nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def __repr__(self):
        return f"<SyncCacheEntry {self.key}>"
