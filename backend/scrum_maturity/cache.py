"""In-memory TTL cache for computed metrics."""

import logging
import time
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

DEFAULT_TTL_MINUTES = 30


class MetricsCache:
    """Key/value cache whose entries expire after a TTL.

    Expired entries are dropped lazily on ``get`` or in bulk by
    ``clear_expired``.
    """

    def __init__(self, ttl_minutes: float = DEFAULT_TTL_MINUTES, clock=time.time):
        self.ttl_minutes = ttl_minutes
        self._clock = clock
        self._entries = {}

    def generate_key(self, board_id, kind: str = "metrics") -> str:
        """Key for today's result of one kind for one board, e.g. ``metrics:42:2024-03-01``."""
        today = datetime.fromtimestamp(self._clock(), tz=timezone.utc).date().isoformat()
        return f"{kind}:{board_id}:{today}"

    def set(self, key: str, value, ttl_minutes: float = None):
        ttl = self.ttl_minutes if ttl_minutes is None else ttl_minutes
        self._entries[key] = {"value": value, "expiresAt": self._clock() + ttl * 60}
        logger.info(f"Cache set: {key} (expires in {ttl} minutes)")

    def get(self, key: str):
        """Return the cached value, or None on a miss or an expired entry."""
        entry = self._entries.get(key)
        if entry is None:
            logger.info(f"Cache miss: {key}")
            return None

        if self._clock() > entry["expiresAt"]:
            logger.info(f"Cache expired: {key}")
            del self._entries[key]
            return None

        logger.info(f"Cache hit: {key}")
        return entry["value"]

    def clear(self, key: str) -> bool:
        if key in self._entries:
            del self._entries[key]
            logger.info(f"Cache cleared: {key}")
            return True
        return False

    def clear_all(self):
        size = len(self._entries)
        self._entries.clear()
        logger.info(f"All cache cleared ({size} entries)")

    def clear_expired(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now > entry["expiresAt"]]
        for key in expired:
            del self._entries[key]

        if expired:
            logger.info(f"Cleared {len(expired)} expired cache entries")
        return len(expired)

    def get_stats(self) -> dict:
        now = self._clock()
        expired = sum(1 for entry in self._entries.values() if now > entry["expiresAt"])
        return {
            "total": len(self._entries),
            "active": len(self._entries) - expired,
            "expired": expired
        }
