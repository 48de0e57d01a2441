"""
In-process cache for dashboard summaries.

Summary reads (for example the health score classification counts) are
aggregated by the backend and are comparatively expensive, while the data
behind them only changes when a scoring job runs. Entries are keyed by tuples
whose first element names the family ("health_scores", ...) so a writer can
invalidate a whole family at once.
"""

import logging
import time
from typing import Any, Dict, Hashable, Optional, Tuple

from crm_retention.core.config import get_settings


logger = logging.getLogger(__name__)

CacheKey = Tuple[Hashable, ...]


class SummaryCache:
    """
    Keyed cache with a per-instance time-to-live.

    Args:
        ttl_seconds: Entry lifetime. Defaults to settings.summary_cache_ttl_seconds.
            A TTL of 0 disables caching.
    """

    def __init__(self, ttl_seconds: Optional[int] = None):
        self._ttl_seconds = ttl_seconds
        self._entries: Dict[CacheKey, Tuple[float, Any]] = {}

    @property
    def ttl_seconds(self) -> int:
        if self._ttl_seconds is None:
            return get_settings().summary_cache_ttl_seconds
        return self._ttl_seconds

    def get(self, key: CacheKey) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        stored_at, value = entry
        if time.monotonic() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            return None
        return value

    def set(self, key: CacheKey, value: Any) -> None:
        if self.ttl_seconds <= 0:
            return
        self._entries[key] = (time.monotonic(), value)

    def invalidate(self, family: Hashable) -> int:
        """
        Drop every entry whose key starts with the given family name.

        Returns:
            Number of entries removed.
        """
        stale = [key for key in self._entries if key and key[0] == family]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.info(f"Invalidated {len(stale)} cached '{family}' summaries")
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()


# Process-wide cache shared by the API and the daily jobs
summary_cache = SummaryCache()
