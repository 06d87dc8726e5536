from typing import Dict, Any, Iterable, Optional, Tuple
from datetime import datetime, timedelta
import asyncio

from context_engine.domain.models.context_item import Clock, ContextSummary, utcnow


class SummaryCache:
    """In-memory summary cache with TTL and source-item staleness checks"""

    def __init__(self, ttl: int = 300, clock: Clock = utcnow):
        self.ttl = ttl
        self.clock = clock
        self.cache: Dict[Tuple[str, int], Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return self.ttl > 0

    async def set(self, session_id: str, max_tokens: int, summary: ContextSummary, session_version: int) -> None:
        """Cache a summary built from the session at ``session_version``"""

        if not self.enabled:
            return

        async with self._lock:
            now = self.clock()
            self._drop_expired(now)
            self.cache[(session_id, max_tokens)] = {
                "value": summary.model_copy(deep=True),
                "session_version": session_version,
                "expires_at": now + timedelta(seconds=self.ttl)
            }

    async def get(self, session_id: str, max_tokens: int, session_version: int) -> Optional[ContextSummary]:
        """Get a cached summary if it is unexpired and the session has not changed since"""

        async with self._lock:
            key = (session_id, max_tokens)
            entry = self.cache.get(key)
            if entry is None:
                return None

            if self.clock() > entry["expires_at"] or entry["session_version"] != session_version:
                del self.cache[key]
                return None

            return entry["value"].model_copy(deep=True)

    async def invalidate_items(self, session_id: str, item_ids: Iterable[str]) -> int:
        """Drop summaries of the session that consumed any of ``item_ids``"""

        removed = set(item_ids)
        if not removed:
            return 0

        async with self._lock:
            stale_keys = [
                key for key, entry in self.cache.items()
                if key[0] == session_id and removed.intersection(entry["value"].source_items)
            ]
            for key in stale_keys:
                del self.cache[key]
            return len(stale_keys)

    async def invalidate_session(self, session_id: str) -> int:
        async with self._lock:
            stale_keys = [key for key in self.cache if key[0] == session_id]
            for key in stale_keys:
                del self.cache[key]
            return len(stale_keys)

    def _drop_expired(self, now: datetime) -> None:
        expired_keys = [
            key for key, entry in self.cache.items()
            if now > entry["expires_at"]
        ]

        for key in expired_keys:
            del self.cache[key]
