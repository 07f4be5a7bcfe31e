"""
In-memory TTL cache for per-user save listings.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, TYPE_CHECKING

from shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_TTL_MS = 5 * 60 * 1000


def save_list_key(user_id: str) -> str:
    """Cache key for a user's save file listing."""
    return f"user:{user_id}:saves"


@dataclass
class CacheEntry:
    value: Any
    stored_at: float


class TTLCache:
    """Per-key cache with one global TTL.

    Entries are replaced wholesale on ``set`` and removed either lazily,
    when a ``get`` finds them expired, or eagerly via ``invalidate``. There
    is no size bound and no background sweep: an entry that expires and is
    never read again stays in memory until its key is touched.

    The clock returns seconds; it defaults to ``time.monotonic`` so wall
    clock adjustments cannot resurrect or expire entries early.
    """

    def __init__(
        self,
        ttl_ms: int = DEFAULT_TTL_MS,
        *,
        name: str = "save_list",
        clock: Callable[[], float] = time.monotonic,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.ttl_ms = ttl_ms
        self.name = name
        self.logger = get_logger("saves.cache")
        self.metrics = metrics
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        """Return the live value for ``key``, else ``default``.

        An expired entry is deleted on the way out.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                elapsed_ms = (self._clock() - entry.stored_at) * 1000
                if elapsed_ms < self.ttl_ms:
                    self.logger.info("Cache HIT", cache_key=key)
                    self._count("cache_hits_total")
                    return entry.value

                self.logger.warning("Cache STALE. Deleting.", cache_key=key, age_ms=round(elapsed_ms))
                del self._entries[key]
                self._count("cache_evictions_total", reason="expired")
                self._update_size()

            self.logger.info("Cache MISS", cache_key=key)
            self._count("cache_misses_total")
            return default

    def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``, replacing any previous entry."""
        with self._lock:
            self.logger.info("Cache SET", cache_key=key)
            self._entries[key] = CacheEntry(value=value, stored_at=self._clock())
            self._update_size()

    def invalidate(self, key: str) -> None:
        """Drop ``key`` if present."""
        with self._lock:
            self.logger.info("Cache INVALIDATE", cache_key=key)
            if self._entries.pop(key, None) is not None:
                self._count("cache_evictions_total", reason="invalidated")
                self._update_size()

    def __contains__(self, key: object) -> bool:
        # Physical presence; expired entries count until touched
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _count(self, metric_name: str, **labels) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter(metric_name, cache=self.name, **labels)

    def _update_size(self) -> None:
        if self.metrics is not None:
            self.metrics.set_gauge("cache_entries", len(self._entries), cache=self.name)
