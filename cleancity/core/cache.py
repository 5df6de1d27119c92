import logging
import threading
import time
from typing import Any, Callable, Dict, Tuple

logger = logging.getLogger(__name__)


class LeaderboardCache:
    """Short-lived in-process cache for leaderboard reads, dropped whenever points are credited."""

    def __init__(self, ttl_seconds: float, timer: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._timer = timer
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._generation = 0
        self._lock = threading.Lock()

    def get_or_load(self, key: str, loader: Callable[[], Any]) -> Any:
        now = self._timer()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry[0] > now:
                return entry[1]
            generation = self._generation

        value = loader()
        with self._lock:
            # An invalidation during the load means the value may predate a credit
            if self._generation == generation:
                self._entries[key] = (now + self.ttl_seconds, value)
        return value

    def invalidate(self) -> None:
        with self._lock:
            self._generation += 1
            dropped = len(self._entries)
            self._entries.clear()
        if dropped:
            logger.info("Leaderboard cache invalidated (%d entries)", dropped)
