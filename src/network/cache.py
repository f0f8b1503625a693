"""In-memory response cache with a bounded lifetime and an injectable clock."""

import threading
import time
from typing import Any, Callable, Hashable, Optional


_MISSING = object()


class ResponseCache:
    """
    TTL cache shared by the workers of one run.

    Args:
        ttl: Seconds an entry stays fresh
        clock: Returns the current time in seconds (default: time.monotonic)
    """

    def __init__(self, ttl: float = 3600.0, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.clock = clock
        self._entries: dict[Hashable, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable, default: Optional[Any] = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            expires_at, value = entry
            if self.clock() >= expires_at:
                del self._entries[key]
                return default
            return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._entries[key] = (self.clock() + self.ttl, value)

    def get_or_compute(self, key: Hashable, compute: Callable[[], Any]) -> Any:
        """Cached value for key, computing and storing it on a miss.

        None results are cached too, so a miss on the remote side is not
        re-queried within the TTL.
        """
        value = self.get(key, _MISSING)
        if value is not _MISSING:
            return value
        value = compute()
        self.set(key, value)
        return value

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            now = self.clock()
            return sum(1 for expires_at, _ in self._entries.values() if now < expires_at)
