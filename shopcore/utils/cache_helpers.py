import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

CACHE_TTL = 30  # seconds


@dataclass
class _Entry:
    data: Any
    expires_at: float


class CartSnapshotCache:
    """Short-lived per-user cache of priced cart snapshots.

    Absorbs bursty double-submits of payment initialization. Bounded: the
    least recently used entry is evicted once ``maxsize`` is reached, and
    expired entries are swept on access. Inject one instance wherever carts
    are read or mutated; a shared backend can replace it in multi-instance
    deployments as long as it keeps ``get``/``set``/``invalidate``.
    """

    def __init__(
        self,
        ttl: float = CACHE_TTL,
        maxsize: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ):
        if maxsize < 1:
            raise ValueError("maxsize must be positive")
        self.ttl = ttl
        self.maxsize = maxsize
        self._clock = clock
        self._entries: "OrderedDict[str, _Entry]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, user_id: str) -> Optional[Any]:
        with self._lock:
            self._sweep()
            entry = self._entries.get(user_id)
            if entry is None:
                return None
            self._entries.move_to_end(user_id)
            return entry.data

    def set(self, user_id: str, data: Any) -> None:
        with self._lock:
            self._sweep()
            self._entries[user_id] = _Entry(data=data, expires_at=self._clock() + self.ttl)
            self._entries.move_to_end(user_id)
            while len(self._entries) > self.maxsize:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Evicted cart snapshot for user {evicted}")

    def invalidate(self, user_id: str) -> None:
        with self._lock:
            self._entries.pop(user_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def get_or_load(self, user_id: str, loader: Callable[[], Any]) -> Any:
        cached = self.get(user_id)
        if cached is not None:
            return cached

        data = loader()
        if data is not None:
            self.set(user_id, data)
        return data

    def __len__(self) -> int:
        with self._lock:
            self._sweep()
            return len(self._entries)

    def _sweep(self) -> None:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            del self._entries[key]
