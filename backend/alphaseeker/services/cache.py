"""In-memory TTL cache for price lookups."""

import threading
import time
from collections.abc import Callable
from typing import Any

from alphaseeker.config import PRICE_CACHE_TTL


class CacheService:
    """Thread-safe key/value store whose entries expire after a TTL."""

    def __init__(self, default_ttl: int = 60):
        self._store: dict[str, tuple[Any, float]] = {}
        self._default_ttl = default_ttl
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if time.time() > expires_at:
                del self._store[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        ttl = ttl if ttl is not None else self._default_ttl
        with self._lock:
            self._store[key] = (value, time.time() + ttl)

    def get_or_load(
        self, key: str, loader: Callable[[], Any | None], ttl: int | None = None
    ) -> Any | None:
        """Return the cached value or call `loader`.

        A None result from the loader is not cached, so failed lookups are
        retried on the next call.
        """
        value = self.get(key)
        if value is not None:
            return value
        value = loader()
        if value is not None:
            self.set(key, value, ttl)
        return value

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()


price_cache = CacheService(default_ttl=PRICE_CACHE_TTL)
