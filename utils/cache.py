# utils/cache.py — in-memory кэш с TTL для read-model профилей
import logging
import time
from typing import Any, Optional

logger = logging.getLogger(__name__)


class SimpleCache:
    """Кэш в памяти процесса. Просроченные записи удаляются при чтении."""

    def __init__(self):
        self._cache: dict[str, tuple[Any, float]] = {}
        self._hits = 0
        self._misses = 0

    def get(self, key: str, default: Any = None) -> Optional[Any]:
        entry = self._cache.get(key)
        if entry is None:
            self._misses += 1
            return default
        value, expiry = entry
        if time.monotonic() > expiry:
            del self._cache[key]
            self._misses += 1
            return default
        self._hits += 1
        return value

    def set(self, key: str, value: Any, ttl: int) -> None:
        """ttl <= 0: не кэшировать."""
        if ttl <= 0:
            return
        self._cache[key] = (value, time.monotonic() + ttl)

    def delete(self, key: str) -> None:
        self._cache.pop(key, None)

    def clear(self) -> None:
        self._cache.clear()
        self._hits = 0
        self._misses = 0

    def get_stats(self) -> dict[str, Any]:
        total = self._hits + self._misses
        hit_rate = (self._hits / total * 100) if total > 0 else 0
        return {
            "size": len(self._cache),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": f"{hit_rate:.2f}%",
        }


# Глобальный экземпляр кэша
_cache = SimpleCache()


def get_cache() -> SimpleCache:
    """Получить глобальный экземпляр кэша."""
    return _cache
