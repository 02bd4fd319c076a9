"""
In-process TTL cache for external operation results.

The cache is the only state shared between concurrently running phases, so
every read-check-expire and every insert-or-overwrite happens under one lock.
Expiry is lazy: a stale entry is removed when it is read. sweep() removes all
stale entries at once.
"""
import hashlib
import json
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional
from pydantic import BaseModel, Field

from geoquery.errors import CacheError

logger = logging.getLogger(__name__)


class CacheEntry(BaseModel):
    key: str
    value: Any = None
    stored_at: float = Field(..., description="Clock time in ms when the entry was stored")
    ttl_ms: int = Field(..., description="Time-to-live in ms")

    def is_expired(self, now_ms: float) -> bool:
        return now_ms - self.stored_at >= self.ttl_ms


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


def make_cache_key(operation_id: str, params: Optional[Dict[str, Any]] = None) -> str:
    """
    Stable key for one logical call.

    Params are serialized with keys sorted at every nesting level, so the same
    call with differently-ordered parameter objects maps to the same key.
    """
    canonical = json.dumps(params or {}, sort_keys=True, separators=(",", ":"), default=str)
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return f"{operation_id}:{digest}"


class ResultCache:
    """Thread-safe key/value store with per-entry TTL."""

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._clock = clock or _monotonic_ms

    make_key = staticmethod(make_cache_key)

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on a miss. An expired hit is removed and reported as a miss."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                logger.debug(f"Cache entry expired: {key}")
                return None
            return entry.value

    def set(self, key: str, value: Any, ttl_ms: int) -> None:
        if ttl_ms <= 0:
            raise CacheError(f"ttl_ms must be positive, got {ttl_ms}")
        with self._lock:
            self._entries[key] = CacheEntry(
                key=key,
                value=value,
                stored_at=self._clock(),
                ttl_ms=ttl_ms,
            )

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info(f"Cache cleared ({count} entries)")
        return count

    def sweep(self) -> int:
        """Remove every expired entry and return how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.info(f"Cache sweep removed {len(expired)} expired entries")
        return len(expired)

    def stats(self) -> Dict[str, Any]:
        """Size plus per-entry key, age and TTL (ms)."""
        with self._lock:
            now = self._clock()
            entries: List[Dict[str, Any]] = [
                {"key": key, "age_ms": int(now - entry.stored_at), "ttl_ms": entry.ttl_ms}
                for key, entry in self._entries.items()
            ]
        return {"size": len(entries), "entries": entries}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
