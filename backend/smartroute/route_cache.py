from __future__ import annotations

import copy
import time
from collections import OrderedDict
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from threading import Lock
from typing import Any

from .settings import settings


@dataclass
class _Entry:
    expires_at: float
    payload: dict[str, Any]


class RouteCacheStore:
    """Road answers keyed by request, evicted by age and by least recent use.

    Payloads are deep-copied on the way in and out so callers can never
    mutate a cached answer.
    """

    def __init__(
        self,
        *,
        ttl_s: int,
        max_entries: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_s = max(1, int(ttl_s))
        self._max_entries = max(1, int(max_entries))
        self._clock = clock
        self._lock = Lock()
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._stats = {"hits": 0, "misses": 0, "evictions": 0, "expired": 0}

    def get(self, key: str) -> dict[str, Any] | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.expires_at < now:
                del self._entries[key]
                self._stats["expired"] += 1
                entry = None
            if entry is None:
                self._stats["misses"] += 1
                return None
            self._entries.move_to_end(key)
            self._stats["hits"] += 1
            return copy.deepcopy(entry.payload)

    def set(self, key: str, value: dict[str, Any]) -> None:
        entry = _Entry(expires_at=self._clock() + self._ttl_s, payload=copy.deepcopy(value))
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = entry
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)
                self._stats["evictions"] += 1

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            stale = [key for key, entry in self._entries.items() if entry.expires_at < now]
            for key in stale:
                del self._entries[key]
            self._stats["expired"] += len(stale)
            return len(stale)

    def clear(self) -> int:
        with self._lock:
            cleared = len(self._entries)
            self._entries.clear()
            return cleared

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return {
                "size": len(self._entries),
                **self._stats,
                "ttl_s": self._ttl_s,
                "max_entries": self._max_entries,
            }


ROUTE_CACHE = RouteCacheStore(
    ttl_s=settings.route_cache_ttl_s,
    max_entries=settings.route_cache_max_entries,
)


def road_cache_key(
    profile: str,
    points: Sequence[tuple[float, float]],
    exclude: str | None = None,
) -> str:
    """Cache key for a road request; ``points`` are (lat, lon) pairs."""
    coords = ";".join(f"{lon:.5f},{lat:.5f}" for lat, lon in points)
    return f"osrm:route:{profile}:{coords}:{exclude or ''}"


def clear_route_cache() -> int:
    return ROUTE_CACHE.clear()


def route_cache_stats() -> dict[str, int]:
    return ROUTE_CACHE.snapshot()
