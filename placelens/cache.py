"""
Resilience cache: exact-match snapshots with a short TTL, plus one
"last known good" snapshot used only when the primary places index is down.

One instance is created by the service and injected into the context builder;
nothing here is module-global.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable

from placelens import config
from placelens.models import ContextSnapshot, Coordinate, Report

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    snapshot: ContextSnapshot
    report: Report | None = None
    used_generative: bool = False


def cache_key(center: Coordinate, radius_m: int) -> str:
    return f"{center.lat:.6f}:{center.lon:.6f}:{int(radius_m)}"


class ResilienceCache:
    def __init__(
        self,
        ttl_s: float = config.CACHE_TTL_S,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_s = ttl_s
        self._clock = clock
        self._entries: dict[str, tuple[float, CacheEntry]] = {}
        self._last_good: ContextSnapshot | None = None
        self._lock = threading.Lock()

    # ---- exact-match tier ---- #

    def get(self, key: str) -> CacheEntry | None:
        item = self._entries.get(key)
        if item is None:
            return None
        expires_at, entry = item
        if self._clock() >= expires_at:
            with self._lock:
                # Only drop it if nobody refreshed it meanwhile.
                if self._entries.get(key) is item:
                    del self._entries[key]
            return None
        return entry

    def set(self, key: str, value: CacheEntry, ttl: float | None = None) -> None:
        # Expired keys are swept on every write.
        self.purge_expired()
        expires_at = self._clock() + (self.ttl_s if ttl is None else ttl)
        with self._lock:
            self._entries[key] = (expires_at, value)

    def attach_report(self, key: str, report: Report, used_generative: bool) -> bool:
        """Swap the report of a live entry; returns False if the entry expired."""
        with self._lock:
            item = self._entries.get(key)
            if item is None or self._clock() >= item[0]:
                return False
            expires_at, entry = item
            self._entries[key] = (
                expires_at,
                replace(entry, report=report, used_generative=used_generative),
            )
        return True

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, (exp, _) in self._entries.items() if now >= exp]
            for k in expired:
                del self._entries[k]
        if expired:
            logger.debug("Purged %d expired cache entries", len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    # ---- last-known-good tier ---- #

    @property
    def last_good(self) -> ContextSnapshot | None:
        return self._last_good

    def remember_good(self, snapshot: ContextSnapshot) -> None:
        self._last_good = snapshot
