"""SafeRoute Backend — Real-time safety score cache with TTL"""

import threading
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from models import Location, SafetyScore

logger = logging.getLogger("saferoute.cache")


def location_key(location: Location) -> str:
    """Cache key: coordinates quantized to 4 decimal degrees (~11 m)."""
    return f"{location.latitude:.4f},{location.longitude:.4f}"


@dataclass(frozen=True)
class CacheEntry:
    score: SafetyScore
    location: Location
    created_at: datetime
    expires_at: datetime

    def expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class ScoreCache:
    """Lock-guarded map of location key → CacheEntry.

    Entries are immutable; updates swap in a new entry. ``replace`` only
    swaps when the caller still holds the current entry, so a background
    refresh never overwrites a score written by a concurrent miss.
    """

    def __init__(self, ttl_seconds: int = 300, clock: Optional[Callable[[], datetime]] = None):
        self._store: dict[str, CacheEntry] = {}
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock or datetime.now
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the live entry for ``key``; expired entries read as a miss."""
        with self._lock:
            entry = self._store.get(key)
        if entry is None or entry.expired(self._clock()):
            return None
        return entry

    def set(self, key: str, score: SafetyScore, location: Location) -> CacheEntry:
        now = self._clock()
        entry = CacheEntry(score=score, location=location, created_at=now, expires_at=now + self._ttl)
        with self._lock:
            self._store[key] = entry
        return entry

    def replace(self, key: str, expected: CacheEntry, score: SafetyScore) -> bool:
        """Swap the score of ``expected`` in place, keeping its expiry."""
        updated = CacheEntry(
            score=score,
            location=expected.location,
            created_at=expected.created_at,
            expires_at=expected.expires_at,
        )
        with self._lock:
            if self._store.get(key) is not expected:
                return False
            self._store[key] = updated
        return True

    def evict_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, entry in self._store.items() if entry.expired(now)]
            for k in expired:
                del self._store[k]
        if expired:
            logger.debug(f"Evicted {len(expired)} expired score(s)")
        return len(expired)

    def snapshot(self) -> list[tuple[str, CacheEntry]]:
        with self._lock:
            return list(self._store.items())

    def clear(self):
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._store
