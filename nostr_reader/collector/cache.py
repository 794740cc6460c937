"""In-memory cache whose entries expire at an absolute instant."""

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Generic, Optional, Tuple, TypeVar

V = TypeVar("V")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CacheEntry(Generic[V]):
    value: V
    expiry: Optional[datetime]


class ExpiringCache(Generic[V]):
    """
    Key/value store with a per-entry absolute expiry.

    Expired entries are evicted lazily when they are read; there is no
    background sweeper. The number of distinct keys is bounded by the number
    of query shapes the client issues, so this stays small.
    """

    def __init__(self, now: Optional[Callable[[], datetime]] = None):
        """
        Initialize an empty cache.

        Args:
            now: Clock returning timezone-aware datetimes (defaults to UTC now)
        """
        self._now = now or utc_now
        self._items: Dict[str, CacheEntry[V]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Tuple[Optional[V], bool]:
        """
        Look up a value.

        Args:
            key: Cache key

        Returns:
            ``(value, True)`` for a live entry, ``(None, False)`` otherwise.
            Entries without an expiry or expiring at or before now are
            removed as a side effect.
        """
        with self._lock:
            entry = self._items.get(key)
            if entry is None:
                return None, False

            if entry.expiry is None or entry.expiry <= self._now():
                del self._items[key]
                return None, False

            return entry.value, True

    def set(self, key: str, value: V, expiry: Optional[datetime]) -> None:
        """Insert or overwrite an entry. The expiry is not checked here."""
        with self._lock:
            self._items[key] = CacheEntry(value=value, expiry=expiry)

    def clear(self) -> None:
        with self._lock:
            self._items = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __contains__(self, key: str) -> bool:
        # Raw membership, without expiry checks or eviction
        with self._lock:
            return key in self._items
