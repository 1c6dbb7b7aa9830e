"""In-memory cache of decoded query results.

Entries are keyed by :class:`~untisrpc.cache.keys.CacheKey` and hold the
decoded value together with the change epoch it was fetched at.  An entry
whose epoch is older than the epoch a caller asks for is *stale*: it is
refreshed through the caller's fetch function and replaced only if that
fetch succeeds.  Failed fetches never store anything.

How concurrent misses are handled is a strategy fixed at construction:

- :class:`CoordinatedLoader` -- at most one in-flight fetch per key;
  concurrent callers wait for it and share its result.
- :class:`UncoordinatedLoader` -- racing callers each fetch; entries are
  immutable and swapped in whole, so the last write wins and nobody ever
  sees a half-built entry.

See Also:
    :class:`~untisrpc.models.CacheConfig` -- selects the policy.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from untisrpc.cache.keys import CacheKey
from untisrpc.models import CachePolicy

logger = logging.getLogger(__name__)

FetchFn = Callable[[], Any]


@dataclass(frozen=True)
class CacheEntry:
    """A decoded result and the change epoch it was fetched at."""

    value: Any
    epoch: int = 0
    stored_at: float = field(default_factory=time.time)

    def is_stale(self, epoch: int) -> bool:
        return self.epoch < epoch


class Loader(ABC):
    """Strategy that runs a fetch for a missing or stale key and stores the result."""

    policy: CachePolicy

    @abstractmethod
    def load(
        self, cache: ResponseCache, key: CacheKey, fetch: FetchFn, epoch: int
    ) -> CacheEntry:
        """Fetch, store and return a fresh entry for *key*.

        Exceptions raised by *fetch* propagate and leave the cache untouched.
        """
        ...

    @staticmethod
    def _fetch_and_store(
        cache: ResponseCache, key: CacheKey, fetch: FetchFn, epoch: int
    ) -> CacheEntry:
        entry = CacheEntry(value=fetch(), epoch=epoch)
        cache.put(key, entry)
        return entry


class UncoordinatedLoader(Loader):
    """Fetch without coordination; duplicate fetches under a race are allowed."""

    policy = CachePolicy.UNCOORDINATED

    def load(
        self, cache: ResponseCache, key: CacheKey, fetch: FetchFn, epoch: int
    ) -> CacheEntry:
        return self._fetch_and_store(cache, key, fetch, epoch)


class CoordinatedLoader(Loader):
    """Serialise fetches per key so each miss is fetched exactly once.

    Per-key locks are reference counted and dropped as soon as nobody holds
    or waits for them, so the lock table never outgrows the set of keys
    currently being loaded.
    """

    policy = CachePolicy.COORDINATED

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[CacheKey, list[Any]] = {}  # key -> [lock, refcount]

    def load(
        self, cache: ResponseCache, key: CacheKey, fetch: FetchFn, epoch: int
    ) -> CacheEntry:
        with self._key_lock(key):
            # Another caller may have loaded the key while we waited.
            entry = cache.get(key)
            if entry is not None and not entry.is_stale(epoch):
                return entry
            return self._fetch_and_store(cache, key, fetch, epoch)

    @contextmanager
    def _key_lock(self, key: CacheKey) -> Iterator[None]:
        with self._guard:
            slot = self._locks.setdefault(key, [threading.Lock(), 0])
            slot[1] += 1
        try:
            with slot[0]:
                yield
        finally:
            with self._guard:
                slot[1] -= 1
                if slot[1] == 0 and self._locks.get(key) is slot:
                    del self._locks[key]

    @property
    def pending(self) -> int:
        """Number of keys with a fetch in flight or queued."""
        with self._guard:
            return len(self._locks)


def make_loader(policy: CachePolicy) -> Loader:
    if policy is CachePolicy.COORDINATED:
        return CoordinatedLoader()
    return UncoordinatedLoader()


class ResponseCache:
    """Process-lifetime cache of decoded JSON-RPC results.

    Args:
        policy: Concurrency policy for :meth:`get_or_compute`.  Fixed for
            the lifetime of the cache.

    Example::

        cache = ResponseCache(CachePolicy.COORDINATED)
        key = CacheKey.of("getRooms")
        entry = cache.get_or_compute(key, lambda: fetch_rooms(), epoch=42)
    """

    def __init__(self, policy: CachePolicy = CachePolicy.COORDINATED) -> None:
        self._loader = make_loader(CachePolicy(policy))
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._refreshes = 0

    @property
    def policy(self) -> CachePolicy:
        return self._loader.policy

    def get(self, key: CacheKey) -> Optional[CacheEntry]:
        """Return the entry stored for *key*, or ``None``."""
        with self._lock:
            return self._entries.get(key)

    def put(self, key: CacheKey, entry: CacheEntry) -> None:
        """Store *entry* under *key*, replacing any previous entry."""
        with self._lock:
            self._entries[key] = entry

    def invalidate(self, key: CacheKey) -> None:
        """Remove the entry for *key*.  A no-op for unknown keys."""
        with self._lock:
            self._entries.pop(key, None)
        logger.debug("Invalidated %s", key)

    def clear(self) -> None:
        """Remove every entry."""
        with self._lock:
            self._entries.clear()

    def get_or_compute(self, key: CacheKey, fetch: FetchFn, epoch: int = 0) -> CacheEntry:
        """Return a fresh entry for *key*, calling *fetch* on a miss or when stale.

        Args:
            key: The cache key.
            fetch: Zero-argument callable producing the decoded value.
            epoch: The current change epoch.  Entries stored at an older
                epoch are refreshed before being returned.

        Returns:
            The cached or newly stored :class:`CacheEntry`.

        Raises:
            Exception: Whatever *fetch* raised.  Nothing is stored and any
                previous entry stays in place.
        """
        entry = self.get(key)
        if entry is not None and not entry.is_stale(epoch):
            with self._lock:
                self._hits += 1
            logger.debug("Cache hit: %s", key)
            return entry

        with self._lock:
            if entry is None:
                self._misses += 1
            else:
                self._refreshes += 1
        logger.debug(
            "Cache %s: %s (epoch %d)", "miss" if entry is None else "refresh", key, epoch
        )
        return self._loader.load(self, key, fetch, epoch)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def stats(self) -> dict[str, Any]:
        """Return cache statistics.

        Returns:
            A ``dict`` with ``policy``, ``size``, ``hits``, ``misses`` and
            ``refreshes``.
        """
        with self._lock:
            return {
                "policy": self.policy.value,
                "size": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "refreshes": self._refreshes,
            }
