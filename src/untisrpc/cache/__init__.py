"""In-memory response caching for untisrpc.

This package provides :class:`ResponseCache`, a process-lifetime cache of
decoded query results keyed by :class:`CacheKey` -- the JSON-RPC method plus
a canonical serialisation of its parameters, so that two parameter mappings
with the same content always hit the same entry regardless of key order or
object identity.

The cache is consumed by :class:`~untisrpc.coordinator.RequestCoordinator`
and is controlled by the ``cache`` section of a profile
(:class:`~untisrpc.models.CacheConfig`).
"""

from untisrpc.cache.cache import CacheEntry, ResponseCache
from untisrpc.cache.keys import CacheKey, canonicalize

__all__ = ["CacheEntry", "CacheKey", "ResponseCache", "canonicalize"]
