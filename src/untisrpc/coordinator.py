"""Cache-then-network dispatch for one logical query.

:class:`RequestCoordinator` is where the session, the staleness oracle and
the response cache meet.  For every :meth:`~RequestCoordinator.query`:

1. Refuse to run while logged out, even when the answer is cached.
2. Without caching, or for ``authenticate``/``logout``, post the call and
   decode the response.
3. Otherwise build the :class:`~untisrpc.cache.CacheKey`, ask the oracle
   for the current change epoch, and let the cache return an entry that is
   at least that fresh -- fetching and decoding on a miss, refreshing when
   the cached entry predates the epoch.

A stale entry is never returned as a hit.  If its refresh fails the entry
stays cached and the error reaches the caller, unless
``serve_stale_on_error`` is set.  Errors are never cached.

Cached values are shared by every caller.  Record decoders return tuples of
frozen records; raw ``list``/``dict`` payloads are deep-copied on the way
out so a caller editing its result cannot change the cached entry.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Callable, Optional, TypeVar

from untisrpc.cache import CacheKey, ResponseCache
from untisrpc.exceptions import NotLoggedInError, UntisError
from untisrpc.methods import SESSION_METHODS
from untisrpc.models import CacheConfig
from untisrpc.rpc.deadline import Deadline
from untisrpc.rpc.envelope import ResponseEnvelope
from untisrpc.session import SessionController, StalenessOracle

logger = logging.getLogger(__name__)

T = TypeVar("T")

Decoder = Callable[[ResponseEnvelope], T]


def decode_result(envelope: ResponseEnvelope) -> Any:
    """Default decoder: the raw ``result`` payload."""
    return envelope.result


def _detached(value: T) -> T:
    if isinstance(value, (list, dict)):
        return copy.deepcopy(value)
    return value


class RequestCoordinator:
    """Routes queries through the cache, the oracle and the session.

    Args:
        controller: Session used for every network call.
        cache: Response cache; ``None`` disables caching.
        oracle: Staleness oracle; ``None`` (or ``check_staleness=False`` in
            *config*) means cached entries never go stale.
        config: Cache settings.  ``enabled=False`` disables caching even
            when a cache is given.
    """

    def __init__(
        self,
        controller: SessionController,
        cache: Optional[ResponseCache] = None,
        oracle: Optional[StalenessOracle] = None,
        config: Optional[CacheConfig] = None,
    ) -> None:
        self._config = config or CacheConfig()
        self._controller = controller
        self._cache = cache if self._config.enabled else None
        self._oracle = oracle if self._config.check_staleness else None

    @property
    def use_cache(self) -> bool:
        return self._cache is not None

    @property
    def cache(self) -> Optional[ResponseCache]:
        return self._cache

    def query(
        self,
        method: str,
        params: Optional[dict[str, Any]] = None,
        decode: Decoder[T] = decode_result,
        deadline: Optional[Deadline] = None,
    ) -> T:
        """Return the decoded answer to ``method(params)``.

        Args:
            method: JSON-RPC method name.
            params: Parameter mapping.
            decode: Pure function turning the response envelope into the
                result type.  Its exceptions propagate and are not cached.
            deadline: Optional cancellation token for every network call
                made on behalf of this query.

        Raises:
            NotLoggedInError: If the session is logged out.
            ProtocolError: If the server reported an error.
            TransportError: On connection-level failure.
        """
        method = str(getattr(method, "value", method))
        if not self._controller.is_logged_in:
            raise NotLoggedInError(f"Cannot call '{method}': not logged in")

        def fetch() -> T:
            return decode(self._controller.post(method, params, deadline=deadline))

        if self._cache is None or method in SESSION_METHODS:
            return fetch()

        key = CacheKey.of(method, params)
        epoch = self._oracle.current_epoch(deadline) if self._oracle is not None else 0
        try:
            return _detached(self._cache.get_or_compute(key, fetch, epoch).value)
        except UntisError as exc:
            if self._config.serve_stale_on_error:
                stale = self._cache.get(key)
                if stale is not None:
                    logger.warning(
                        "Refreshing %s failed, serving data from epoch %d: %s",
                        key, stale.epoch, exc,
                    )
                    return _detached(stale.value)
            raise

    def invalidate(self, method: str, params: Optional[dict[str, Any]] = None) -> None:
        """Drop the cached answer to ``method(params)``, if any."""
        if self._cache is not None:
            self._cache.invalidate(CacheKey.of(method, params))
