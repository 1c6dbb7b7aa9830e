"""Change detection against the server's ``getLatestImportTime`` counter.

WebUntis exposes a single, monotonically increasing "latest import time".
:class:`StalenessOracle` remembers the highest value observed so far (the
*change epoch*) and refreshes it lazily, on the caller's thread, when a
query asks and the last check is older than ``min_interval`` seconds.
There is no background polling.

The check is advisory: if the server cannot be reached the previous epoch
is kept and cached data continues to be served.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from untisrpc.exceptions import ProtocolError, UntisError
from untisrpc.methods import Method
from untisrpc.rpc.deadline import Deadline
from untisrpc.rpc.envelope import INVALID_RESPONSE_CODE
from untisrpc.session.controller import SessionController

logger = logging.getLogger(__name__)


class StalenessOracle:
    """Tracks the server's change epoch for one session.

    Args:
        controller: The controller used to call ``getLatestImportTime``.
        min_interval: Minimum seconds between two server checks.  ``0``
            checks on every query.
        clock: Monotonic clock, replaceable in tests.

    Example::

        oracle = StalenessOracle(controller, min_interval=30)
        oracle.current_epoch(force=True)   # prime right after login
        if oracle.has_changed(entry.epoch):
            ...
    """

    def __init__(
        self,
        controller: SessionController,
        min_interval: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._controller = controller
        self._min_interval = min_interval
        self._clock = clock
        self._lock = threading.Lock()
        self._epoch: Optional[int] = None
        self._checked_at: Optional[float] = None

    @property
    def last_seen(self) -> int:
        """The highest epoch observed so far, ``0`` before the first observation."""
        with self._lock:
            return self._epoch or 0

    def fetch_epoch(self, deadline: Optional[Deadline] = None) -> int:
        """Ask the server for its latest import time, without fail-open handling.

        Raises:
            UntisError: Whatever the controller raised, or a
                :class:`~untisrpc.exceptions.ProtocolError` for a
                non-numeric result.
        """
        envelope = self._controller.post(
            Method.GET_LATEST_IMPORT_TIME.value, deadline=deadline
        )
        result = envelope.result
        if isinstance(result, bool) or not isinstance(result, (int, float)):
            raise ProtocolError(
                INVALID_RESPONSE_CODE,
                f"latest import time is not a number: {result!r}",
                Method.GET_LATEST_IMPORT_TIME.value,
            )
        return int(result)

    def current_epoch(
        self, deadline: Optional[Deadline] = None, force: bool = False
    ) -> int:
        """Return the change epoch, refreshing it from the server when due.

        Args:
            deadline: Optional cancellation token for the server check.
            force: Check the server even if the last check is recent.

        Failures are logged and swallowed; the previously observed epoch is
        returned instead.  The epoch never moves backwards.
        """
        if not force and not self._due():
            return self.last_seen

        with self._lock:
            self._checked_at = self._clock()
        try:
            observed = self.fetch_epoch(deadline)
        except UntisError as exc:
            logger.debug("Staleness check failed, keeping epoch %d: %s", self.last_seen, exc)
            return self.last_seen

        with self._lock:
            if self._epoch is None or observed > self._epoch:
                if self._epoch is not None:
                    logger.debug("Change epoch advanced %d -> %d", self._epoch, observed)
                self._epoch = observed
            return self._epoch

    def has_changed(self, last_seen: int, deadline: Optional[Deadline] = None) -> bool:
        """Whether the server's epoch is newer than *last_seen*."""
        return self.current_epoch(deadline) > last_seen

    def reset(self) -> None:
        """Forget the observed epoch and the time of the last check."""
        with self._lock:
            self._epoch = None
            self._checked_at = None

    def _due(self) -> bool:
        with self._lock:
            if self._checked_at is None:
                return True
            return self._clock() - self._checked_at >= self._min_interval
