"""Per-call deadlines and cancellation.

A :class:`Deadline` is created by the caller and threaded through
:meth:`~untisrpc.coordinator.RequestCoordinator.query`,
:meth:`~untisrpc.session.controller.SessionController.post` and
:meth:`~untisrpc.rpc.transport.Transport.send`.  The transport checks it
before sending, bounds the HTTP timeout by the time remaining, and checks
it again once the response arrives.

A deadline may be cancelled from another thread.  An HTTP exchange that is
already on the wire is not interrupted; its response is discarded instead.
"""

from __future__ import annotations

import threading
import time
from typing import Optional

from untisrpc.exceptions import DeadlineExceededError, RequestCancelledError


class Deadline:
    """A cancellation token with an optional absolute expiry.

    Args:
        timeout: Seconds from now until the deadline expires.  ``None``
            means the token can only be cancelled, never expire.

    Example::

        deadline = Deadline(timeout=5)
        rooms = session.get_rooms(deadline=deadline)
    """

    def __init__(self, timeout: Optional[float] = None) -> None:
        self._expires_at: Optional[float] = (
            time.monotonic() + timeout if timeout is not None else None
        )
        self._cancelled = threading.Event()

    def remaining(self) -> Optional[float]:
        """Seconds left, clamped at zero, or ``None`` for an unbounded token."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Cancel every call that checks this token from now on."""
        self._cancelled.set()

    def check(self, what: str = "request") -> None:
        """Raise if the token was cancelled or has expired.

        Raises:
            RequestCancelledError: If :meth:`cancel` was called.
            DeadlineExceededError: If the deadline has passed.
        """
        if self.cancelled:
            raise RequestCancelledError(f"{what} cancelled")
        if self.expired:
            raise DeadlineExceededError(f"{what} exceeded its deadline")
