"""Session state for untisrpc.

- :class:`SessionController` -- login/logout/reconnect state machine that
  attaches the session cookie to every call.
- :class:`StalenessOracle` -- lazily observes the server's change epoch
  (``getLatestImportTime``) and fails open when it cannot.
"""

from untisrpc.session.controller import SessionController
from untisrpc.session.staleness import StalenessOracle

__all__ = ["SessionController", "StalenessOracle"]
