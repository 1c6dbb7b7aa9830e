"""Exception hierarchy for untisrpc.

All exceptions inherit from :class:`UntisError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`untisrpc.exit_codes`.
The top-level handler in :func:`untisrpc.app.main` catches ``UntisError``
and exits with the matching code.

Subclass hierarchy::

    UntisError (exit 1)
    +-- InvalidUsageError      (exit 2)
    +-- LoginError             (exit 3)
    +-- NotLoggedInError       (exit 3)
    +-- ProtocolError          (exit 5)
    +-- TransportError         (exit 6)
    |   +-- DeadlineExceededError
    |   +-- RequestCancelledError
    +-- ConfigError            (exit 1)
"""

from __future__ import annotations

from typing import Optional

from untisrpc.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_PROTOCOL_ERROR,
)


class UntisError(Exception):
    """Base exception for all untisrpc errors.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(UntisError):
    """Raised for invalid arguments, e.g. a date range ending before it starts."""

    exit_code = EXIT_INVALID_USAGE


class LoginError(UntisError):
    """Raised when ``authenticate`` returns an error or an unusable result.

    Fatal to the login attempt only; the controller stays logged out (or
    keeps its previous session when reconnecting).
    """

    exit_code = EXIT_AUTH_FAILURE

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class NotLoggedInError(UntisError):
    """Raised when a protected method is called while the session is logged out.

    No network traffic happens before this is raised.  Recover by calling
    ``login`` or ``reconnect``.
    """

    exit_code = EXIT_AUTH_FAILURE


class ProtocolError(UntisError):
    """Raised when the server answers with a JSON-RPC ``error`` object.

    The server's code and message are surfaced verbatim.
    """

    exit_code = EXIT_PROTOCOL_ERROR

    def __init__(self, code: int, message: str, method: Optional[str] = None):
        prefix = f"{method}: " if method else ""
        super().__init__(f"{prefix}server error {code}: {message}")
        self.code = code
        self.message = message
        self.method = method


class TransportError(UntisError):
    """Raised on connection-level failures (DNS, TCP, TLS, timeouts, non-JSON bodies).

    Never retried by this library; retry policy belongs to the caller.
    """

    exit_code = EXIT_CONNECTION_ERROR


class DeadlineExceededError(TransportError):
    """Raised when a call's deadline elapsed before or while it was sent."""


class RequestCancelledError(TransportError):
    """Raised when the caller cancelled a call's deadline token."""


class ConfigError(UntisError):
    """Raised for configuration problems (missing profiles, invalid JSON, bad password sources)."""

    exit_code = EXIT_GENERIC_FAILURE
