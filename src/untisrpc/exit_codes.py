"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to an error category and is referenced by the
corresponding :class:`~untisrpc.exceptions.UntisError` subclass, so that
shell scripts can tell a rejected login from an unreachable server without
parsing stderr.

Example::

    $ untisrpc query rooms
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- the server rejected the credentials
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments."""

EXIT_AUTH_FAILURE = 3
"""Login failed, or a call was made without an active session."""

EXIT_PROTOCOL_ERROR = 5
"""The server answered with a JSON-RPC error object."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused, garbage body)."""
