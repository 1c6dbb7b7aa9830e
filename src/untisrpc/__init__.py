"""untisrpc -- a cache-coherent client for the WebUntis JSON-RPC API.

The package authenticates once against a school's WebUntis server and then
issues typed read-only queries (rooms, teachers, timetables, holidays, ...)
through that session.  Responses are cached in memory and kept consistent
with the server by comparing against its "latest import time" counter.

Typical usage::

    from untisrpc.api import UntisSession

    with UntisSession.login("user", "secret", "mese.webuntis.com", "demo-school") as session:
        for room in session.get_rooms():
            print(room.name)

Modules:
    api: :class:`~untisrpc.api.UntisSession`, the high-level facade.
    coordinator: Cache-then-network dispatch for a single logical query.
    rpc: JSON-RPC envelopes, deadlines, and the HTTP transport.
    session: Login state machine and the staleness oracle.
    cache: In-memory response cache with pluggable concurrency policies.
    app: Typer application and CLI entry point.
"""

__version__ = "0.3.0"
