"""JSON-RPC plumbing: envelopes, deadlines, and the HTTP transport.

Classes:
    :class:`RequestEnvelope` / :class:`ResponseEnvelope` -- the wire shapes.
    :class:`Deadline` -- per-call timeout and cancellation token.
    :class:`Transport` -- one request/response exchange over :mod:`httpx`.

Nothing in this package knows about sessions or caching; see
:mod:`untisrpc.session` and :mod:`untisrpc.cache` for those.
"""

from untisrpc.rpc.deadline import Deadline
from untisrpc.rpc.envelope import RequestEnvelope, ResponseEnvelope, RpcError
from untisrpc.rpc.transport import Transport

__all__ = ["Deadline", "RequestEnvelope", "ResponseEnvelope", "RpcError", "Transport"]
