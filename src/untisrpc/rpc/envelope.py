"""JSON-RPC 2.0 request and response envelopes.

:class:`RequestEnvelope` is built once per call and serialised to the exact
body shape the WebUntis endpoint expects::

    {"id":"ID","method":"getRooms","jsonrpc":"2.0","params":{}}

:class:`ResponseEnvelope` wraps the HTTP status and the decoded JSON body.
A reserved ``error`` member is lifted into :class:`RpcError`; callers
reach the payload through :attr:`ResponseEnvelope.result`, which raises
:class:`~untisrpc.exceptions.ProtocolError` when an error is present.
"""

from __future__ import annotations

import json
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from untisrpc.exceptions import InvalidUsageError, ProtocolError

JSONRPC_VERSION = "2.0"
REQUEST_ID = "ID"

# Code reported when a response carries neither a result nor a usable error.
INVALID_RESPONSE_CODE = -32603


class RpcError(BaseModel):
    """A JSON-RPC error object (``code`` + ``message``)."""

    model_config = ConfigDict(frozen=True)

    code: int
    message: str


class RequestEnvelope(BaseModel):
    """One outgoing JSON-RPC call.  Immutable, never retained after sending."""

    model_config = ConfigDict(frozen=True)

    method: str
    params: dict[str, Any] = Field(default_factory=dict)
    id: str = REQUEST_ID
    jsonrpc: str = JSONRPC_VERSION

    def to_json(self) -> str:
        """Serialise to the wire body, keeping the parameter order as given.

        Raises:
            InvalidUsageError: If a parameter value is not JSON-serialisable.
        """
        body = {
            "id": self.id,
            "method": self.method,
            "jsonrpc": self.jsonrpc,
            "params": self.params,
        }
        try:
            return json.dumps(body, separators=(",", ":"), ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise InvalidUsageError(
                f"Parameters for '{self.method}' are not JSON-serialisable: {exc}"
            ) from exc


class ResponseEnvelope(BaseModel):
    """The server's answer to one call.  Consumed once by a decoder."""

    model_config = ConfigDict(frozen=True)

    status_code: int
    body: dict[str, Any]
    method: str = ""
    error: Optional[RpcError] = None

    @classmethod
    def from_body(
        cls, status_code: int, body: dict[str, Any], method: str = ""
    ) -> ResponseEnvelope:
        """Build an envelope, extracting the reserved ``error`` member if any."""
        error: Optional[RpcError] = None
        raw_error = body.get("error")
        if raw_error is not None:
            if isinstance(raw_error, dict):
                code = raw_error.get("code", INVALID_RESPONSE_CODE)
                message = raw_error.get("message", "")
            else:
                code, message = INVALID_RESPONSE_CODE, str(raw_error)
            try:
                code = int(code)
            except (TypeError, ValueError):
                code = INVALID_RESPONSE_CODE
            error = RpcError(code=code, message=str(message))
        return cls(status_code=status_code, body=body, method=method, error=error)

    @property
    def is_error(self) -> bool:
        """Whether the server reported a JSON-RPC error."""
        return self.error is not None

    def raise_for_error(self) -> None:
        """Raise :class:`ProtocolError` if this envelope carries an error."""
        if self.error is not None:
            raise ProtocolError(self.error.code, self.error.message, self.method or None)

    @property
    def result(self) -> Any:
        """The ``result`` payload.

        Raises:
            ProtocolError: If the envelope carries an error, or has no
                ``result`` member at all.
        """
        self.raise_for_error()
        if "result" not in self.body:
            raise ProtocolError(
                INVALID_RESPONSE_CODE, "response has no result", self.method or None
            )
        return self.body["result"]
