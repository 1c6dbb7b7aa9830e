"""Single JSON-RPC exchange over HTTP(S).

:class:`Transport` posts one :class:`~untisrpc.rpc.envelope.RequestEnvelope`
to ``<server>/WebUntis/jsonrpc.do?school=<school>`` and returns a
:class:`~untisrpc.rpc.envelope.ResponseEnvelope`.  It knows nothing about
sessions or caching: the caller passes any session headers in.

Behaviour worth knowing:

- A JSON body is decoded whatever the HTTP status; WebUntis reports
  JSON-RPC errors in 200 responses as well as in error responses.
- Connection failures, timeouts and bodies that are not a JSON object
  raise :class:`~untisrpc.exceptions.TransportError`.
- Nothing is retried.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Optional

import httpx

from untisrpc.exceptions import DeadlineExceededError, TransportError
from untisrpc.models import DEFAULT_USER_AGENT, RequestConfig, normalize_server
from untisrpc.rpc.deadline import Deadline
from untisrpc.rpc.envelope import RequestEnvelope, ResponseEnvelope

logger = logging.getLogger(__name__)

JSONRPC_PATH = "/WebUntis/jsonrpc.do"
CONTENT_TYPE = "application/json;charset=UTF-8"


class Transport:
    """Blocking JSON-RPC transport backed by :class:`httpx.Client`.

    The HTTP client is created lazily on first use and closed by
    :meth:`close` (or on leaving the ``with`` block).  A pre-built client
    may be injected, e.g. one using :class:`httpx.MockTransport` in tests;
    an injected client is still closed by :meth:`close`.

    Args:
        server: WebUntis host, with or without scheme.
        school: School login name, sent as the ``school`` query parameter.
        user_agent: Value of the ``User-Agent`` header.
        config: Timeout and TLS verification settings.
        http_client: Optional pre-configured :class:`httpx.Client`.

    Example::

        with Transport("mese.webuntis.com", "demo") as transport:
            envelope = transport.send(RequestEnvelope(method="getLatestImportTime"))
    """

    def __init__(
        self,
        server: str,
        school: str,
        user_agent: str = DEFAULT_USER_AGENT,
        config: Optional[RequestConfig] = None,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self._server = normalize_server(server)
        self._school = school
        self._user_agent = user_agent
        self._config = config or RequestConfig()
        self._client = http_client
        self._client_lock = threading.Lock()

    @property
    def url(self) -> str:
        """The endpoint URL, without the ``school`` query parameter."""
        return f"{self._server}{JSONRPC_PATH}"

    @property
    def school(self) -> str:
        return self._school

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> Transport:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        with self._client_lock:
            client, self._client = self._client, None
        if client is not None:
            client.close()

    # ------------------------------------------------------------------ #
    # Public
    # ------------------------------------------------------------------ #

    def send(
        self,
        envelope: RequestEnvelope,
        headers: Optional[dict[str, str]] = None,
        deadline: Optional[Deadline] = None,
    ) -> ResponseEnvelope:
        """Perform one request/response exchange.

        Args:
            envelope: The call to send.
            headers: Extra headers (e.g. the session cookie).
            deadline: Optional cancellation token bounding this call.

        Returns:
            The decoded :class:`ResponseEnvelope`, which may carry a
            JSON-RPC error.

        Raises:
            TransportError: On network failure, timeout, or a body that is
                not a JSON object.
            DeadlineExceededError: If *deadline* expired.
            RequestCancelledError: If *deadline* was cancelled.
        """
        what = f"'{envelope.method}'"
        if deadline is not None:
            deadline.check(what)

        merged_headers = {"User-Agent": self._user_agent, "Content-Type": CONTENT_TYPE}
        merged_headers.update(headers or {})
        content = envelope.to_json()

        logger.debug("POST %s method=%s", self.url, envelope.method)
        try:
            response = self._http().post(
                self.url,
                params={"school": self._school},
                content=content.encode("utf-8"),
                headers=merged_headers,
                timeout=self._timeout(deadline),
            )
        except httpx.TimeoutException as exc:
            if deadline is not None and deadline.expired:
                raise DeadlineExceededError(f"{what} exceeded its deadline") from exc
            raise TransportError(f"Timed out calling {what}: {exc}") from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"Connection failed calling {what}: {exc}") from exc

        if deadline is not None:
            deadline.check(what)

        body = self._decode_body(response, what)
        logger.debug(
            "Response for %s: HTTP %d%s",
            envelope.method,
            response.status_code,
            " (error)" if "error" in body else "",
        )
        return ResponseEnvelope.from_body(response.status_code, body, envelope.method)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _http(self) -> httpx.Client:
        with self._client_lock:
            if self._client is None:
                self._client = httpx.Client(
                    timeout=self._config.timeout,
                    verify=self._config.verify_ssl,
                    follow_redirects=True,
                )
            return self._client

    def _timeout(self, deadline: Optional[Deadline]) -> float:
        """The HTTP timeout for one call: the configured one, capped by the deadline."""
        timeout = float(self._config.timeout)
        if deadline is not None:
            remaining = deadline.remaining()
            if remaining is not None:
                timeout = min(timeout, remaining)
        return timeout

    @staticmethod
    def _decode_body(response: httpx.Response, what: str) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError as exc:
            snippet = response.text[:200] if response.text else ""
            raise TransportError(
                f"HTTP {response.status_code} for {what} is not JSON: {snippet!r}"
            ) from exc
        if not isinstance(body, dict):
            raise TransportError(
                f"HTTP {response.status_code} for {what} is not a JSON object"
            )
        return body
