"""Tests for the JSON-RPC HTTP transport."""

from __future__ import annotations

import json
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import httpx
import pytest

from untisrpc.exceptions import (
    DeadlineExceededError,
    InvalidUsageError,
    RequestCancelledError,
    TransportError,
)
from untisrpc.models import RequestConfig
from untisrpc.rpc.deadline import Deadline
from untisrpc.rpc.envelope import RequestEnvelope
from untisrpc.rpc.transport import Transport


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _transport(handler, server: str = "mese.webuntis.com", **kwargs) -> Transport:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return Transport(server, "demo", http_client=client, **kwargs)


def _ok(result=None) -> httpx.Response:
    return httpx.Response(200, json={"id": "ID", "result": result})


# ---------------------------------------------------------------------------
# Request shape
# ---------------------------------------------------------------------------


class TestRequestShape:
    def test_posts_to_jsonrpc_endpoint_with_school(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return _ok([])

        with _transport(handler) as transport:
            transport.send(RequestEnvelope(method="getRooms"))

        request = seen[0]
        assert request.method == "POST"
        assert request.url.scheme == "https"
        assert request.url.host == "mese.webuntis.com"
        assert request.url.path == "/WebUntis/jsonrpc.do"
        assert request.url.params["school"] == "demo"

    def test_body_and_headers(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return _ok([])

        with _transport(handler, user_agent="tests/1.0") as transport:
            transport.send(RequestEnvelope(method="getRooms"), headers={"Cookie": "JSESSIONID=abc"})

        request = seen[0]
        assert request.content == b'{"id":"ID","method":"getRooms","jsonrpc":"2.0","params":{}}'
        assert request.headers["content-type"] == "application/json;charset=UTF-8"
        assert request.headers["user-agent"] == "tests/1.0"
        assert request.headers["cookie"] == "JSESSIONID=abc"

    def test_url_property(self) -> None:
        transport = Transport("https://mese.webuntis.com/", "demo")
        assert transport.url == "https://mese.webuntis.com/WebUntis/jsonrpc.do"
        assert transport.school == "demo"

    def test_explicit_http_scheme_kept(self) -> None:
        transport = Transport("http://localhost:8080", "demo")
        assert transport.url == "http://localhost:8080/WebUntis/jsonrpc.do"

    def test_unserialisable_params_fail_before_io(self) -> None:
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return _ok()

        with _transport(handler) as transport:
            with pytest.raises(InvalidUsageError):
                transport.send(RequestEnvelope(method="getRooms", params={"x": object()}))
        assert calls == []


# ---------------------------------------------------------------------------
# Response decoding
# ---------------------------------------------------------------------------


class TestResponseDecoding:
    def test_result_is_decoded(self) -> None:
        with _transport(lambda request: _ok([{"id": 1}])) as transport:
            envelope = transport.send(RequestEnvelope(method="getRooms"))
        assert envelope.status_code == 200
        assert envelope.method == "getRooms"
        assert envelope.result == [{"id": 1}]

    def test_error_body_in_non_2xx_is_decoded(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, json={"id": "ID", "error": {"code": -32601, "message": "nope"}})

        with _transport(handler) as transport:
            envelope = transport.send(RequestEnvelope(method="getFoo"))
        assert envelope.status_code == 500
        assert envelope.is_error
        assert envelope.error is not None and envelope.error.code == -32601

    def test_error_body_in_200_is_decoded(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"id": "ID", "error": {"code": -8520, "message": "x"}})

        with _transport(handler) as transport:
            envelope = transport.send(RequestEnvelope(method="getRooms"))
        assert envelope.is_error

    def test_non_json_body_is_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="<html>Bad Gateway</html>")

        with _transport(handler) as transport:
            with pytest.raises(TransportError, match="not JSON"):
                transport.send(RequestEnvelope(method="getRooms"))

    def test_json_array_body_is_transport_error(self) -> None:
        with _transport(lambda request: httpx.Response(200, json=[1, 2])) as transport:
            with pytest.raises(TransportError, match="not a JSON object"):
                transport.send(RequestEnvelope(method="getRooms"))


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:
    def test_connect_error_is_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with _transport(handler) as transport:
            with pytest.raises(TransportError, match="Connection failed"):
                transport.send(RequestEnvelope(method="getRooms"))

    def test_timeout_is_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("too slow", request=request)

        with _transport(handler) as transport:
            with pytest.raises(TransportError, match="Timed out") as exc_info:
                transport.send(RequestEnvelope(method="getRooms"))
        assert not isinstance(exc_info.value, DeadlineExceededError)

    def test_no_retry(self) -> None:
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            raise httpx.ConnectError("down", request=request)

        with _transport(handler) as transport:
            with pytest.raises(TransportError):
                transport.send(RequestEnvelope(method="getRooms"))
        assert len(calls) == 1


# ---------------------------------------------------------------------------
# Deadlines
# ---------------------------------------------------------------------------


class TestDeadlines:
    def test_expired_deadline_sends_nothing(self) -> None:
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return _ok()

        with _transport(handler) as transport:
            with pytest.raises(DeadlineExceededError):
                transport.send(RequestEnvelope(method="getRooms"), deadline=Deadline(timeout=0))
        assert calls == []

    def test_cancelled_deadline_sends_nothing(self) -> None:
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return _ok()

        deadline = Deadline()
        deadline.cancel()
        with _transport(handler) as transport:
            with pytest.raises(RequestCancelledError):
                transport.send(RequestEnvelope(method="getRooms"), deadline=deadline)
        assert calls == []

    def test_cancel_during_exchange_discards_response(self) -> None:
        deadline = Deadline()

        def handler(request: httpx.Request) -> httpx.Response:
            deadline.cancel()
            return _ok([])

        with _transport(handler) as transport:
            with pytest.raises(RequestCancelledError):
                transport.send(RequestEnvelope(method="getRooms"), deadline=deadline)

    def test_timeout_is_capped_by_deadline(self) -> None:
        transport = Transport("mese.webuntis.com", "demo", config=RequestConfig(timeout=30))
        assert transport._timeout(None) == 30
        assert transport._timeout(Deadline(timeout=5)) <= 5


class TestLifecycle:
    def test_close_releases_client(self) -> None:
        transport = _transport(lambda request: _ok())
        transport.send(RequestEnvelope(method="getRooms"))
        transport.close()
        assert transport._client is None

    def test_client_created_lazily(self) -> None:
        transport = Transport("mese.webuntis.com", "demo")
        assert transport._client is None
        client = transport._http()
        assert isinstance(client, httpx.Client)
        transport.close()

    def test_concurrent_first_use_builds_one_client(self, monkeypatch) -> None:
        built: list[object] = []

        class SlowClient:
            def __init__(self, **kwargs) -> None:
                time.sleep(0.05)
                built.append(self)

            def close(self) -> None:
                pass

        monkeypatch.setattr("untisrpc.rpc.transport.httpx.Client", SlowClient)
        transport = Transport("mese.webuntis.com", "demo")
        barrier = threading.Barrier(8)

        def first_use() -> object:
            barrier.wait()
            return transport._http()

        with ThreadPoolExecutor(max_workers=8) as pool:
            clients = list(pool.map(lambda _: first_use(), range(8)))

        assert len(built) == 1
        assert all(client is built[0] for client in clients)
        transport.close()
        assert transport._client is None

    def test_params_round_trip_through_body(self) -> None:
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return _ok()

        with _transport(handler) as transport:
            transport.send(RequestEnvelope(method="getKlassen", params={"schoolyearId": 8}))
        assert seen[0]["params"] == {"schoolyearId": 8}
