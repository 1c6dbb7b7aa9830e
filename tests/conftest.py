"""Shared test fixtures for untisrpc.

Provides an in-process fake WebUntis server mounted on
:class:`httpx.MockTransport`, isolated config directories, output state
management and a CLI runner.  These fixtures are discovered automatically
by pytest.
"""

from __future__ import annotations

import json
import threading
import time
from pathlib import Path
from typing import Any, Optional

import httpx
import pytest

from untisrpc.output import OutputFormat, OutputManager, reset_output, set_output

FIXTURES_DIR = Path(__file__).parent / "fixtures"

SERVER = "https://mese.webuntis.com"
SCHOOL = "demo"
USERNAME = "jdoe"
PASSWORD = "secret"

# method -> fixture file served as its result
FIXTURE_METHODS = {
    "getRooms": "rooms.json",
    "getTeachers": "teachers.json",
    "getSubjects": "subjects.json",
    "getKlassen": "klassen.json",
    "getDepartments": "departments.json",
    "getHolidays": "holidays.json",
    "getSchoolyears": "schoolyears.json",
    "getCurrentSchoolyear": "current_schoolyear.json",
    "getTimegridUnits": "timegrid.json",
    "getTimetable": "timetable.json",
}


def load_fixture(name: str) -> Any:
    with open(FIXTURES_DIR / name, encoding="utf-8") as f:
        return json.load(f)


# ---------------------------------------------------------------------------
# Fake server
# ---------------------------------------------------------------------------


class FakeUntisServer:
    """A WebUntis JSON-RPC endpoint that records every call it receives.

    Data methods answer from ``tests/fixtures``; ``getLatestImportTime``
    answers :attr:`epoch`.  Set ``errors[method] = (code, message)`` to make
    a method fail, or ``broken[method] = httpx.Response(...)`` to return a
    raw HTTP response instead.
    """

    def __init__(self, epoch: int = 1_700_000_000_000) -> None:
        self.epoch = epoch
        self.password = PASSWORD
        self.results: dict[str, Any] = {
            method: load_fixture(name) for method, name in FIXTURE_METHODS.items()
        }
        self.errors: dict[str, tuple[int, str]] = {}
        self.broken: dict[str, httpx.Response] = {}
        self.delay: float = 0.0
        self.calls: list[dict[str, Any]] = []
        self.requests: list[httpx.Request] = []
        self.logins = 0
        self._sessions: set[str] = set()
        self._lock = threading.Lock()

    # -- inspection ---------------------------------------------------------

    def count(self, method: Optional[str] = None) -> int:
        with self._lock:
            if method is None:
                return len(self.calls)
            return sum(1 for call in self.calls if call["method"] == method)

    def methods(self) -> list[str]:
        with self._lock:
            return [call["method"] for call in self.calls]

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))

    def expire_sessions(self) -> None:
        """Forget every issued session, as a server restart would."""
        with self._lock:
            self._sessions.clear()

    # -- request handling ---------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        method = body["method"]
        params = body.get("params", {})
        with self._lock:
            self.calls.append(
                {"method": method, "params": params, "cookie": request.headers.get("cookie")}
            )
            self.requests.append(request)

        if self.delay:
            time.sleep(self.delay)
        if method in self.broken:
            return self.broken[method]
        if method in self.errors:
            code, message = self.errors[method]
            return _error(code, message)

        if method == "authenticate":
            return self._authenticate(params)

        session_id = _session_from_cookie(request.headers.get("cookie", ""))
        with self._lock:
            known = session_id in self._sessions
        if not known:
            return _error(-8520, "not authenticated")

        if method == "logout":
            with self._lock:
                self._sessions.discard(session_id)
            return _result(None)
        if method == "getLatestImportTime":
            return _result(self.epoch)
        if method in self.results:
            return _result(self.results[method])
        return _error(-32601, f"Method not found: {method}")

    def _authenticate(self, params: dict[str, Any]) -> httpx.Response:
        if params.get("user") != USERNAME or params.get("password") != self.password:
            return _error(-8504, "bad credentials")
        with self._lock:
            self.logins += 1
            session_id = f"SESSION-{self.logins}"
            self._sessions.add(session_id)
        return _result(
            {"sessionId": session_id, "personType": 5, "personId": 77, "klasseId": 3}
        )


def _result(result: Any) -> httpx.Response:
    return httpx.Response(200, json={"id": "ID", "jsonrpc": "2.0", "result": result})


def _error(code: int, message: str) -> httpx.Response:
    return httpx.Response(
        200, json={"id": "ID", "jsonrpc": "2.0", "error": {"code": code, "message": message}}
    )


def _session_from_cookie(cookie: str) -> str:
    for part in cookie.split(";"):
        name, _, value = part.strip().partition("=")
        if name == "JSESSIONID":
            return value
    return ""


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def untis_server() -> FakeUntisServer:
    return FakeUntisServer()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The manager holds references to the streams it was created with; once
    CliRunner has swapped them back they are closed.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point XDG directories at ``tmp_path`` and clear UNTISRPC_* variables.

    Also changes the working directory to ``tmp_path`` so that a stray
    ``untisrpc.json`` never leaks in.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("untisrpc.config._is_xdg_platform", lambda: True)
    for var in ["UNTISRPC_PROFILE", "UNTISRPC_SERVER", "NO_COLOR"]:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def json_output() -> OutputManager:
    output = OutputManager(format=OutputFormat.JSON)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    from typer.testing import CliRunner

    return CliRunner()
