"""Login state machine and session-aware dispatch.

:class:`SessionController` owns the credentials, the current session token
and the ``LOGGED_OUT``/``LOGGED_IN`` state.  Every JSON-RPC call goes
through :meth:`SessionController.post`, which:

1. refuses protected calls while logged out, before any network I/O;
2. attaches ``Cookie: JSESSIONID=<token>; schoolname=<school>`` to every
   call except ``authenticate``;
3. raises :class:`~untisrpc.exceptions.ProtocolError` for JSON-RPC errors;
4. transitions to ``LOGGED_OUT`` after a successful ``logout``.

State transitions::

    LOGGED_OUT --login()--> LOGGED_IN --logout()--> LOGGED_OUT
    LOGGED_IN  --reconnect()--> LOGGED_IN (new token only if re-login succeeded)

The state lives in one immutable ``(state, info)`` snapshot that is swapped
under a lock, so concurrent ``post`` calls never see a token from one login
paired with the state of another.  Network I/O happens outside the lock.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Optional

from untisrpc.exceptions import LoginError, NotLoggedInError, ProtocolError, UntisError
from untisrpc.methods import Method
from untisrpc.models import Credentials, ElementType, SessionInfo, SessionState
from untisrpc.rpc.deadline import Deadline
from untisrpc.rpc.envelope import RequestEnvelope, ResponseEnvelope
from untisrpc.rpc.transport import Transport

logger = logging.getLogger(__name__)


class SessionController:
    """Owns the authentication lifecycle of one WebUntis account.

    Args:
        transport: The transport every call is sent through.
        credentials: Credentials used by :meth:`login` and :meth:`reconnect`.

    Example::

        controller = SessionController(transport, credentials)
        controller.login()
        envelope = controller.post("getRooms")
        controller.logout()
    """

    def __init__(self, transport: Transport, credentials: Credentials) -> None:
        self._transport = transport
        self._credentials = credentials
        self._lock = threading.Lock()
        self._reconnect_lock = threading.Lock()
        self._state = SessionState.LOGGED_OUT
        self._info: Optional[SessionInfo] = None

    # ------------------------------------------------------------------ #
    # State
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def is_logged_in(self) -> bool:
        return self.state is SessionState.LOGGED_IN

    @property
    def info(self) -> Optional[SessionInfo]:
        """Account details from the last successful login, or ``None``."""
        with self._lock:
            return self._info

    @property
    def credentials(self) -> Credentials:
        return self._credentials

    # ------------------------------------------------------------------ #
    # Transitions
    # ------------------------------------------------------------------ #

    def login(
        self,
        credentials: Optional[Credentials] = None,
        deadline: Optional[Deadline] = None,
    ) -> SessionInfo:
        """Authenticate and move to ``LOGGED_IN``.

        Args:
            credentials: Replaces the stored credentials, but only once the
                login succeeds.
            deadline: Optional cancellation token.

        Returns:
            The :class:`SessionInfo` issued by the server.

        Raises:
            LoginError: If the server rejected the login or its answer is
                unusable.  The controller state is left unchanged.
            TransportError: On connection-level failure.
        """
        credentials = credentials or self._credentials
        info = self._authenticate(credentials, deadline)
        with self._lock:
            self._credentials = credentials
            self._info = info
            self._state = SessionState.LOGGED_IN
        logger.debug("Logged in as %s (person %s)", credentials.username, info.person_id)
        return info

    def logout(self, deadline: Optional[Deadline] = None) -> None:
        """Send ``logout`` and move to ``LOGGED_OUT`` once the server confirms it.

        Raises:
            NotLoggedInError: If already logged out.
        """
        self.post(Method.LOGOUT.value, deadline=deadline)

    def reconnect(self, deadline: Optional[Deadline] = None) -> SessionInfo:
        """Log out (best effort), then log in again with the stored credentials.

        The active session is replaced only when the new login succeeds.  If
        it fails, the controller keeps whatever state the logout left it in:
        ``LOGGED_OUT`` when the logout went through, otherwise the previous
        session (which the server may already consider invalid).

        Raises:
            LoginError: If the new login is rejected.
            TransportError: If the new login cannot reach the server.
        """
        with self._reconnect_lock:
            if self.is_logged_in:
                try:
                    self.logout(deadline=deadline)
                except UntisError as exc:
                    logger.warning("Logout before reconnect failed, continuing: %s", exc)
            return self.login(deadline=deadline)

    # ------------------------------------------------------------------ #
    # Dispatch
    # ------------------------------------------------------------------ #

    def post(
        self,
        method: str,
        params: Optional[dict[str, Any]] = None,
        deadline: Optional[Deadline] = None,
    ) -> ResponseEnvelope:
        """Send one call with the session attached.

        Args:
            method: JSON-RPC method name.
            params: Parameter mapping (``{}`` when omitted).
            deadline: Optional cancellation token.

        Returns:
            A :class:`ResponseEnvelope` without a JSON-RPC error.

        Raises:
            NotLoggedInError: If logged out and *method* is not
                ``authenticate``.  Raised without any network I/O.
            ProtocolError: If the server answered with an error object.
            TransportError: On connection-level failure.
        """
        method = str(getattr(method, "value", method))
        headers: dict[str, str] = {}
        if method != Method.AUTHENTICATE.value:
            with self._lock:
                state, info = self._state, self._info
            if state is not SessionState.LOGGED_IN or info is None:
                raise NotLoggedInError(f"Cannot call '{method}': not logged in")
            headers["Cookie"] = self._cookie(info)

        envelope = self._transport.send(
            RequestEnvelope(method=method, params=dict(params or {})),
            headers=headers,
            deadline=deadline,
        )
        envelope.raise_for_error()

        if method == Method.LOGOUT.value:
            with self._lock:
                # Only end the session the logout was sent for; a concurrent
                # login may already have replaced it.
                if self._info is info:
                    self._state = SessionState.LOGGED_OUT
                    self._info = None
            logger.debug("Logged out")
        return envelope

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _cookie(self, info: SessionInfo) -> str:
        return f"JSESSIONID={info.session_id}; schoolname={self._transport.school}"

    def _authenticate(
        self, credentials: Credentials, deadline: Optional[Deadline]
    ) -> SessionInfo:
        params = {
            "user": credentials.username,
            "password": credentials.password,
            "client": credentials.user_agent,
        }
        try:
            envelope = self.post(Method.AUTHENTICATE.value, params, deadline=deadline)
        except ProtocolError as exc:
            raise LoginError(f"Login failed ({exc.code}): {exc.message}", code=exc.code) from exc

        result = envelope.body.get("result")
        if not isinstance(result, dict) or not result.get("sessionId"):
            raise LoginError("Login failed: response has no session id")

        try:
            person_type = result.get("personType")
            return SessionInfo(
                session_id=str(result["sessionId"]),
                person_id=result.get("personId"),
                person_type=ElementType.of(person_type) if person_type else None,
                class_id=result.get("klasseId"),
            )
        except (TypeError, ValueError) as exc:
            raise LoginError(f"Login failed: malformed response: {exc}") from exc
