"""Canonical Pydantic models shared across untisrpc modules.

The models fall into two groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`RequestConfig`, :class:`CacheConfig`, :class:`OutputConfig`,
    :class:`GlobalConfig`, and :class:`Profile`.

**Session models** -- built at runtime and never persisted:
    :class:`Credentials`, :class:`SessionInfo`, and the enums
    :class:`SessionState`, :class:`CachePolicy`, :class:`ElementType`.

All models use Pydantic v2.  Credentials are frozen so that nothing can
change them once a session has been established.
"""

from __future__ import annotations

import enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from untisrpc import __version__

DEFAULT_USER_AGENT = f"untisrpc/{__version__}"


def normalize_server(server: str) -> str:
    """Return *server* with a URL scheme and without a trailing slash.

    ``mese.webuntis.com`` becomes ``https://mese.webuntis.com``; an explicit
    ``http://`` is left alone.
    """
    server = server.strip().rstrip("/")
    if not server.startswith(("http://", "https://")):
        server = f"https://{server}"
    return server


# --- Enums ---


class SessionState(str, enum.Enum):
    """States of the login state machine owned by a session controller."""

    LOGGED_OUT = "logged_out"
    LOGGED_IN = "logged_in"


class CachePolicy(str, enum.Enum):
    """Concurrency policy of a :class:`~untisrpc.cache.ResponseCache`.

    ``COORDINATED`` guarantees at most one in-flight fetch per missing key;
    ``UNCOORDINATED`` lets racing callers fetch twice (last write wins).
    """

    COORDINATED = "coordinated"
    UNCOORDINATED = "uncoordinated"


class ElementType(int, enum.Enum):
    """Element types understood by timetable and class register queries."""

    CLASS = 1
    TEACHER = 2
    SUBJECT = 3
    ROOM = 4
    STUDENT = 5
    OTHER = 6

    @classmethod
    def of(cls, value: int) -> ElementType:
        """Map a raw ``personType``/``type`` number to an element type.

        Values above 6 collapse to :attr:`OTHER`.

        Raises:
            ValueError: If *value* is below 1.
        """
        if value < 1:
            raise ValueError(f"Invalid element type: {value}")
        if value > 6:
            return cls.OTHER
        return cls(value)


# --- Configuration ---


class RequestConfig(BaseModel):
    """HTTP settings applied to every JSON-RPC call of a profile."""

    timeout: float = Field(default=30, description="Per-request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify TLS certificates")


class CacheConfig(BaseModel):
    """In-memory response cache settings."""

    enabled: bool = Field(default=True, description="Cache read-only query results")
    policy: CachePolicy = Field(
        default=CachePolicy.COORDINATED,
        description="coordinated (one fetch per missing key) or uncoordinated",
    )
    check_staleness: bool = Field(
        default=True,
        description="Compare cached entries against getLatestImportTime on every query",
    )
    staleness_interval: float = Field(
        default=60,
        description="Minimum seconds between two getLatestImportTime checks",
    )
    serve_stale_on_error: bool = Field(
        default=False,
        description="Return the previous value when a staleness refresh fails",
    )


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`GlobalConfig`."""

    format: str = Field(default="auto", description="Output format: auto, json, plain, rich")


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/untisrpc/config.json``.

    See :func:`~untisrpc.config.resolve_config` for how these values are
    layered with project config, environment variables, and CLI flags.
    """

    default_profile: Optional[str] = None
    auto_select_single_profile: bool = True
    output: OutputConfig = Field(default_factory=OutputConfig)


class Profile(BaseModel):
    """Connection profile for one WebUntis account, stored under ``profiles/``.

    The password itself is never stored; ``password_source`` describes where
    to read it from at login time (``env:VAR``, ``file:/path``, ``prompt``).
    """

    model_config = ConfigDict(extra="allow")

    name: str
    server: str = Field(description="WebUntis host, e.g. mese.webuntis.com")
    school: str = Field(description="School login name")
    username: str
    password_source: str = Field(default="prompt")
    user_agent: str = Field(default=DEFAULT_USER_AGENT)
    request: RequestConfig = Field(default_factory=RequestConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)


# --- Session ---


class Credentials(BaseModel):
    """Everything needed to (re-)authenticate.  Immutable."""

    model_config = ConfigDict(frozen=True)

    username: str
    password: str = Field(repr=False)
    server: str
    school: str
    user_agent: str = DEFAULT_USER_AGENT

    @field_validator("server")
    @classmethod
    def _normalize_server(cls, value: str) -> str:
        return normalize_server(value)


class SessionInfo(BaseModel):
    """What the server told us about the logged-in account."""

    model_config = ConfigDict(frozen=True)

    session_id: str = Field(repr=False)
    person_id: Optional[int] = None
    person_type: Optional[ElementType] = None
    class_id: Optional[int] = None
