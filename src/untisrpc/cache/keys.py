"""Cache keys with structural equality.

A :class:`CacheKey` is the JSON-RPC method name plus a canonical string form
of the parameter mapping: keys sorted at every nesting level, no
insignificant whitespace, and a fixed text form for the few non-JSON types
callers tend to pass (dates, enums, sets, tuples).  Two keys are equal if
and only if both parts are equal, so freshly built parameter dicts with the
same content always resolve to the same entry.
"""

from __future__ import annotations

import datetime as dt
import enum
import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional

from untisrpc.exceptions import InvalidUsageError


def _normalize(value: Any) -> Any:
    """Turn *value* into plain JSON types with a deterministic layout."""
    if isinstance(value, Mapping):
        for key in value:
            if not isinstance(key, str):
                raise InvalidUsageError(
                    f"Parameter names must be strings, got {type(key).__name__}: {key!r}"
                )
        return {key: _normalize(value[key]) for key in value}
    if isinstance(value, enum.Enum):
        return _normalize(value.value)
    if isinstance(value, (list, tuple)):
        return [_normalize(item) for item in value]
    if isinstance(value, (set, frozenset)):
        items = [_normalize(item) for item in value]
        return sorted(items, key=lambda item: json.dumps(item, sort_keys=True))
    if isinstance(value, (dt.date, dt.datetime, dt.time)):
        return value.isoformat()
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    raise InvalidUsageError(
        f"Cannot build a cache key from a {type(value).__name__} parameter value"
    )


def canonicalize(params: Optional[Mapping[str, Any]]) -> str:
    """Return the canonical string form of *params*.

    ``None`` and ``{}`` both canonicalise to ``"{}"``.

    Raises:
        InvalidUsageError: If a key is not a string or a value has no
            canonical form.
    """
    normalized = _normalize(params or {})
    return json.dumps(normalized, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


@dataclass(frozen=True)
class CacheKey:
    """Immutable ``(method, canonical params)`` pair.

    Build keys with :meth:`of` rather than the constructor so the params
    string is always canonical.

    Example::

        assert CacheKey.of("getTeachers", {"a": 1, "b": 2}) == CacheKey.of(
            "getTeachers", {"b": 2, "a": 1}
        )
    """

    method: str
    params: str

    @classmethod
    def of(cls, method: str, params: Optional[Mapping[str, Any]] = None) -> CacheKey:
        return cls(method=str(getattr(method, "value", method)), params=canonicalize(params))

    def __str__(self) -> str:
        return f"{self.method}{self.params}"
