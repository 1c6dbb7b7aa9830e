"""Typed records decoded from JSON-RPC results.

Each record is a Pydantic model whose fields use the Python spelling of the
WebUntis names (``longName`` -> ``long_name``).  Unknown members are kept
in ``model_extra`` so nothing the server sends is lost.  Dates arrive as
``yyyyMMdd`` integers and times as ``Hmm``/``HHmm`` integers.

Decoders are plain functions ``ResponseEnvelope -> T`` built with
:func:`records_decoder` and :func:`record_decoder`; a payload that does not
fit the model raises :class:`~untisrpc.exceptions.ProtocolError`.
"""

from __future__ import annotations

import datetime as dt
from typing import Any, Callable, Iterable, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from untisrpc.exceptions import ProtocolError
from untisrpc.rpc.envelope import INVALID_RESPONSE_CODE, ResponseEnvelope

M = TypeVar("M", bound=BaseModel)


def parse_date(value: Any) -> Any:
    """``20240115`` (int or str) -> ``date(2024, 1, 15)``; other values pass through."""
    if isinstance(value, (int, str)) and not isinstance(value, bool):
        text = str(value)
        if len(text) == 8 and text.isdigit():
            return dt.datetime.strptime(text, "%Y%m%d").date()
    return value


def parse_time(value: Any) -> Any:
    """``745`` or ``1430`` -> ``time(7, 45)`` / ``time(14, 30)``."""
    if isinstance(value, int) and not isinstance(value, bool):
        hours, minutes = divmod(value, 100)
        return dt.time(hours, minutes)
    return value


class UntisRecord(BaseModel):
    """Base for all records: camelCase aliases, extra members preserved."""

    model_config = ConfigDict(
        extra="allow", alias_generator=to_camel, populate_by_name=True, frozen=True
    )


class Room(UntisRecord):
    id: int
    name: str
    long_name: str = ""
    active: bool = True
    building: str = ""


class Teacher(UntisRecord):
    id: int
    name: str
    fore_name: str = ""
    long_name: str = ""
    title: str = ""
    active: bool = True


class Subject(UntisRecord):
    id: int
    name: str
    long_name: str = ""
    alternate_name: str = ""
    active: bool = True
    back_color: str = "b1b3b4"
    fore_color: str = "b1b3b4"


class SchoolClass(UntisRecord):
    id: int
    name: str
    long_name: str = ""
    active: bool = True


class Department(UntisRecord):
    id: int
    name: str
    long_name: str = ""


class _DateRange(UntisRecord):
    start_date: dt.date
    end_date: dt.date

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _dates(cls, value: Any) -> Any:
        return parse_date(value)


class Holiday(_DateRange):
    id: int
    name: str
    long_name: str = ""


class SchoolYear(_DateRange):
    id: int
    name: str


class TimeUnit(UntisRecord):
    name: str = ""
    start_time: dt.time
    end_time: dt.time

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _times(cls, value: Any) -> Any:
        return parse_time(value)


class TimegridDay(UntisRecord):
    day: int
    time_units: tuple[TimeUnit, ...] = ()


class ElementRef(UntisRecord):
    """A reference to a class, teacher, subject or room inside a lesson."""

    id: int
    name: Optional[str] = None
    long_name: Optional[str] = None


class Lesson(UntisRecord):
    id: int
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    classes: tuple[ElementRef, ...] = Field(default=(), alias="kl")
    teachers: tuple[ElementRef, ...] = Field(default=(), alias="te")
    subjects: tuple[ElementRef, ...] = Field(default=(), alias="su")
    rooms: tuple[ElementRef, ...] = Field(default=(), alias="ro")
    code: str = "regular"
    lesson_type: Optional[str] = Field(default=None, alias="lstype")
    activity_type: Optional[str] = None
    substitution_text: Optional[str] = Field(default=None, alias="substText")

    @field_validator("date", mode="before")
    @classmethod
    def _date(cls, value: Any) -> Any:
        return parse_date(value)

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _times(cls, value: Any) -> Any:
        return parse_time(value)


class WeeklyTimetable(BaseModel):
    """Lessons of one ISO week grouped by weekday (0 = Monday)."""

    monday: dt.date
    days: list[list[Lesson]] = Field(default_factory=lambda: [[] for _ in range(7)])

    @classmethod
    def from_lessons(cls, monday: dt.date, lessons: Iterable[Lesson]) -> WeeklyTimetable:
        week = cls(monday=monday)
        for lesson in lessons:
            week.days[lesson.date.weekday()].append(lesson)
        return week

    def on(self, day: dt.date) -> list[Lesson]:
        return self.days[day.weekday()]


# --- Decoders ---


def _invalid(envelope: ResponseEnvelope, detail: str) -> ProtocolError:
    return ProtocolError(
        INVALID_RESPONSE_CODE, f"invalid result: {detail}", envelope.method or None
    )


def records_decoder(model: type[M]) -> Callable[[ResponseEnvelope], tuple[M, ...]]:
    """Build a decoder turning a list ``result`` into a tuple of *model* records.

    Records are frozen, so a decoded result can be cached and handed to
    every caller as is.
    """

    def decode(envelope: ResponseEnvelope) -> tuple[M, ...]:
        result = envelope.result
        if not isinstance(result, list):
            raise _invalid(envelope, f"expected a list, got {type(result).__name__}")
        try:
            return tuple(model.model_validate(item) for item in result)
        except ValidationError as exc:
            raise _invalid(envelope, str(exc)) from exc

    return decode


def record_decoder(model: type[M]) -> Callable[[ResponseEnvelope], M]:
    """Build a decoder turning an object ``result`` into one *model* record."""

    def decode(envelope: ResponseEnvelope) -> M:
        result = envelope.result
        try:
            return model.model_validate(result)
        except ValidationError as exc:
            raise _invalid(envelope, str(exc)) from exc

    return decode


def decode_int(envelope: ResponseEnvelope) -> int:
    result = envelope.result
    if isinstance(result, bool) or not isinstance(result, (int, float)):
        raise _invalid(envelope, f"expected a number, got {result!r}")
    return int(result)
