"""Tests for typed records and result decoders."""

from __future__ import annotations

import datetime as dt

import pytest

from conftest import load_fixture
from untisrpc.exceptions import ProtocolError
from untisrpc.records import (
    Holiday,
    Lesson,
    Room,
    Subject,
    WeeklyTimetable,
    decode_int,
    parse_date,
    parse_time,
    record_decoder,
    records_decoder,
)
from untisrpc.rpc.envelope import ResponseEnvelope


def _envelope(result, method: str = "getRooms") -> ResponseEnvelope:
    return ResponseEnvelope.from_body(200, {"id": "ID", "result": result}, method)


class TestParsers:
    @pytest.mark.parametrize(
        "raw, expected",
        [(20240115, dt.date(2024, 1, 15)), ("20231231", dt.date(2023, 12, 31))],
    )
    def test_parse_date(self, raw, expected) -> None:
        assert parse_date(raw) == expected

    def test_parse_date_passes_through_other_values(self) -> None:
        assert parse_date("2024-01-15") == "2024-01-15"
        assert parse_date(True) is True

    @pytest.mark.parametrize(
        "raw, expected",
        [(745, dt.time(7, 45)), (1430, dt.time(14, 30)), (0, dt.time(0, 0))],
    )
    def test_parse_time(self, raw, expected) -> None:
        assert parse_time(raw) == expected


class TestRecords:
    def test_room_aliases(self) -> None:
        room = Room.model_validate({"id": 1, "name": "R1", "longName": "Lab"})
        assert room.long_name == "Lab"
        assert room.active is True

    def test_unknown_members_are_kept(self) -> None:
        room = Room.model_validate({"id": 1, "name": "R1", "capacity": 30})
        assert room.model_extra == {"capacity": 30}

    def test_records_are_frozen(self) -> None:
        room = Room.model_validate({"id": 1, "name": "R1"})
        with pytest.raises(ValueError):
            room.name = "R2"  # type: ignore[misc]

    def test_subject_colour_defaults(self) -> None:
        subject = Subject.model_validate({"id": 1, "name": "PH"})
        assert subject.back_color == subject.fore_color == "b1b3b4"

    def test_holiday_dates(self) -> None:
        holiday = Holiday.model_validate(load_fixture("holidays.json")[0])
        assert holiday.start_date == dt.date(2023, 12, 23)
        assert holiday.end_date == dt.date(2024, 1, 7)

    def test_lesson(self) -> None:
        lesson = Lesson.model_validate(load_fixture("timetable.json")[1])
        assert lesson.date == dt.date(2024, 3, 13)
        assert lesson.start_time == dt.time(10, 15)
        assert lesson.code == "cancelled"
        assert lesson.substitution_text == "Teacher ill"
        assert [t.id for t in lesson.teachers] == [11]
        assert lesson.rooms[0].name is None

    def test_lesson_defaults(self) -> None:
        lesson = Lesson.model_validate({"id": 1, "date": 20240311, "startTime": 800, "endTime": 845})
        assert lesson.code == "regular"
        assert lesson.classes == ()
        assert lesson.lesson_type is None


class TestWeeklyTimetable:
    def test_groups_by_weekday(self) -> None:
        lessons = [Lesson.model_validate(item) for item in load_fixture("timetable.json")]
        week = WeeklyTimetable.from_lessons(dt.date(2024, 3, 11), lessons)
        assert len(week.days) == 7
        assert [lesson.id for lesson in week.days[0]] == [5001, 5003]
        assert week.on(dt.date(2024, 3, 13))[0].id == 5002
        assert week.on(dt.date(2024, 3, 17)) == []


class TestDecoders:
    def test_records_decoder(self) -> None:
        rooms = records_decoder(Room)(_envelope(load_fixture("rooms.json")))
        assert [room.name for room in rooms] == ["R101", "R102", "GYM"]

    def test_records_decoder_rejects_non_list(self) -> None:
        with pytest.raises(ProtocolError, match="expected a list"):
            records_decoder(Room)(_envelope({"id": 1}))

    def test_records_decoder_rejects_invalid_items(self) -> None:
        with pytest.raises(ProtocolError, match="invalid result") as exc_info:
            records_decoder(Room)(_envelope([{"name": "no id"}]))
        assert exc_info.value.method == "getRooms"

    def test_decoder_surfaces_server_error(self) -> None:
        envelope = ResponseEnvelope.from_body(200, {"error": {"code": -7004, "message": "no right"}})
        with pytest.raises(ProtocolError) as exc_info:
            records_decoder(Room)(envelope)
        assert exc_info.value.code == -7004

    def test_record_decoder(self) -> None:
        holiday = record_decoder(Holiday)(_envelope(load_fixture("holidays.json")[1]))
        assert holiday.name == "EAST"

    def test_record_decoder_rejects_list(self) -> None:
        with pytest.raises(ProtocolError):
            record_decoder(Holiday)(_envelope([]))

    def test_decode_int(self) -> None:
        assert decode_int(_envelope(1700000000000)) == 1700000000000
        assert decode_int(_envelope(12.0)) == 12

    @pytest.mark.parametrize("bad", [None, "1", True, [1]])
    def test_decode_int_rejects(self, bad) -> None:
        with pytest.raises(ProtocolError, match="expected a number"):
            decode_int(_envelope(bad))
