"""JSON-RPC method names and parameter builders.

Only :attr:`Method.AUTHENTICATE` and :attr:`Method.LOGOUT` change session
state; every other method is a read-only query that the coordinator treats
uniformly.  Dates travel as ``yyyyMMdd`` strings.
"""

from __future__ import annotations

import datetime as dt
import enum
from typing import Any, Optional

from untisrpc.exceptions import InvalidUsageError
from untisrpc.models import ElementType


class Method(str, enum.Enum):
    """Methods exposed by the WebUntis JSON-RPC endpoint."""

    AUTHENTICATE = "authenticate"
    LOGOUT = "logout"

    GET_CLASSREG_CATEGORIES = "getClassregCategories"
    GET_CLASSREG_CATEGORY_GROUPS = "getClassregCategoryGroups"
    GET_CLASSREG_EVENTS = "getClassregEvents"
    GET_CURRENT_SCHOOLYEAR = "getCurrentSchoolyear"
    GET_DEPARTMENTS = "getDepartments"
    GET_EXAMS = "getExams"
    GET_EXAM_TYPES = "getExamTypes"
    GET_HOLIDAYS = "getHolidays"
    GET_CLASSES = "getKlassen"
    GET_LATEST_IMPORT_TIME = "getLatestImportTime"
    GET_ROOMS = "getRooms"
    GET_SCHOOLYEARS = "getSchoolyears"
    GET_STATUS_DATA = "getStatusData"
    GET_SUBJECTS = "getSubjects"
    GET_TEACHERS = "getTeachers"
    GET_TIMEGRID_UNITS = "getTimegridUnits"
    GET_TIMETABLE = "getTimetable"
    GET_TIMETABLE_WITH_ABSENCES = "getTimetableWithAbsences"


SESSION_METHODS = frozenset({Method.AUTHENTICATE.value, Method.LOGOUT.value})


def format_date(value: dt.date) -> str:
    return value.strftime("%Y%m%d")


def date_range_params(start: dt.date, end: dt.date) -> dict[str, Any]:
    """Return ``startDate``/``endDate`` params.

    Raises:
        InvalidUsageError: If *end* is before *start*.
    """
    if end < start:
        raise InvalidUsageError(
            f"End date {end.isoformat()} is before start date {start.isoformat()}"
        )
    return {"startDate": format_date(start), "endDate": format_date(end)}


def timetable_params(
    start: dt.date, end: dt.date, element_type: ElementType, element_id: int
) -> dict[str, Any]:
    """Params for ``getTimetable`` requesting the full lesson detail set."""
    options: dict[str, Any] = {
        **date_range_params(start, end),
        "element": {"type": int(element_type), "id": element_id},
        "onlyBaseTimetable": False,
        "showInfo": True,
        "showSubstText": True,
        "showLsText": True,
        "showLsNumber": True,
        "showStudentgroup": True,
    }
    return {"options": options}


def classreg_event_params(
    start: dt.date,
    end: dt.date,
    element_type: Optional[ElementType] = None,
    element_id: Optional[int] = None,
) -> dict[str, Any]:
    """Params for ``getClassregEvents``; the element filter needs both type and id."""
    params = date_range_params(start, end)
    if element_type is not None and element_id is not None:
        params["type"] = int(element_type)
        params["id"] = element_id
    return params


def week_bounds(any_date: dt.date) -> tuple[dt.date, dt.date]:
    """Monday and Sunday of the ISO week containing *any_date*."""
    monday = any_date - dt.timedelta(days=any_date.weekday())
    return monday, monday + dt.timedelta(days=6)
