"""Query commands -- run read-only JSON-RPC queries against WebUntis.

Every command resolves the active profile (``--profile``, then
``UNTISRPC_PROFILE``, then ``./untisrpc.json``, then the global default),
reads the password from the profile's password source, logs in, runs the
query and logs out again.

Example::

    untisrpc query rooms
    untisrpc --json query timetable --type class --id 42 --week 2024-03-13
    untisrpc query call getStatusData
"""

from __future__ import annotations

import datetime as dt
import json
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum
from typing import Optional

import typer

from untisrpc.api import UntisSession
from untisrpc.config import resolve_config, resolve_credential
from untisrpc.exceptions import InvalidUsageError, UntisError
from untisrpc.exit_codes import EXIT_INVALID_USAGE
from untisrpc.models import ElementType
from untisrpc.output import error, format_response, print_records, suggest

query_app = typer.Typer(no_args_is_help=True)

_DATE_FORMATS = ["%Y-%m-%d"]


class ElementName(str, Enum):
    """Element kinds accepted by ``--type``."""

    CLASS = "class"
    TEACHER = "teacher"
    SUBJECT = "subject"
    ROOM = "room"
    STUDENT = "student"

    @property
    def element_type(self) -> ElementType:
        return ElementType[self.name]


@contextmanager
def open_session(ctx: typer.Context, profile_name: Optional[str] = None) -> Iterator[UntisSession]:
    """Log in with the active profile for the duration of the block.

    :class:`~untisrpc.exceptions.UntisError` raised while opening the
    session or inside the block is reported and turned into the matching
    exit code.
    """
    obj = ctx.obj or {}
    try:
        _, profile = resolve_config(
            cli_profile=profile_name or obj.get("profile"),
            cli_server=obj.get("server"),
        )
        if profile is None:
            error("No profile selected.")
            suggest("Create one: untisrpc profile add <name> --server ... --school ... -u ...")
            raise typer.Exit(code=EXIT_INVALID_USAGE)
        password = resolve_credential(profile.password_source, profile.username)
        with UntisSession.from_profile(profile, password) as session:
            yield session
    except UntisError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def _date(value: Optional[dt.datetime]) -> Optional[dt.date]:
    return value.date() if value is not None else None


@query_app.command("rooms")
def query_rooms(ctx: typer.Context) -> None:
    """List rooms."""
    with open_session(ctx) as session:
        print_records(session.get_rooms(), ["id", "name", "long_name", "building"], "Rooms")


@query_app.command("teachers")
def query_teachers(ctx: typer.Context) -> None:
    """List teachers."""
    with open_session(ctx) as session:
        print_records(
            session.get_teachers(), ["id", "name", "fore_name", "long_name"], "Teachers"
        )


@query_app.command("subjects")
def query_subjects(ctx: typer.Context) -> None:
    """List subjects."""
    with open_session(ctx) as session:
        print_records(session.get_subjects(), ["id", "name", "long_name"], "Subjects")


@query_app.command("classes")
def query_classes(
    ctx: typer.Context,
    school_year: Optional[int] = typer.Option(
        None, "--school-year", help="School year id (default: current)."
    ),
) -> None:
    """List classes."""
    with open_session(ctx) as session:
        print_records(session.get_classes(school_year), ["id", "name", "long_name"], "Classes")


@query_app.command("departments")
def query_departments(ctx: typer.Context) -> None:
    """List departments."""
    with open_session(ctx) as session:
        print_records(session.get_departments(), ["id", "name", "long_name"], "Departments")


@query_app.command("holidays")
def query_holidays(ctx: typer.Context) -> None:
    """List holidays."""
    with open_session(ctx) as session:
        print_records(
            session.get_holidays(),
            ["id", "name", "long_name", "start_date", "end_date"],
            "Holidays",
        )


@query_app.command("school-years")
def query_school_years(ctx: typer.Context) -> None:
    """List school years."""
    with open_session(ctx) as session:
        print_records(
            session.get_school_years(), ["id", "name", "start_date", "end_date"], "School years"
        )


@query_app.command("current-school-year")
def query_current_school_year(ctx: typer.Context) -> None:
    """Show the current school year."""
    with open_session(ctx) as session:
        print_records([session.get_current_school_year()], ["id", "name", "start_date", "end_date"])


@query_app.command("timegrid")
def query_timegrid(ctx: typer.Context) -> None:
    """Show the time grid."""
    with open_session(ctx) as session:
        format_response(session.get_timegrid_units())


@query_app.command("latest-import")
def query_latest_import(ctx: typer.Context) -> None:
    """Show the server's latest import time (milliseconds since the epoch)."""
    with open_session(ctx) as session:
        format_response(session.get_latest_import_time())


@query_app.command("timetable")
def query_timetable(
    ctx: typer.Context,
    element: ElementName = typer.Option(..., "--type", "-t", help="Element kind."),
    element_id: int = typer.Option(..., "--id", help="Element id."),
    start: Optional[dt.datetime] = typer.Option(
        None, "--start", formats=_DATE_FORMATS, help="First day (YYYY-MM-DD)."
    ),
    end: Optional[dt.datetime] = typer.Option(
        None, "--end", formats=_DATE_FORMATS, help="Last day (YYYY-MM-DD)."
    ),
    week: Optional[dt.datetime] = typer.Option(
        None, "--week", formats=_DATE_FORMATS, help="Any day of the week to show."
    ),
) -> None:
    """Show lessons for one class, teacher, subject, room or student.

    Give either ``--week`` or ``--start`` (and optionally ``--end``);
    ``--end`` alone is rejected.
    Without any of them the current week is shown.
    """
    first, last = _date(start), _date(end)
    if week is not None and first is not None:
        error("Use either --week or --start/--end, not both.")
        raise typer.Exit(code=EXIT_INVALID_USAGE)
    if last is not None and first is None:
        error("--end needs --start.")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    with open_session(ctx) as session:
        if first is None:
            timetable = session.get_weekly_timetable(
                _date(week) or dt.date.today(), element.element_type, element_id
            )
            lessons = [lesson for day in timetable.days for lesson in day]
        else:
            lessons = session.get_timetable(
                first, last or first, element.element_type, element_id
            )
        print_records(
            sorted(lessons, key=lambda lesson: (lesson.date, lesson.start_time)),
            ["date", "start_time", "end_time", "subjects", "teachers", "rooms", "code"],
            "Timetable",
        )


@query_app.command("call")
def query_call(
    ctx: typer.Context,
    method: str = typer.Argument(help="JSON-RPC method name."),
    params: str = typer.Option("{}", "--params", help="Parameters as a JSON object."),
) -> None:
    """Call any method with raw JSON parameters, bypassing the cache."""
    with open_session(ctx) as session:
        try:
            parsed = json.loads(params)
        except json.JSONDecodeError as exc:
            raise InvalidUsageError(f"--params is not valid JSON: {exc}") from exc
        if not isinstance(parsed, dict):
            raise InvalidUsageError("--params must be a JSON object")
        format_response(session.get_custom_data(method, parsed))
