"""High-level WebUntis session.

:class:`UntisSession` wires a :class:`~untisrpc.rpc.Transport`, a
:class:`~untisrpc.session.SessionController`, a
:class:`~untisrpc.session.StalenessOracle`, a
:class:`~untisrpc.cache.ResponseCache` and a
:class:`~untisrpc.coordinator.RequestCoordinator` together and exposes one
typed method per JSON-RPC query.

Example::

    import datetime as dt
    from untisrpc.api import UntisSession

    with UntisSession.login("user", "secret", "mese.webuntis.com", "demo") as session:
        rooms = session.get_rooms()
        week = session.get_weekly_timetable(dt.date.today(), ElementType.CLASS, 42)
"""

from __future__ import annotations

import datetime as dt
import logging
import time
from typing import Any, Callable, Optional

import httpx

from untisrpc.cache import ResponseCache
from untisrpc.coordinator import RequestCoordinator, decode_result
from untisrpc.exceptions import UntisError
from untisrpc.methods import (
    Method,
    classreg_event_params,
    date_range_params,
    timetable_params,
    week_bounds,
)
from untisrpc.models import (
    DEFAULT_USER_AGENT,
    CacheConfig,
    Credentials,
    ElementType,
    Profile,
    RequestConfig,
    SessionInfo,
    SessionState,
)
from untisrpc.records import (
    Department,
    Holiday,
    Lesson,
    Room,
    SchoolClass,
    SchoolYear,
    Subject,
    Teacher,
    TimegridDay,
    WeeklyTimetable,
    decode_int,
    record_decoder,
    records_decoder,
)
from untisrpc.rpc.deadline import Deadline
from untisrpc.rpc.transport import Transport
from untisrpc.session import SessionController, StalenessOracle

logger = logging.getLogger(__name__)

_rooms = records_decoder(Room)
_teachers = records_decoder(Teacher)
_subjects = records_decoder(Subject)
_classes = records_decoder(SchoolClass)
_departments = records_decoder(Department)
_holidays = records_decoder(Holiday)
_school_years = records_decoder(SchoolYear)
_school_year = record_decoder(SchoolYear)
_timegrid = records_decoder(TimegridDay)
_lessons = records_decoder(Lesson)


class UntisSession:
    """A logged-in WebUntis account with cached, typed queries.

    Build one with :meth:`login` or :meth:`from_profile`.  Whether responses
    are cached, and with which concurrency policy, is fixed at construction
    through :class:`~untisrpc.models.CacheConfig`.

    Args:
        credentials: Account credentials.
        request_config: HTTP timeout and TLS settings.
        cache_config: Cache settings.
        http_client: Optional :class:`httpx.Client` for the transport.
        clock: Monotonic clock used to rate-limit staleness checks.
    """

    def __init__(
        self,
        credentials: Credentials,
        request_config: Optional[RequestConfig] = None,
        cache_config: Optional[CacheConfig] = None,
        http_client: Optional[httpx.Client] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cache_config = cache_config or CacheConfig()
        self._transport = Transport(
            credentials.server,
            credentials.school,
            user_agent=credentials.user_agent,
            config=request_config,
            http_client=http_client,
        )
        self._controller = SessionController(self._transport, credentials)
        self._oracle = StalenessOracle(
            self._controller,
            min_interval=self._cache_config.staleness_interval,
            clock=clock,
        )
        self._coordinator = RequestCoordinator(
            self._controller,
            cache=ResponseCache(self._cache_config.policy),
            oracle=self._oracle,
            config=self._cache_config,
        )

    # ------------------------------------------------------------------ #
    # Construction and lifecycle
    # ------------------------------------------------------------------ #

    @classmethod
    def login(
        cls,
        username: str,
        password: str,
        server: str,
        school: str,
        user_agent: str = DEFAULT_USER_AGENT,
        *,
        request_config: Optional[RequestConfig] = None,
        cache_config: Optional[CacheConfig] = None,
        http_client: Optional[httpx.Client] = None,
        deadline: Optional[Deadline] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> UntisSession:
        """Create a session and log in.

        Raises:
            LoginError: If the server rejects the credentials.
            TransportError: If the server cannot be reached.
        """
        credentials = Credentials(
            username=username,
            password=password,
            server=server,
            school=school,
            user_agent=user_agent,
        )
        session = cls(credentials, request_config, cache_config, http_client, clock)
        try:
            session.open(deadline=deadline)
        except BaseException:
            session.close()
            raise
        return session

    @classmethod
    def from_profile(
        cls,
        profile: Profile,
        password: str,
        http_client: Optional[httpx.Client] = None,
        deadline: Optional[Deadline] = None,
    ) -> UntisSession:
        """Create a session from a stored :class:`~untisrpc.models.Profile` and log in."""
        return cls.login(
            profile.username,
            password,
            profile.server,
            profile.school,
            profile.user_agent,
            request_config=profile.request,
            cache_config=profile.cache,
            http_client=http_client,
            deadline=deadline,
        )

    def open(self, deadline: Optional[Deadline] = None) -> SessionInfo:
        """Log in and record the server's current change epoch."""
        info = self._controller.login(deadline=deadline)
        self._prime_epoch(deadline)
        return info

    def logout(self, deadline: Optional[Deadline] = None) -> None:
        self._controller.logout(deadline=deadline)

    def reconnect(self, deadline: Optional[Deadline] = None) -> SessionInfo:
        """Log out and in again; the session token changes only on success."""
        info = self._controller.reconnect(deadline=deadline)
        self._oracle.reset()
        self._prime_epoch(deadline)
        return info

    def close(self) -> None:
        """Release the HTTP connection pool.  Does not log out."""
        self._transport.close()

    def __enter__(self) -> UntisSession:
        return self

    def __exit__(self, *args: object) -> None:
        if self._controller.is_logged_in:
            try:
                self.logout()
            except UntisError as exc:
                logger.warning("Logout on exit failed: %s", exc)
        self.close()

    # ------------------------------------------------------------------ #
    # State
    # ------------------------------------------------------------------ #

    @property
    def info(self) -> Optional[SessionInfo]:
        return self._controller.info

    @property
    def state(self) -> SessionState:
        return self._controller.state

    @property
    def use_cache(self) -> bool:
        return self._coordinator.use_cache

    @property
    def cache(self) -> Optional[ResponseCache]:
        return self._coordinator.cache

    @property
    def coordinator(self) -> RequestCoordinator:
        return self._coordinator

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def get_latest_import_time(self, deadline: Optional[Deadline] = None) -> int:
        """The server's latest import time.  Always fetched, never cached."""
        return decode_int(
            self._controller.post(Method.GET_LATEST_IMPORT_TIME.value, deadline=deadline)
        )

    def get_rooms(self, deadline: Optional[Deadline] = None) -> tuple[Room, ...]:
        return self._query(Method.GET_ROOMS, None, _rooms, deadline)

    def get_teachers(self, deadline: Optional[Deadline] = None) -> tuple[Teacher, ...]:
        return self._query(Method.GET_TEACHERS, None, _teachers, deadline)

    def get_subjects(self, deadline: Optional[Deadline] = None) -> tuple[Subject, ...]:
        return self._query(Method.GET_SUBJECTS, None, _subjects, deadline)

    def get_classes(
        self, school_year_id: Optional[int] = None, deadline: Optional[Deadline] = None
    ) -> tuple[SchoolClass, ...]:
        """Classes of the current school year, or of *school_year_id*."""
        params = {"schoolyearId": school_year_id} if school_year_id is not None else None
        return self._query(Method.GET_CLASSES, params, _classes, deadline)

    def get_departments(self, deadline: Optional[Deadline] = None) -> tuple[Department, ...]:
        return self._query(Method.GET_DEPARTMENTS, None, _departments, deadline)

    def get_holidays(self, deadline: Optional[Deadline] = None) -> tuple[Holiday, ...]:
        return self._query(Method.GET_HOLIDAYS, None, _holidays, deadline)

    def get_school_years(self, deadline: Optional[Deadline] = None) -> tuple[SchoolYear, ...]:
        return self._query(Method.GET_SCHOOLYEARS, None, _school_years, deadline)

    def get_current_school_year(self, deadline: Optional[Deadline] = None) -> SchoolYear:
        return self._query(Method.GET_CURRENT_SCHOOLYEAR, None, _school_year, deadline)

    def get_timegrid_units(self, deadline: Optional[Deadline] = None) -> tuple[TimegridDay, ...]:
        return self._query(Method.GET_TIMEGRID_UNITS, None, _timegrid, deadline)

    def get_status_data(self, deadline: Optional[Deadline] = None) -> Any:
        return self._query(Method.GET_STATUS_DATA, None, decode_result, deadline)

    def get_exam_types(self, deadline: Optional[Deadline] = None) -> Any:
        return self._query(Method.GET_EXAM_TYPES, None, decode_result, deadline)

    def get_exams(
        self,
        start: dt.date,
        end: dt.date,
        exam_type_id: int,
        deadline: Optional[Deadline] = None,
    ) -> Any:
        params = {**date_range_params(start, end), "examTypeId": exam_type_id}
        return self._query(Method.GET_EXAMS, params, decode_result, deadline)

    def get_timetable(
        self,
        start: dt.date,
        end: dt.date,
        element_type: ElementType,
        element_id: int,
        deadline: Optional[Deadline] = None,
    ) -> tuple[Lesson, ...]:
        """Lessons between *start* and *end* (inclusive) for one element."""
        params = timetable_params(start, end, ElementType(element_type), element_id)
        return self._query(Method.GET_TIMETABLE, params, _lessons, deadline)

    def get_timetable_for_class(
        self, start: dt.date, end: dt.date, class_id: int, **kw: Any
    ) -> tuple[Lesson, ...]:
        return self.get_timetable(start, end, ElementType.CLASS, class_id, **kw)

    def get_timetable_for_teacher(
        self, start: dt.date, end: dt.date, teacher_id: int, **kw: Any
    ) -> tuple[Lesson, ...]:
        return self.get_timetable(start, end, ElementType.TEACHER, teacher_id, **kw)

    def get_timetable_for_subject(
        self, start: dt.date, end: dt.date, subject_id: int, **kw: Any
    ) -> tuple[Lesson, ...]:
        return self.get_timetable(start, end, ElementType.SUBJECT, subject_id, **kw)

    def get_timetable_for_room(
        self, start: dt.date, end: dt.date, room_id: int, **kw: Any
    ) -> tuple[Lesson, ...]:
        return self.get_timetable(start, end, ElementType.ROOM, room_id, **kw)

    def get_timetable_for_student(
        self, start: dt.date, end: dt.date, student_id: int, **kw: Any
    ) -> tuple[Lesson, ...]:
        return self.get_timetable(start, end, ElementType.STUDENT, student_id, **kw)

    def get_weekly_timetable(
        self,
        any_date: dt.date,
        element_type: ElementType,
        element_id: int,
        deadline: Optional[Deadline] = None,
    ) -> WeeklyTimetable:
        """Lessons of the Monday-to-Sunday week containing *any_date*."""
        monday, sunday = week_bounds(any_date)
        lessons = self.get_timetable(monday, sunday, element_type, element_id, deadline=deadline)
        return WeeklyTimetable.from_lessons(monday, lessons)

    def get_timetable_with_absences(
        self, start: dt.date, end: dt.date, deadline: Optional[Deadline] = None
    ) -> Any:
        params = {"options": date_range_params(start, end)}
        return self._query(Method.GET_TIMETABLE_WITH_ABSENCES, params, decode_result, deadline)

    def get_classreg_categories(self, deadline: Optional[Deadline] = None) -> Any:
        return self._query(Method.GET_CLASSREG_CATEGORIES, None, decode_result, deadline)

    def get_classreg_category_groups(self, deadline: Optional[Deadline] = None) -> Any:
        return self._query(Method.GET_CLASSREG_CATEGORY_GROUPS, None, decode_result, deadline)

    def get_classreg_events(
        self,
        start: dt.date,
        end: dt.date,
        element_type: Optional[ElementType] = None,
        element_id: Optional[int] = None,
        deadline: Optional[Deadline] = None,
    ) -> Any:
        params = classreg_event_params(start, end, element_type, element_id)
        return self._query(Method.GET_CLASSREG_EVENTS, params, decode_result, deadline)

    def get_classreg_events_for_class(
        self, start: dt.date, end: dt.date, class_id: int, **kw: Any
    ) -> Any:
        return self.get_classreg_events(start, end, ElementType.CLASS, class_id, **kw)

    def get_classreg_events_for_teacher(
        self, start: dt.date, end: dt.date, teacher_id: int, **kw: Any
    ) -> Any:
        return self.get_classreg_events(start, end, ElementType.TEACHER, teacher_id, **kw)

    def get_classreg_events_for_subject(
        self, start: dt.date, end: dt.date, subject_id: int, **kw: Any
    ) -> Any:
        return self.get_classreg_events(start, end, ElementType.SUBJECT, subject_id, **kw)

    def get_classreg_events_for_room(
        self, start: dt.date, end: dt.date, room_id: int, **kw: Any
    ) -> Any:
        return self.get_classreg_events(start, end, ElementType.ROOM, room_id, **kw)

    def get_classreg_events_for_student(
        self, start: dt.date, end: dt.date, student_id: int, **kw: Any
    ) -> Any:
        return self.get_classreg_events(start, end, ElementType.STUDENT, student_id, **kw)

    def get_custom_data(
        self,
        method: str,
        params: Optional[dict[str, Any]] = None,
        deadline: Optional[Deadline] = None,
    ) -> Any:
        """Call any method directly, bypassing the cache, and return its raw result."""
        return self._controller.post(method, params, deadline=deadline).result

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _query(
        self,
        method: Method,
        params: Optional[dict[str, Any]],
        decode: Any,
        deadline: Optional[Deadline],
    ) -> Any:
        return self._coordinator.query(method.value, params, decode, deadline=deadline)

    def _prime_epoch(self, deadline: Optional[Deadline]) -> None:
        if self._coordinator.use_cache and self._cache_config.check_staleness:
            self._oracle.current_epoch(deadline, force=True)
