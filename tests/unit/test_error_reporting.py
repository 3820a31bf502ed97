"""Unit tests for ErrorReporter.

Covers the log-only path (no course or no session factory) and the
course error record written when a course update fails.
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import httpx

from wiki_dashboard.core.error_reporting import ErrorReporter, _jsonable
from wiki_dashboard.core.models import Course, CourseErrorRecord


def _session_factory(session: MagicMock):
    @asynccontextmanager
    async def _factory():
        yield session

    return _factory


class TestReport:
    async def test_without_course_only_logs(self) -> None:
        factory = MagicMock()
        reporter = ErrorReporter(session_factory=factory)

        tag = await reporter.report(httpx.ReadTimeout("slow"), action="query", query={"a": 1})

        assert tag is None
        factory.assert_not_called()

    async def test_course_failure_is_recorded(self, course: Course) -> None:
        session = MagicMock()
        session.commit = AsyncMock()
        reporter = ErrorReporter(session_factory=_session_factory(session))

        tag = await reporter.report(
            httpx.ConnectError("down"),
            action="get_revisions",
            query={"usernames[]": ["Ragesoss"], "db": "enwiki"},
            api_url="https://replica-revision-tools.wmcloud.org/revisions.php",
            course=course,
        )

        assert isinstance(tag, uuid.UUID)
        record = session.add.call_args.args[0]
        assert isinstance(record, CourseErrorRecord)
        assert record.course_id == course.id
        assert record.type_of_error == "ConnectError"
        assert record.sentry_tag_uuid == tag
        assert record.miscellaneous["action"] == "get_revisions"
        assert record.miscellaneous["query"]["usernames[]"] == ["Ragesoss"]
        session.commit.assert_awaited_once()

    async def test_record_failure_does_not_mask_original(self, course: Course) -> None:
        session = MagicMock()
        session.commit = AsyncMock(side_effect=RuntimeError("db down"))
        reporter = ErrorReporter(session_factory=_session_factory(session))

        tag = await reporter.report(ValueError("bad json"), action="query", course=course)

        assert isinstance(tag, uuid.UUID)

    async def test_course_without_factory_only_logs(self, course: Course) -> None:
        tag = await ErrorReporter().report(ValueError("bad json"), action="query", course=course)

        assert isinstance(tag, uuid.UUID)


def test_jsonable() -> None:
    assert _jsonable({"revids": (1, 2), "when": uuid.UUID(int=0), 3: None}) == {
        "revids": [1, 2],
        "when": "00000000-0000-0000-0000-000000000000",
        "3": None,
    }
