"""Unit tests for workers/_task_helpers.py, the async bodies of the pipeline tasks.

``AsyncSessionLocal`` is patched to yield a mocked session, and the
importers are patched out; these tests check the wiring between a course
id and the importers.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

from sqlalchemy.dialects import postgresql

from wiki_dashboard.core.models import Course, Wiki
from wiki_dashboard.importers.revision_importer import ImportSummary
from wiki_dashboard.workers import _task_helpers

_MODULE = "wiki_dashboard.workers._task_helpers"


def _patch_session(session: MagicMock):
    """Return a patch context that makes AsyncSessionLocal yield *session*."""

    @asynccontextmanager
    async def _fake_session_local():
        yield session

    return patch(f"{_MODULE}.AsyncSessionLocal", _fake_session_local)


def _session_with_course(course: Course | None) -> MagicMock:
    session = MagicMock()
    session.get = AsyncMock(return_value=course)
    return session


class TestFetchCurrentCourseIds:
    async def test_window_includes_grace_period(self) -> None:
        now = datetime(2023, 7, 3, tzinfo=timezone.utc)
        session = MagicMock()
        result = MagicMock()
        result.scalars.return_value.all.return_value = [10, 11]
        session.execute = AsyncMock(return_value=result)

        with _patch_session(session):
            ids = await _task_helpers.fetch_current_course_ids(now)

        assert ids == [10, 11]
        stmt = session.execute.await_args.args[0]
        params = stmt.compile(dialect=postgresql.dialect()).params
        assert now in params.values()
        assert now - timedelta(days=7) in params.values()


class TestImportRevisionsForCourse:
    async def test_unknown_course(self) -> None:
        with _patch_session(_session_with_course(None)):
            assert await _task_helpers.import_revisions_for_course(404, all_time=False) == {}

    async def test_each_wiki_is_imported(self, course: Course, enwiki: Wiki) -> None:
        frwiki = Wiki(id=3, language="fr", project="wikipedia")
        course.wikis = [enwiki, frwiki]
        importer_cls = MagicMock()
        importer_cls.return_value.import_revisions_for_course = AsyncMock(
            side_effect=[ImportSummary(slices=1, articles=2), ImportSummary()]
        )

        with _patch_session(_session_with_course(course)), patch(
            f"{_MODULE}.RevisionImporter", importer_cls
        ):
            summaries = await _task_helpers.import_revisions_for_course(course.id, all_time=True)

        assert set(summaries) == {"en.wikipedia.org", "fr.wikipedia.org"}
        assert summaries["en.wikipedia.org"]["articles"] == 2
        assert [c.args[0] for c in importer_cls.call_args_list] == [enwiki, frwiki]
        importer_cls.return_value.import_revisions_for_course.assert_awaited_with(all_time=True)


class TestUpdateCourseRevisionScores:
    async def test_unknown_course(self) -> None:
        with _patch_session(_session_with_course(None)):
            assert await _task_helpers.update_course_revision_scores(404) is False

    async def test_course_is_scored(self, course: Course) -> None:
        scorer = AsyncMock()

        with _patch_session(_session_with_course(course)), patch(
            f"{_MODULE}.update_revision_scores_for_course", scorer
        ):
            assert await _task_helpers.update_course_revision_scores(course.id) is True

        assert scorer.await_args.args[1] is course
