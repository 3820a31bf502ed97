"""Tests for RevisionImporter.

Tests cover:
- import windows: new students from the course start, old students from the
  latest imported revision date, all-time imports
- user blocks of USERS_PER_REQUEST per edit-history request
- persistence: articles upserted, revisions inserted once, flags parsed
- idempotence across repeated runs
- the escaped-title fallback when the database rejects a title
- malformed payload values skipped without aborting the slice
- slice-by-slice commits and rollback on database errors
- parse_flag() / parse_int() / parse_revision_date()

The edit-history service is replaced by an AsyncMock and the database by
FakeRevisionStore.
"""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from tests.factories.store import FakeRevisionStore
from tests.factories.wiki import RevisionPayloadFactory, article_entry
from wiki_dashboard.core.exceptions import MalformedRevisionError
from wiki_dashboard.core.models import Course, Wiki
from wiki_dashboard.importers.revision_importer import (
    USERS_PER_REQUEST,
    RevisionImporter,
    parse_flag,
    parse_int,
    parse_revision_date,
)
from wiki_dashboard.wiki.replica import ReplicaClient

NOW = datetime(2023, 7, 1, 9, 30, tzinfo=timezone.utc)
END = "20230703"


def _replica(*responses: dict) -> AsyncMock:
    replica = AsyncMock(spec=ReplicaClient)
    if responses:
        replica.get_revisions.side_effect = list(responses)
    else:
        replica.get_revisions.return_value = {}
    return replica


def _importer(
    enwiki: Wiki,
    course: Course,
    store: FakeRevisionStore,
    replica: AsyncMock,
    error_reporter: AsyncMock | None = None,
) -> RevisionImporter:
    return RevisionImporter(
        enwiki,
        course,
        store,
        replica=replica,
        error_reporter=error_reporter or AsyncMock(),
        now=NOW,
    )


# ---------------------------------------------------------------------------
# Import windows
# ---------------------------------------------------------------------------


class TestImportWindows:
    async def test_new_student_starts_at_course_start(
        self, enwiki: Wiki, course: Course, store: FakeRevisionStore
    ) -> None:
        """A student with no imported revisions is searched from 20230101."""
        store.students_by_course[course.id] = ["Newbie"]
        store.new_students_by_course[course.id] = ["Newbie"]
        store.latest_dates[(course.id, enwiki.id)] = datetime(2023, 6, 15, tzinfo=timezone.utc)
        replica = _replica()

        await _importer(enwiki, course, store, replica).import_revisions_for_course(all_time=False)

        replica.get_revisions.assert_awaited_once_with(["Newbie"], "20230101", END)

    async def test_old_student_starts_at_latest_revision_date(
        self, enwiki: Wiki, course: Course, store: FakeRevisionStore
    ) -> None:
        """Old students resume from 20230615 (inclusive), new ones from the start."""
        store.students_by_course[course.id] = ["Newbie", "Veteran"]
        store.new_students_by_course[course.id] = ["Newbie"]
        store.latest_dates[(course.id, enwiki.id)] = datetime(
            2023, 6, 15, 18, 42, tzinfo=timezone.utc
        )
        replica = _replica()

        await _importer(enwiki, course, store, replica).import_revisions_for_course(all_time=False)

        calls = [call.args for call in replica.get_revisions.await_args_list]
        assert calls == [
            (["Newbie"], "20230101", END),
            (["Veteran"], "20230615", END),
        ]

    async def test_old_students_without_revisions_start_at_course_start(
        self, enwiki: Wiki, course: Course, store: FakeRevisionStore
    ) -> None:
        store.students_by_course[course.id] = ["Veteran"]
        replica = _replica()

        await _importer(enwiki, course, store, replica).import_revisions_for_course(all_time=False)

        replica.get_revisions.assert_awaited_once_with(["Veteran"], "20230101", END)

    async def test_all_time_import_ignores_latest_date(
        self, enwiki: Wiki, course: Course, store: FakeRevisionStore
    ) -> None:
        store.students_by_course[course.id] = ["Newbie", "Veteran"]
        store.new_students_by_course[course.id] = ["Newbie"]
        store.latest_dates[(course.id, enwiki.id)] = datetime(2023, 6, 15, tzinfo=timezone.utc)
        replica = _replica()

        await _importer(enwiki, course, store, replica).import_revisions_for_course(all_time=True)

        replica.get_revisions.assert_awaited_once_with(["Newbie", "Veteran"], "20230101", END)

    async def test_users_are_sent_in_blocks(
        self, enwiki: Wiki, course: Course, store: FakeRevisionStore
    ) -> None:
        """85 students make three requests of 40, 40 and 5 users."""
        students = [f"Student{i:03d}" for i in range(85)]
        store.students_by_course[course.id] = students
        replica = _replica()

        await _importer(enwiki, course, store, replica).import_revisions_for_course(all_time=True)

        blocks = [call.args[0] for call in replica.get_revisions.await_args_list]
        assert [len(block) for block in blocks] == [USERS_PER_REQUEST, USERS_PER_REQUEST, 5]
        assert [name for block in blocks for name in block] == students

    async def test_no_students_no_requests(
        self, enwiki: Wiki, course: Course, store: FakeRevisionStore
    ) -> None:
        replica = _replica()

        summary = await _importer(enwiki, course, store, replica).import_revisions_for_course(
            all_time=False
        )

        replica.get_revisions.assert_not_awaited()
        assert summary.slices == 0


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


class TestImportRevisions:
    async def test_articles_and_revisions_are_persisted(
        self, enwiki: Wiki, course: Course, store: FakeRevisionStore
    ) -> None:
        store.users = {"Ragesoss": 7}
        entry = article_entry(
            mw_page_id=4567,
            title="Selfie",
            revisions=[
                RevisionPayloadFactory.build(
                    mw_rev_id=111, mw_page_id=4567, new_article="true", characters=2500
                ),
                RevisionPayloadFactory.build(
                    mw_rev_id=112, mw_page_id=4567, username="Unknown", system="true"
                ),
            ],
        )

        summary = await _importer(enwiki, course, store, _replica()).import_revisions([entry])

        article = store.articles[(4567, enwiki.id)]
        assert article.title == "Selfie"
        first = store.revisions[(111, enwiki.id)]
        second = store.revisions[(112, enwiki.id)]
        assert first["article_id"] == article.id
        assert first["user_id"] == 7
        assert first["new_article"] is True
        assert first["system"] is False
        assert first["characters"] == 2500
        assert first["date"] == datetime(2023, 6, 15, 12, 0, tzinfo=timezone.utc)
        assert second["user_id"] is None
        assert second["system"] is True
        assert summary.articles == 1
        assert summary.revisions_inserted == 2
        assert store.commits == 1

    async def test_article_title_and_namespace_are_updated(
        self, enwiki: Wiki, course: Course, store: FakeRevisionStore
    ) -> None:
        """A moved page keeps its row; title and namespace follow the move."""
        existing = store.add_article(enwiki.id, 4567, "Ragesoss/Selfie", namespace=2)
        entry = article_entry(mw_page_id=4567, title="Selfie", namespace=0)

        await _importer(enwiki, course, store, _replica()).import_revisions([entry])

        assert store.articles[(4567, enwiki.id)] is existing
        assert existing.title == "Selfie"
        assert existing.namespace == 0

    async def test_second_run_inserts_nothing(
        self, enwiki: Wiki, course: Course, store: FakeRevisionStore
    ) -> None:
        """Importing the same batch twice yields no duplicate revisions."""
        entries = [
            article_entry(
                mw_page_id=4567,
                revisions=[
                    RevisionPayloadFactory.build(mw_rev_id=111, mw_page_id=4567),
                    RevisionPayloadFactory.build(mw_rev_id=112, mw_page_id=4567),
                ],
            )
        ]
        importer = _importer(enwiki, course, store, _replica())

        first = await importer.import_revisions(entries)
        second = await importer.import_revisions(entries)

        assert first.revisions_inserted == 2
        assert second.revisions_inserted == 0
        assert second.revisions_existing == 2
        assert len(store.revisions) == 2
        assert len(store.articles) == 1

    async def test_rejected_title_is_escaped_and_reported(
        self, enwiki: Wiki, course: Course, store: FakeRevisionStore
    ) -> None:
        """A DataError on upsert retries with the URL-escaped title."""
        store.reject_titles.add("Café \U0001f600")
        reporter = AsyncMock()
        entry = article_entry(mw_page_id=321, title="Café \U0001f600")

        summary = await _importer(enwiki, course, store, _replica(), reporter).import_revisions(
            [entry]
        )

        titles = [call["title"] for call in store.upsert_calls]
        assert titles == ["Café \U0001f600", "Caf%C3%A9+%F0%9F%98%80"]
        assert store.articles[(321, enwiki.id)].title == "Caf%C3%A9+%F0%9F%98%80"
        assert summary.revisions_inserted == 1
        reporter.report.assert_awaited_once()
        assert reporter.report.await_args.kwargs["action"] == "upsert_article"
        assert reporter.report.await_args.kwargs["course"] is course

    async def test_malformed_flag_skips_only_that_revision(
        self, enwiki: Wiki, course: Course, store: FakeRevisionStore
    ) -> None:
        entry = article_entry(
            mw_page_id=4567,
            revisions=[
                RevisionPayloadFactory.build(mw_rev_id=111, mw_page_id=4567, new_article="yes"),
                RevisionPayloadFactory.build(mw_rev_id=112, mw_page_id=4567, system=None),
                RevisionPayloadFactory.build(mw_rev_id=113, mw_page_id=4567),
            ],
        )

        summary = await _importer(enwiki, course, store, _replica()).import_revisions([entry])

        assert set(store.revisions) == {(113, enwiki.id)}
        assert summary.revisions_malformed == 2
        assert summary.revisions_inserted == 1

    async def test_missing_revision_id_skips_only_that_revision(
        self, enwiki: Wiki, course: Course, store: FakeRevisionStore
    ) -> None:
        without_id = RevisionPayloadFactory.build(mw_page_id=4567)
        del without_id["mw_rev_id"]
        entry = article_entry(
            mw_page_id=4567,
            revisions=[
                without_id,
                RevisionPayloadFactory.build(mw_rev_id="not-a-number", mw_page_id=4567),
                RevisionPayloadFactory.build(mw_rev_id=113, mw_page_id=4567),
            ],
        )

        summary = await _importer(enwiki, course, store, _replica()).import_revisions([entry])

        assert set(store.revisions) == {(113, enwiki.id)}
        assert summary.revisions_malformed == 2
        assert summary.revisions_inserted == 1
        assert store.commits == 1

    async def test_slices_are_committed_separately(
        self, enwiki: Wiki, course: Course, store: FakeRevisionStore
    ) -> None:
        entries = [article_entry() for _ in range(5)]

        with patch("wiki_dashboard.importers.revision_importer.SLICE_SIZE", 2):
            summary = await _importer(enwiki, course, store, _replica()).import_revisions(entries)

        assert summary.slices == 3
        assert summary.articles == 5
        assert store.commits == 3

    async def test_database_error_rolls_back_and_keeps_earlier_slices(
        self, enwiki: Wiki, course: Course, store: FakeRevisionStore
    ) -> None:
        entries = [article_entry() for _ in range(4)]
        original_insert = store.insert_revisions
        calls = {"n": 0}

        async def _failing_second_insert(rows):
            calls["n"] += 1
            if calls["n"] == 2:
                raise OperationalError("INSERT INTO revisions ...", {}, Exception("conn lost"))
            return await original_insert(rows)

        store.insert_revisions = _failing_second_insert  # type: ignore[method-assign]

        with patch("wiki_dashboard.importers.revision_importer.SLICE_SIZE", 2):
            with pytest.raises(OperationalError):
                await _importer(enwiki, course, store, _replica()).import_revisions(entries)

        assert store.commits == 1
        assert store.rollbacks == 1
        assert len(store.revisions) == 2

    async def test_fetched_data_flows_into_store(
        self, enwiki: Wiki, course: Course, store: FakeRevisionStore
    ) -> None:
        """End to end: the replica's grouped payload is persisted as-is."""
        store.students_by_course[course.id] = ["Ragesoss"]
        key, data = article_entry(mw_page_id=4567, title="Selfie")
        replica = _replica({key: data})

        summary = await _importer(enwiki, course, store, replica).import_revisions_for_course(
            all_time=True
        )

        assert summary.articles == 1
        assert summary.revisions_inserted == 1
        assert (4567, enwiki.id) in store.articles


# ---------------------------------------------------------------------------
# Payload parsing
# ---------------------------------------------------------------------------


class TestParseFlag:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [("true", True), ("false", False), (True, True), (False, False)],
    )
    def test_accepted_values(self, value: object, expected: bool) -> None:
        assert parse_flag("new_article", value) is expected

    @pytest.mark.parametrize("value", ["True", "1", "yes", "", None, 1])
    def test_rejected_values(self, value: object) -> None:
        with pytest.raises(MalformedRevisionError) as excinfo:
            parse_flag("system", value)
        assert excinfo.value.field == "system"


class TestParseInt:
    @pytest.mark.parametrize(("value", "expected"), [(111, 111), ("111", 111)])
    def test_accepted_values(self, value: object, expected: int) -> None:
        assert parse_int("mw_rev_id", value) == expected

    @pytest.mark.parametrize("value", [None, ""])
    def test_empty_value_uses_default(self, value: object) -> None:
        assert parse_int("characters", value, default=0) == 0

    @pytest.mark.parametrize("value", [None, "", "abc", True, [111]])
    def test_rejected_values(self, value: object) -> None:
        with pytest.raises(MalformedRevisionError) as excinfo:
            parse_int("mw_rev_id", value)
        assert excinfo.value.field == "mw_rev_id"


class TestParseRevisionDate:
    def test_mediawiki_timestamp(self) -> None:
        assert parse_revision_date("20230615120000") == datetime(
            2023, 6, 15, 12, tzinfo=timezone.utc
        )

    def test_iso_timestamp(self) -> None:
        assert parse_revision_date("2023-06-15T12:00:00Z") == datetime(
            2023, 6, 15, 12, tzinfo=timezone.utc
        )

    def test_naive_datetime_is_utc(self) -> None:
        assert parse_revision_date(datetime(2023, 6, 15)).tzinfo is timezone.utc

    @pytest.mark.parametrize("value", ["yesterday", "20231345000000", None, 20230615])
    def test_rejected(self, value: object) -> None:
        with pytest.raises(MalformedRevisionError):
            parse_revision_date(value)
