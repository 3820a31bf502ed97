"""Imports course students' revisions from the edit-history service.

:class:`RevisionImporter` pulls the revisions made by a course's students on
one wiki and persists them, creating or updating the articles they touched.

Import windows (dates are ``YYYYMMDD``, the end is always two days from now
so that after-the-end edits are counted for retention):

- all-time import: every student, from the course start;
- incremental import: students with no imported revisions yet ("new") from
  the course start; all other students ("old") from the date of the latest
  revision already imported for the course on this wiki, inclusive.

Users are sent to the edit-history service in blocks of
:data:`USERS_PER_REQUEST`; the concatenated results are processed in slices
of :data:`SLICE_SIZE` article entries.  Each slice is committed on its own,
so a failure aborts the run but keeps every earlier slice.  Re-running is
safe: existing revisions are skipped, and the bulk insert ignores
``(mw_rev_id, wiki_id)`` conflicts.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, NamedTuple
from urllib.parse import quote_plus

from sqlalchemy.exc import DataError, SQLAlchemyError

from wiki_dashboard.core.error_reporting import ErrorReporter
from wiki_dashboard.core.exceptions import MalformedRevisionError
from wiki_dashboard.core.models import Course, Wiki
from wiki_dashboard.core.revision_store import RevisionStore
from wiki_dashboard.importers.duplicate_article_deleter import DuplicateArticleDeleter
from wiki_dashboard.importers.utils import chunk_requests, chunked
from wiki_dashboard.wiki.replica import ReplicaClient

logger = logging.getLogger(__name__)

USERS_PER_REQUEST: int = 40
SLICE_SIZE: int = 8000
UPDATE_PERIOD_PADDING: timedelta = timedelta(days=2)
DATE_FORMAT: str = "%Y%m%d"


class ImportedArticle(NamedTuple):
    """An article as persisted during the current slice."""

    id: int
    mw_page_id: int
    title: str
    namespace: int


@dataclass
class ImportSummary:
    """Counters for one import run."""

    slices: int = 0
    articles: int = 0
    revisions_inserted: int = 0
    revisions_existing: int = 0
    revisions_malformed: int = 0
    duplicates_retired: int = 0


# ---------------------------------------------------------------------------
# Payload parsing
# ---------------------------------------------------------------------------


def parse_flag(field: str, value: Any) -> bool:
    """Parse a ``"true"``/``"false"`` flag from the edit-history service.

    Real booleans are accepted as-is.

    Raises:
        MalformedRevisionError: For any other value, including ``None``.
    """
    if isinstance(value, bool):
        return value
    if value == "true":
        return True
    if value == "false":
        return False
    raise MalformedRevisionError(field, value)


def parse_int(field: str, value: Any, default: int | None = None) -> int:
    """Parse an integer field, falling back to *default* when it is empty.

    Raises:
        MalformedRevisionError: If the value is missing with no default, or
            is not an integer.
    """
    if value is None or value == "":
        if default is None:
            raise MalformedRevisionError(field, value)
        return default
    if isinstance(value, bool):
        raise MalformedRevisionError(field, value)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise MalformedRevisionError(field, value) from None


def parse_revision_date(value: Any) -> datetime:
    """Parse a revision timestamp (``YYYYMMDDHHMMSS`` or ISO 8601) as UTC.

    Raises:
        MalformedRevisionError: If *value* is not a recognisable timestamp.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            if value.isdigit() and len(value) == 14:
                parsed = datetime.strptime(value, "%Y%m%d%H%M%S")
            else:
                parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as exc:
            raise MalformedRevisionError("date", value) from exc
    else:
        raise MalformedRevisionError("date", value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ---------------------------------------------------------------------------
# RevisionImporter
# ---------------------------------------------------------------------------


class RevisionImporter:
    """Imports revisions for one course on one wiki.

    Args:
        wiki: Persisted wiki to import from.
        course: Course whose students are imported.
        store: Persistence gateway bound to an open session.
        replica: Edit-history client; created for *wiki* when omitted.
        duplicate_deleter: Duplicate-article resolver; created when omitted.
        error_reporter: Receives article upserts that needed the escaped-title
            fallback.
        now: Clock override (tests).
    """

    def __init__(
        self,
        wiki: Wiki,
        course: Course,
        store: RevisionStore,
        *,
        replica: ReplicaClient | None = None,
        duplicate_deleter: DuplicateArticleDeleter | None = None,
        error_reporter: ErrorReporter | None = None,
        now: datetime | None = None,
    ) -> None:
        self._wiki = wiki
        self._course = course
        self._store = store
        self._error_reporter = error_reporter or ErrorReporter()
        self._replica = replica or ReplicaClient(
            wiki, course, error_reporter=self._error_reporter
        )
        self._duplicate_deleter = duplicate_deleter or DuplicateArticleDeleter(wiki, store)
        self._now = now

    async def import_revisions_for_course(self, *, all_time: bool) -> ImportSummary:
        """Fetch and persist the course's revisions on this wiki.

        Args:
            all_time: Re-import every student from the course start instead
                of only what is new since the last update.
        """
        if all_time:
            data = await self._all_revisions_for_course()
        else:
            data = await self._new_revisions_for_course()
        return await self.import_revisions(data)

    async def import_revisions(self, data: Sequence[tuple[str, dict[str, Any]]]) -> ImportSummary:
        """Persist ``(article_key, article_data)`` entries slice by slice."""
        summary = ImportSummary()
        for sub_data in chunked(data, SLICE_SIZE):
            await self._import_slice(sub_data, summary)
            summary.slices += 1
        logger.info(
            "revision import for %s on %s: %d slices, %d articles, %d inserted, "
            "%d already present, %d malformed",
            self._course.slug,
            self._wiki.domain,
            summary.slices,
            summary.articles,
            summary.revisions_inserted,
            summary.revisions_existing,
            summary.revisions_malformed,
        )
        return summary

    # ------------------------------------------------------------------
    # Import windows
    # ------------------------------------------------------------------

    async def _all_revisions_for_course(self) -> list[tuple[str, dict[str, Any]]]:
        students = await self._store.students(self._course)
        return await self._get_revisions(
            students, self._course_start_date(), self._end_of_update_period()
        )

    async def _new_revisions_for_course(self) -> list[tuple[str, dict[str, Any]]]:
        results: list[tuple[str, dict[str, Any]]] = []
        end = self._end_of_update_period()

        # New users may have just joined: search from the course start.
        new_users = await self._store.new_students(self._course)
        if new_users:
            results += await self._get_revisions(new_users, self._course_start_date(), end)

        # Earlier updates already covered old users up to their latest revision.
        new_set = set(new_users)
        old_users = [u for u in await self._store.students(self._course) if u not in new_set]
        if old_users:
            latest = await self._store.latest_revision_date(self._course, self._wiki)
            start = latest.strftime(DATE_FORMAT) if latest else self._course_start_date()
            results += await self._get_revisions(old_users, start, end)
        return results

    async def _get_revisions(
        self, users: Sequence[str], start: str, end: str
    ) -> list[tuple[str, dict[str, Any]]]:
        logger.debug(
            "fetching revisions for %d users on %s, %s-%s",
            len(users),
            self._wiki.domain,
            start,
            end,
        )
        return await chunk_requests(
            users,
            USERS_PER_REQUEST,
            lambda block: self._replica.get_revisions(block, start, end),
        )

    def _course_start_date(self) -> str:
        return self._course.start.strftime(DATE_FORMAT)

    def _end_of_update_period(self) -> str:
        now = self._now or datetime.now(tz=timezone.utc)
        return (now + UPDATE_PERIOD_PADDING).strftime(DATE_FORMAT)

    # ------------------------------------------------------------------
    # Slice processing
    # ------------------------------------------------------------------

    async def _import_slice(
        self,
        sub_data: list[tuple[str, dict[str, Any]]],
        summary: ImportSummary,
    ) -> None:
        usernames = {
            rev.get("username")
            for _key, article_data in sub_data
            for rev in article_data.get("revisions") or []
        }
        try:
            user_ids = await self._store.user_ids_by_username(u for u in usernames if u)
            articles: list[ImportedArticle] = []
            new_rows: list[dict[str, Any]] = []
            for _key, article_data in sub_data:
                article = await self._upsert_article(article_data["article"])
                articles.append(article)
                new_rows += await self._new_revision_rows(
                    article_data.get("revisions") or [], article, user_ids, summary
                )

            retired = await self._duplicate_deleter.resolve_duplicates(articles)
            inserted = await self._store.insert_revisions(new_rows)
            await self._store.commit()
        except SQLAlchemyError:
            await self._store.rollback()
            raise

        summary.articles += len(articles)
        summary.revisions_inserted += inserted
        summary.duplicates_retired += len(retired)

    async def _upsert_article(self, article_data: dict[str, Any]) -> ImportedArticle:
        """Create or update an article, escaping its title if the DB rejects it."""
        mw_page_id = int(article_data["mw_page_id"])
        title = article_data["title"]
        namespace = int(article_data.get("namespace") or 0)
        try:
            article_id = await self._store.upsert_article(
                wiki_id=self._wiki.id,
                mw_page_id=mw_page_id,
                title=title,
                namespace=namespace,
            )
        except DataError as exc:
            await self._error_reporter.report(
                exc,
                action="upsert_article",
                query={"mw_page_id": mw_page_id, "title": title},
                course=self._course,
            )
            title = quote_plus(title)
            article_id = await self._store.upsert_article(
                wiki_id=self._wiki.id,
                mw_page_id=mw_page_id,
                title=title,
                namespace=namespace,
            )
        return ImportedArticle(article_id, mw_page_id, title, namespace)

    async def _new_revision_rows(
        self,
        revisions: list[dict[str, Any]],
        article: ImportedArticle,
        user_ids: dict[str, int],
        summary: ImportSummary,
    ) -> list[dict[str, Any]]:
        parsed: list[dict[str, Any]] = []
        for rev_data in revisions:
            try:
                parsed.append(self._revision_row(rev_data, article, user_ids))
            except MalformedRevisionError as exc:
                summary.revisions_malformed += 1
                logger.warning(
                    "skipping revision %s on %s: %s",
                    rev_data.get("mw_rev_id"),
                    self._wiki.domain,
                    exc,
                )
        existing = await self._store.existing_revision_ids(
            self._wiki.id, (row["mw_rev_id"] for row in parsed)
        )
        rows = [row for row in parsed if row["mw_rev_id"] not in existing]
        summary.revisions_existing += len(parsed) - len(rows)
        return rows

    def _revision_row(
        self,
        rev_data: dict[str, Any],
        article: ImportedArticle,
        user_ids: dict[str, int],
    ) -> dict[str, Any]:
        return {
            "mw_rev_id": parse_int("mw_rev_id", rev_data.get("mw_rev_id")),
            "date": parse_revision_date(rev_data.get("date")),
            "characters": parse_int("characters", rev_data.get("characters"), default=0),
            "article_id": article.id,
            "mw_page_id": parse_int(
                "mw_page_id", rev_data.get("mw_page_id"), default=article.mw_page_id
            ),
            "user_id": user_ids.get(rev_data.get("username")),
            "new_article": parse_flag("new_article", rev_data.get("new_article")),
            "system": parse_flag("system", rev_data.get("system")),
            "wiki_id": rev_data.get("wiki_id") or self._wiki.id,
        }
