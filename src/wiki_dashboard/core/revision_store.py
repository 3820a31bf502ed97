"""Persistence gateway for the revision import and scoring pipeline.

:class:`RevisionStore` wraps one :class:`~sqlalchemy.ext.asyncio.AsyncSession`
and exposes exactly the reads and writes the importers need:

- wiki lookup/creation,
- enrollment reads (students, new students, latest imported revision),
- article upsert and revision insert-or-ignore,
- keyset-paginated selection of revisions awaiting a quality score,
- per-batch score updates, each batch committed as one transaction,
- duplicate-article lookup and retirement.

Uniqueness is enforced by the database (``uq_articles_mw_page_id_wiki_id``
and ``uq_revisions_mw_rev_id_wiki_id``); the store never checks-then-writes
where a conflict clause can do the job.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterable, Sequence
from datetime import datetime
from typing import Any, NamedTuple

from sqlalchemy import func, select, tuple_, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from wiki_dashboard.core.models import (
    QUALITY_TRACKED_NAMESPACES,
    STUDENT_ROLE,
    Article,
    Course,
    CoursesUsers,
    Revision,
    User,
    Wiki,
)

logger = logging.getLogger(__name__)

_INSERT_BATCH_SIZE: int = 1000


class RevisionRef(NamedTuple):
    """Primary key and MediaWiki revision ID of a scoring candidate."""

    id: int
    mw_rev_id: int


class RevisionStore:
    """Database reads and writes used by the importers.

    Args:
        session: An open :class:`sqlalchemy.ext.asyncio.AsyncSession`.  The
            store commits at the boundaries documented on each method; the
            caller owns the session's lifetime.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # ------------------------------------------------------------------
    # Wikis
    # ------------------------------------------------------------------

    async def get_or_create_wiki(self, language: str | None, project: str) -> Wiki:
        """Return the wiki for ``(language, project)``, creating it if needed."""
        stmt = select(Wiki).where(Wiki.project == project)
        if language is None:
            stmt = stmt.where(Wiki.language.is_(None))
        else:
            stmt = stmt.where(Wiki.language == language)
        wiki = (await self.session.execute(stmt)).scalar_one_or_none()
        if wiki is not None:
            return wiki

        insert_stmt = (
            pg_insert(Wiki)
            .values(language=language, project=project)
            .on_conflict_do_nothing(constraint="uq_wikis_language_project")
        )
        await self.session.execute(insert_stmt)
        await self.session.commit()
        wiki = (await self.session.execute(stmt)).scalar_one()
        logger.info("revision_store: created wiki %s", wiki.domain)
        return wiki

    # ------------------------------------------------------------------
    # Enrollment
    # ------------------------------------------------------------------

    async def students(self, course: Course) -> list[str]:
        """Return usernames of every student in *course*."""
        return await self._student_usernames(course)

    async def new_students(self, course: Course) -> list[str]:
        """Return usernames of students with no imported revisions yet."""
        return await self._student_usernames(course, CoursesUsers.revision_count == 0)

    async def _student_usernames(self, course: Course, *criteria: Any) -> list[str]:
        stmt = (
            select(User.username)
            .join(CoursesUsers, CoursesUsers.user_id == User.id)
            .where(CoursesUsers.course_id == course.id)
            .where(CoursesUsers.role == STUDENT_ROLE)
            .where(*criteria)
            .order_by(User.username)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def latest_revision_date(self, course: Course, wiki: Wiki) -> datetime | None:
        """Return the date of the newest imported revision for *course* on *wiki*."""
        stmt = (
            select(func.max(Revision.date))
            .join(CoursesUsers, CoursesUsers.user_id == Revision.user_id)
            .where(CoursesUsers.course_id == course.id)
            .where(CoursesUsers.role == STUDENT_ROLE)
            .where(Revision.wiki_id == wiki.id)
            .where(Revision.date >= course.start)
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def user_ids_by_username(self, usernames: Iterable[str]) -> dict[str, int]:
        """Return ``{username: user_id}`` for the known users among *usernames*."""
        names = sorted({name for name in usernames if name})
        if not names:
            return {}
        stmt = select(User.username, User.id).where(User.username.in_(names))
        result = await self.session.execute(stmt)
        return {row.username: row.id for row in result}

    # ------------------------------------------------------------------
    # Articles and revisions
    # ------------------------------------------------------------------

    async def upsert_article(
        self,
        *,
        wiki_id: int,
        mw_page_id: int,
        title: str,
        namespace: int,
    ) -> int:
        """Create or update the article ``(mw_page_id, wiki_id)``.

        Runs inside a SAVEPOINT so that a rejected title (e.g. an encoding
        error) only rolls back this statement.

        Returns:
            The article's primary key.

        Raises:
            sqlalchemy.exc.DataError: If the database rejects the values.
        """
        stmt = pg_insert(Article).values(
            wiki_id=wiki_id,
            mw_page_id=mw_page_id,
            title=title,
            namespace=namespace,
        )
        stmt = stmt.on_conflict_do_update(
            constraint="uq_articles_mw_page_id_wiki_id",
            set_={
                "title": stmt.excluded.title,
                "namespace": stmt.excluded.namespace,
                "updated_at": func.now(),
            },
        ).returning(Article.id)
        async with self.session.begin_nested():
            result = await self.session.execute(stmt)
        return result.scalar_one()

    async def existing_revision_ids(self, wiki_id: int, mw_rev_ids: Iterable[int]) -> set[int]:
        """Return the subset of *mw_rev_ids* already stored for *wiki_id*."""
        rev_ids = list(mw_rev_ids)
        if not rev_ids:
            return set()
        stmt = (
            select(Revision.mw_rev_id)
            .where(Revision.wiki_id == wiki_id)
            .where(Revision.mw_rev_id.in_(rev_ids))
        )
        result = await self.session.execute(stmt)
        return set(result.scalars().all())

    async def insert_revisions(self, rows: Sequence[dict[str, Any]]) -> int:
        """Bulk-insert revision rows, ignoring ``(mw_rev_id, wiki_id)`` conflicts.

        Returns:
            Number of rows actually inserted.
        """
        inserted = 0
        # asyncpg caps a statement at 32767 bind parameters.
        for start in range(0, len(rows), _INSERT_BATCH_SIZE):
            stmt = (
                pg_insert(Revision)
                .values(list(rows[start : start + _INSERT_BATCH_SIZE]))
                .on_conflict_do_nothing(constraint="uq_revisions_mw_rev_id_wiki_id")
                .returning(Revision.id)
            )
            result = await self.session.execute(stmt)
            inserted += len(result.scalars().all())
        return inserted

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()

    # ------------------------------------------------------------------
    # Scoring candidates
    # ------------------------------------------------------------------

    def _scoring_candidates(
        self,
        wiki: Wiki,
        course: Course | None,
        *,
        previous: bool,
    ) -> Any:
        stmt = (
            select(Revision.id, Revision.mw_rev_id)
            .join(Article, Article.id == Revision.article_id)
            .where(Revision.wiki_id == wiki.id)
            .where(Revision.deleted.is_(False))
            .where(Article.namespace.in_(QUALITY_TRACKED_NAMESPACES))
        )
        if previous:
            stmt = stmt.where(Revision.features_previous.is_(None)).where(
                Revision.new_article.is_(False)
            )
        else:
            stmt = stmt.where(Revision.features.is_(None))
        if course is not None:
            students = (
                select(CoursesUsers.user_id)
                .where(CoursesUsers.course_id == course.id)
                .where(CoursesUsers.role == STUDENT_ROLE)
            )
            stmt = (
                stmt.where(Revision.user_id.in_(students))
                .where(Revision.date >= course.start)
                .where(Revision.date <= course.end)
            )
        return stmt

    async def count_scoring_candidates(
        self,
        wiki: Wiki,
        course: Course | None = None,
        *,
        previous: bool = False,
    ) -> int:
        """Return how many revisions currently await a (previous) score."""
        candidates = self._scoring_candidates(wiki, course, previous=previous).subquery()
        stmt = select(func.count()).select_from(candidates)
        return int((await self.session.execute(stmt)).scalar_one())

    async def iter_scoring_batches(
        self,
        wiki: Wiki,
        course: Course | None = None,
        *,
        previous: bool = False,
        batch_size: int,
    ) -> AsyncIterator[list[RevisionRef]]:
        """Yield batches of revisions awaiting a score, ordered by primary key.

        Keyset pagination on ``Revision.id``: a batch whose scores could not
        be fetched is passed over rather than selected again.
        """
        last_id = 0
        base = self._scoring_candidates(wiki, course, previous=previous)
        while True:
            stmt = base.where(Revision.id > last_id).order_by(Revision.id).limit(batch_size)
            rows = (await self.session.execute(stmt)).all()
            if not rows:
                return
            batch = [RevisionRef(row.id, row.mw_rev_id) for row in rows]
            yield batch
            last_id = batch[-1].id

    async def save_scores(self, updates: Sequence[dict[str, Any]]) -> None:
        """Apply one batch of score updates and commit.

        Each update carries ``id`` plus any of ``wp10``, ``features``,
        ``wp10_previous``, ``features_previous`` and ``deleted``.  The batch
        is rolled back as a whole if any statement fails.
        """
        if not updates:
            return
        try:
            for values in updates:
                values = dict(values)
                revision_id = values.pop("id")
                await self.session.execute(
                    update(Revision).where(Revision.id == revision_id).values(**values)
                )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

    # ------------------------------------------------------------------
    # Duplicate articles
    # ------------------------------------------------------------------

    async def live_articles_with_titles(
        self,
        wiki_id: int,
        keys: Iterable[tuple[str, int]],
    ) -> list[Article]:
        """Return live articles on *wiki_id* matching any ``(title, namespace)``."""
        keys = list(set(keys))
        if not keys:
            return []
        stmt = (
            select(Article)
            .where(Article.wiki_id == wiki_id)
            .where(Article.deleted.is_(False))
            .where(tuple_(Article.title, Article.namespace).in_(keys))
            .order_by(Article.created_at, Article.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def mark_articles_deleted(self, article_ids: Iterable[int]) -> None:
        ids = list(article_ids)
        if not ids:
            return
        await self.session.execute(
            update(Article).where(Article.id.in_(ids)).values(deleted=True)
        )
