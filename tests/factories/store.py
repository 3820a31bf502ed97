"""In-memory stand-in for :class:`~wiki_dashboard.core.revision_store.RevisionStore`.

Implements the same coroutine interface over plain dicts so that the
importers can be exercised without PostgreSQL.  Uniqueness mirrors the
database constraints: articles are keyed by ``(mw_page_id, wiki_id)`` and
revisions by ``(mw_rev_id, wiki_id)``; ``insert_revisions`` ignores
conflicting rows like ``ON CONFLICT DO NOTHING``.

Usage::

    store = FakeRevisionStore(wikis=[enwiki])
    store.students_by_course[course.id] = ["Ragesoss", "Sage"]
    store.reject_titles.add("Bad\\x00title")   # upsert raises DataError
"""

from __future__ import annotations

import itertools
from collections.abc import AsyncIterator, Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy.exc import DataError

from wiki_dashboard.core.models import Course, Wiki
from wiki_dashboard.core.revision_store import RevisionRef


@dataclass
class StoredArticle:
    id: int
    mw_page_id: int
    wiki_id: int
    title: str
    namespace: int
    deleted: bool = False


class FakeRevisionStore:
    """Dict-backed store recording every write for assertions."""

    def __init__(self, wikis: Iterable[Wiki] = ()) -> None:
        self.wikis: dict[tuple[str | None, str], Wiki] = {
            (wiki.language, wiki.project): wiki for wiki in wikis
        }
        self.students_by_course: dict[int, list[str]] = {}
        self.new_students_by_course: dict[int, list[str]] = {}
        self.latest_dates: dict[tuple[int, int], datetime] = {}
        self.users: dict[str, int] = {}
        self.articles: dict[tuple[int, int], StoredArticle] = {}
        self.revisions: dict[tuple[int, int], dict[str, Any]] = {}
        self.reject_titles: set[str] = set()
        self.upsert_calls: list[dict[str, Any]] = []
        self.candidates: list[RevisionRef] = []
        self.previous_candidates: list[RevisionRef] = []
        self.saved_scores: list[list[dict[str, Any]]] = []
        self.commits = 0
        self.rollbacks = 0
        self._ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Wikis and enrollment
    # ------------------------------------------------------------------

    async def get_or_create_wiki(self, language: str | None, project: str) -> Wiki:
        key = (language, project)
        if key not in self.wikis:
            self.wikis[key] = Wiki(id=100 + len(self.wikis), language=language, project=project)
        return self.wikis[key]

    async def students(self, course: Course) -> list[str]:
        return list(self.students_by_course.get(course.id, []))

    async def new_students(self, course: Course) -> list[str]:
        return list(self.new_students_by_course.get(course.id, []))

    async def latest_revision_date(self, course: Course, wiki: Wiki) -> datetime | None:
        return self.latest_dates.get((course.id, wiki.id))

    async def user_ids_by_username(self, usernames: Iterable[str]) -> dict[str, int]:
        return {name: self.users[name] for name in usernames if name in self.users}

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
        self.upsert_calls.append(
            {"wiki_id": wiki_id, "mw_page_id": mw_page_id, "title": title, "namespace": namespace}
        )
        if title in self.reject_titles:
            raise DataError("INSERT INTO articles ...", {"title": title}, Exception("invalid byte"))
        key = (mw_page_id, wiki_id)
        article = self.articles.get(key)
        if article is None:
            article = StoredArticle(next(self._ids), mw_page_id, wiki_id, title, namespace)
            self.articles[key] = article
        else:
            article.title = title
            article.namespace = namespace
        return article.id

    async def existing_revision_ids(self, wiki_id: int, mw_rev_ids: Iterable[int]) -> set[int]:
        return {rev_id for rev_id in mw_rev_ids if (rev_id, wiki_id) in self.revisions}

    async def insert_revisions(self, rows: Sequence[dict[str, Any]]) -> int:
        inserted = 0
        for row in rows:
            key = (row["mw_rev_id"], row["wiki_id"])
            if key in self.revisions:
                continue
            self.revisions[key] = {"id": next(self._ids), **row}
            inserted += 1
        return inserted

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    async def count_scoring_candidates(
        self,
        wiki: Wiki,
        course: Course | None = None,
        *,
        previous: bool = False,
    ) -> int:
        return len(self.previous_candidates if previous else self.candidates)

    async def iter_scoring_batches(
        self,
        wiki: Wiki,
        course: Course | None = None,
        *,
        previous: bool = False,
        batch_size: int,
    ) -> AsyncIterator[list[RevisionRef]]:
        refs = self.previous_candidates if previous else self.candidates
        for start in range(0, len(refs), batch_size):
            yield refs[start : start + batch_size]

    async def save_scores(self, updates: Sequence[dict[str, Any]]) -> None:
        if updates:
            self.saved_scores.append([dict(u) for u in updates])
            self.commits += 1

    @property
    def saved_updates(self) -> list[dict[str, Any]]:
        """Every saved score update, flattened across batches."""
        return [update for batch in self.saved_scores for update in batch]

    # ------------------------------------------------------------------
    # Duplicate articles
    # ------------------------------------------------------------------

    async def live_articles_with_titles(
        self,
        wiki_id: int,
        keys: Iterable[tuple[str, int]],
    ) -> list[StoredArticle]:
        wanted = set(keys)
        return sorted(
            (
                a
                for a in self.articles.values()
                if a.wiki_id == wiki_id and not a.deleted and (a.title, a.namespace) in wanted
            ),
            key=lambda a: a.id,
        )

    async def mark_articles_deleted(self, article_ids: Iterable[int]) -> None:
        ids = set(article_ids)
        for article in self.articles.values():
            if article.id in ids:
                article.deleted = True

    def add_article(
        self, wiki_id: int, mw_page_id: int, title: str, namespace: int = 0
    ) -> StoredArticle:
        """Seed an existing article (test setup helper)."""
        article = StoredArticle(next(self._ids), mw_page_id, wiki_id, title, namespace)
        self.articles[(mw_page_id, wiki_id)] = article
        return article
