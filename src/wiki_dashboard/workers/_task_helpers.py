"""Internal async helpers for the pipeline tasks.

The synchronous Celery tasks in ``workers/tasks.py`` call these coroutines via
``asyncio.run()``.  Each helper opens its own ``AsyncSessionLocal`` session
and closes it before returning, since every task invocation runs on a fresh
event loop.  Kept apart from the Celery app so they can be unit-tested
without a broker.
"""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import select

from wiki_dashboard.core.database import AsyncSessionLocal
from wiki_dashboard.core.error_reporting import ErrorReporter
from wiki_dashboard.core.models import Course
from wiki_dashboard.core.revision_store import RevisionStore
from wiki_dashboard.importers.revision_importer import RevisionImporter
from wiki_dashboard.importers.revision_score_importer import (
    update_revision_scores_for_all_wikis,
    update_revision_scores_for_course,
)

CURRENT_COURSE_GRACE: timedelta = timedelta(days=7)
"""How long after its end date a course is still updated."""


async def fetch_current_course_ids(now: datetime | None = None) -> list[int]:
    """Return IDs of courses that have started and ended less than a week ago."""
    now = now or datetime.now(tz=timezone.utc)
    async with AsyncSessionLocal() as db:
        stmt = (
            select(Course.id)
            .where(Course.start <= now)
            .where(Course.end >= now - CURRENT_COURSE_GRACE)
            .order_by(Course.id)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())


async def import_revisions_for_course(course_id: int, all_time: bool) -> dict[str, Any]:
    """Import the revisions of one course on each of its wikis.

    Returns:
        ``{wiki_domain: ImportSummary fields}``, or ``{}`` when the course
        does not exist.
    """
    reporter = ErrorReporter(session_factory=AsyncSessionLocal)
    async with AsyncSessionLocal() as db:
        course = await db.get(Course, course_id)
        if course is None:
            return {}
        store = RevisionStore(db)
        summaries: dict[str, Any] = {}
        for wiki in course.wikis:
            importer = RevisionImporter(wiki, course, store, error_reporter=reporter)
            summary = await importer.import_revisions_for_course(all_time=all_time)
            summaries[wiki.domain] = asdict(summary)
        return summaries


async def update_course_revision_scores(course_id: int) -> bool:
    """Score one course's revisions.  Returns ``False`` if the course is unknown."""
    reporter = ErrorReporter(session_factory=AsyncSessionLocal)
    async with AsyncSessionLocal() as db:
        course = await db.get(Course, course_id)
        if course is None:
            return False
        await update_revision_scores_for_course(
            RevisionStore(db), course, error_reporter=reporter
        )
        return True


async def update_all_revision_scores() -> None:
    """Score pending revisions on every wiki the scoring service supports."""
    reporter = ErrorReporter(session_factory=AsyncSessionLocal)
    async with AsyncSessionLocal() as db:
        await update_revision_scores_for_all_wikis(RevisionStore(db), error_reporter=reporter)
