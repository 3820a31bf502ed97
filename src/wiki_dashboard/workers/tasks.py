"""Celery tasks for the Wiki Dashboard pipeline.

- ``update_current_courses``: Beat entry point; queues
  ``import_course_revisions`` for every current course.
- ``import_course_revisions``: imports one course's revisions on each of its
  wikis, then queues ``update_course_revision_scores`` for it.
- ``update_course_revision_scores``: scores one course's revisions.
- ``update_all_revision_scores``: scores pending revisions on every wiki the
  scoring service supports.

All tasks are synchronous Celery tasks that bridge to the async pipeline via
``asyncio.run()``; the coroutines live in ``workers._task_helpers``.

Runs for the same course must not overlap.  Course tasks take a per-course
Redis lock and skip (without retrying) when another worker holds it.

Error handling: external-service failures are absorbed by the clients and
reported per course.  Database errors abort the run; ``import_course_revisions``
retries up to three times since every committed slice is idempotent.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import redis
import structlog

from wiki_dashboard.config.settings import get_settings
from wiki_dashboard.core.logging_config import bound_run
from wiki_dashboard.workers import _task_helpers
from wiki_dashboard.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)

settings = get_settings()

COURSE_LOCK_TIMEOUT_SECONDS: int = 7_200
"""Lock expiry; matches the hard task time limit."""


@contextmanager
def course_lock(course_id: int) -> Iterator[bool]:
    """Hold the per-course update lock while the block runs.

    Yields:
        ``True`` if the lock was acquired, ``False`` if another run holds it.
    """
    client = redis.from_url(settings.redis_url)
    lock = client.lock(
        f"wiki_dashboard:course_update:{course_id}",
        timeout=COURSE_LOCK_TIMEOUT_SECONDS,
    )
    acquired = lock.acquire(blocking=False)
    try:
        yield acquired
    finally:
        if acquired:
            lock.release()


# ---------------------------------------------------------------------------
# Course updates
# ---------------------------------------------------------------------------


@celery_app.task(name="wiki_dashboard.workers.tasks.update_current_courses", bind=True)
def update_current_courses(self: Any) -> dict[str, Any]:
    """Queue an incremental import for every current course.

    Returns:
        Dict with the number of ``dispatched`` courses.
    """
    with bound_run(self.request.id, task="update_current_courses"):
        course_ids = asyncio.run(_task_helpers.fetch_current_course_ids())
        for course_id in course_ids:
            import_course_revisions.delay(course_id=course_id, all_time=False)
        logger.info("update_current_courses: dispatched", count=len(course_ids))
    return {"dispatched": len(course_ids)}


@celery_app.task(
    name="wiki_dashboard.workers.tasks.import_course_revisions",
    bind=True,
    max_retries=3,
)
def import_course_revisions(self: Any, course_id: int, all_time: bool = False) -> dict[str, Any]:
    """Import the revisions of one course and queue its scoring.

    Args:
        course_id: Primary key of the course.
        all_time: Re-import every student from the course start.

    Returns:
        Per-wiki import summaries, or ``{"skipped": ...}``.
    """
    started = time.perf_counter()
    with bound_run(self.request.id, task="import_course_revisions", course_id=course_id):
        with course_lock(course_id) as acquired:
            if not acquired:
                logger.info("import_course_revisions: another update is running, skipping")
                return {"skipped": "locked"}
            try:
                summaries = asyncio.run(
                    _task_helpers.import_revisions_for_course(course_id, all_time)
                )
            except Exception as exc:
                logger.error("import_course_revisions: failed", error=str(exc), exc_info=True)
                raise self.retry(countdown=60, exc=exc)

        if not summaries:
            logger.warning("import_course_revisions: course has no wikis or does not exist")
            return {"skipped": "no_wikis"}

        update_course_revision_scores.delay(course_id=course_id)
        logger.info(
            "import_course_revisions: complete",
            all_time=all_time,
            wikis=len(summaries),
            duration_seconds=round(time.perf_counter() - started, 2),
        )
    return summaries


@celery_app.task(name="wiki_dashboard.workers.tasks.update_course_revision_scores", bind=True)
def update_course_revision_scores(self: Any, course_id: int) -> dict[str, Any]:
    """Score the revisions of one course on each of its scoreable wikis."""
    with bound_run(self.request.id, task="update_course_revision_scores", course_id=course_id):
        with course_lock(course_id) as acquired:
            if not acquired:
                logger.info("update_course_revision_scores: another update is running, skipping")
                return {"skipped": "locked"}
            found = asyncio.run(_task_helpers.update_course_revision_scores(course_id))

        logger.info("update_course_revision_scores: complete", found=found)
    return {"course_found": found}


# ---------------------------------------------------------------------------
# Global scoring
# ---------------------------------------------------------------------------


@celery_app.task(name="wiki_dashboard.workers.tasks.update_all_revision_scores", bind=True)
def update_all_revision_scores(self: Any) -> dict[str, Any]:
    """Score pending revisions on every scoreable wiki."""
    started = time.perf_counter()
    with bound_run(self.request.id, task="update_all_revision_scores"):
        logger.info("update_all_revision_scores: starting")
        asyncio.run(_task_helpers.update_all_revision_scores())
        duration = round(time.perf_counter() - started, 2)
        logger.info("update_all_revision_scores: complete", duration_seconds=duration)
    return {"duration_seconds": duration}
