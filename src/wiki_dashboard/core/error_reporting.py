"""Error reporting for failed external calls.

Every client in :mod:`wiki_dashboard.wiki` hands its final failures to an
:class:`ErrorReporter`.  Reporting always emits a structured warning with the
call context (``action``, ``query``, ``api_url``).  When the failure happens
while a course is being updated, a :class:`CourseErrorRecord` row is also
written so the stale update is visible per course.

Intermediate failures that are about to be retried are NOT reported; only
the call's final outcome is.

Usage::

    reporter = ErrorReporter(session_factory=AsyncSessionLocal)
    await reporter.report(exc, action="query", query=params,
                          api_url=wiki.api_url, course=course)
"""

from __future__ import annotations

import uuid
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wiki_dashboard.core.models.course_error import CourseErrorRecord

logger = structlog.get_logger(__name__)


class ErrorReporter:
    """Reports external-call failures to the log and, per course, to the DB.

    Args:
        session_factory: Optional async session factory used to persist
            :class:`CourseErrorRecord` rows.  When ``None`` (the default in
            unit tests and one-off scripts) failures are only logged.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        self._session_factory = session_factory

    async def report(
        self,
        error: BaseException,
        *,
        action: str,
        query: Any = None,
        api_url: str | None = None,
        course: Any = None,
    ) -> uuid.UUID | None:
        """Report *error* with its call context.

        Args:
            error: The exception that ended the call.
            action: Name of the client operation (e.g. ``"query"``).
            query: Request parameters that were sent.
            api_url: Endpoint the request targeted.
            course: Optional course being updated when the failure happened.

        Returns:
            The tag UUID linking the log line to the stored course error
            record, or ``None`` when no course was given.
        """
        sentry_tag_uuid = uuid.uuid4() if course is not None else None
        logger.warning(
            "external_call_failed",
            error_type=type(error).__name__,
            error=str(error),
            action=action,
            query=query,
            api_url=api_url,
            course_id=getattr(course, "id", None),
            sentry_tag_uuid=str(sentry_tag_uuid) if sentry_tag_uuid else None,
        )
        if course is not None and self._session_factory is not None:
            await self._save_course_error_record(
                course,
                error,
                sentry_tag_uuid,
                miscellaneous={"action": action, "query": _jsonable(query), "api_url": api_url},
            )
        return sentry_tag_uuid

    async def _save_course_error_record(
        self,
        course: Any,
        error: BaseException,
        sentry_tag_uuid: uuid.UUID | None,
        miscellaneous: dict[str, Any],
    ) -> None:
        """Best-effort insert of a :class:`CourseErrorRecord`.

        A failure to record the error is logged and never masks the
        original failure being reported.
        """
        assert self._session_factory is not None
        try:
            async with self._session_factory() as session:
                session.add(
                    CourseErrorRecord(
                        course_id=course.id,
                        type_of_error=type(error).__name__,
                        sentry_tag_uuid=sentry_tag_uuid,
                        miscellaneous=miscellaneous,
                    )
                )
                await session.commit()
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "course_error_record_failed",
                course_id=getattr(course, "id", None),
                error=str(exc),
            )


def _jsonable(query: Any) -> Any:
    """Coerce request parameters into something a JSONB column accepts."""
    if isinstance(query, dict):
        return {str(k): _jsonable(v) for k, v in query.items()}
    if isinstance(query, (list, tuple, set)):
        return [_jsonable(v) for v in query]
    if query is None or isinstance(query, (str, int, float, bool)):
        return query
    return str(query)
