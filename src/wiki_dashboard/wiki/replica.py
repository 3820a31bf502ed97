"""Client for the edit-history service ("Replica").

The service answers user-contribution queries against the wiki replica
databases.  :meth:`ReplicaClient.get_revisions` groups its flat rows by page
into the shape the revision importer consumes::

    {
      "4567": {
        "article": {"mw_page_id": 4567, "title": "Selfie", "namespace": 0},
        "revisions": [
          {"mw_rev_id": 111, "mw_page_id": 4567, "date": "20230615120000",
           "characters": 340, "username": "Ragesoss",
           "new_article": "false", "system": "false", "wiki_id": 1},
        ],
      },
    }

Flag values are passed through as the service's ``"true"``/``"false"``
strings; the importer parses them at its boundary.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import partial
from typing import Any

import httpx

from wiki_dashboard.config.settings import get_settings
from wiki_dashboard.core.error_reporting import ErrorReporter
from wiki_dashboard.core.exceptions import WikiApiError
from wiki_dashboard.core.models.wiki import Wiki
from wiki_dashboard.wiki.config import REPLICA_REVISIONS_PATH
from wiki_dashboard.wiki.retry import DEFAULT_RETRY_POLICY, RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)


class ReplicaClient:
    """Fetches revision history for a set of users on one wiki.

    Args:
        wiki: Wiki to query.  Must be persisted (``wiki.id`` is stamped on
            every revision payload).
        course: Optional course being updated (for error records).
        http_client: Optional injected :class:`httpx.AsyncClient` (tests).
        error_reporter: Collaborator receiving final failures.
        retry_policy: Retry policy applied to every request.
    """

    def __init__(
        self,
        wiki: Wiki,
        course: Any = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        error_reporter: ErrorReporter | None = None,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    ) -> None:
        self._wiki = wiki
        self._course = course
        self._http_client = http_client
        self._error_reporter = error_reporter or ErrorReporter()
        self._retry_policy = retry_policy
        self._url = get_settings().replica_base_url.rstrip("/") + REPLICA_REVISIONS_PATH

    async def get_revisions(
        self,
        usernames: list[str],
        start: str,
        end: str,
    ) -> dict[str, dict[str, Any]]:
        """Return revisions by *usernames* between *start* and *end*.

        Args:
            usernames: Editors to query.
            start: Inclusive start date, ``YYYYMMDD``.
            end: Inclusive end date, ``YYYYMMDD``.

        Returns:
            Mapping of page id to ``{"article": ..., "revisions": [...]}``;
            empty when there are no users or the request failed.
        """
        if not usernames:
            return {}
        params = {
            "db": self._wiki.db_name,
            "usernames[]": list(usernames),
            "start": start,
            "end": end,
        }
        rows = await call_with_retry(
            partial(self._send, params),
            report=partial(self._report, params),
            policy=self._retry_policy,
            label="replica revisions",
        )
        if not rows:
            return {}
        return self._group_by_article(rows)

    def _group_by_article(self, rows: list[dict[str, Any]]) -> dict[str, dict[str, Any]]:
        articles: dict[str, dict[str, Any]] = {}
        for row in rows:
            page_id = int(row["page_id"])
            entry = articles.setdefault(
                str(page_id),
                {
                    "article": {
                        "mw_page_id": page_id,
                        "title": row.get("page_title", ""),
                        "namespace": int(row.get("page_namespace", 0)),
                    },
                    "revisions": [],
                },
            )
            entry["revisions"].append(
                {
                    "mw_rev_id": int(row["rev_id"]),
                    "mw_page_id": page_id,
                    "date": row.get("rev_timestamp"),
                    "characters": int(row.get("byte_change") or 0),
                    "username": row.get("username"),
                    "new_article": row.get("new_article"),
                    "system": row.get("system"),
                    "wiki_id": self._wiki.id,
                }
            )
        logger.debug(
            "replica: %d rows grouped into %d articles on %s",
            len(rows),
            len(articles),
            self._wiki.db_name,
        )
        return articles

    async def _send(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        async with self._client() as client:
            response = await client.get(self._url, params=params)
            response.raise_for_status()
            body: dict[str, Any] = response.json()
        if not body.get("success", False):
            raise WikiApiError("replica_failure", body.get("message"))
        return body.get("data") or []

    async def _report(self, params: dict[str, Any], error: BaseException) -> None:
        await self._error_reporter.report(
            error,
            action="get_revisions",
            query=params,
            api_url=self._url,
            course=self._course,
        )

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
            return
        settings = get_settings()
        async with httpx.AsyncClient(
            timeout=settings.http_timeout_seconds,
            headers={"User-Agent": settings.user_agent},
        ) as client:
            yield client
