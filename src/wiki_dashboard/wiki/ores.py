"""Client for the revision quality-scoring service (ORES).

``get_revision_data()`` returns the service's JSON document unchanged::

    {
      "enwiki": {
        "scores": {
          "641962088": {
            "articlequality": {
              "features": {...},
              "score": {"prediction": "B", "probability": {"FA": 0.01, ...}}
            }
          },
          "12345": {"articlequality": {"error": {"type": "TextDeleted", ...}}}
        }
      }
    }

Only Wikipedia (``articlequality``) and Wikidata (``itemquality``) revisions
can be scored; constructing a client for any other project raises
:class:`~wiki_dashboard.core.exceptions.InvalidProjectError`.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from functools import partial
from typing import Any

import httpx

from wiki_dashboard.config.settings import get_settings
from wiki_dashboard.core.error_reporting import ErrorReporter
from wiki_dashboard.core.exceptions import InvalidProjectError
from wiki_dashboard.core.models.wiki import Wiki
from wiki_dashboard.wiki.config import (
    ARTICLE_QUALITY_MODEL,
    AVAILABLE_WIKIPEDIAS,
    ITEM_QUALITY_MODEL,
    ORES_SCORES_PATH,
)
from wiki_dashboard.wiki.retry import DEFAULT_RETRY_POLICY, RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)


def wiki_key_for(wiki: Wiki) -> str:
    """Top-level key of a wiki in scoring responses (``enwiki``, ``wikidatawiki``)."""
    return f"{wiki.language or wiki.project}wiki"


def model_key_for(wiki: Wiki) -> str:
    """Quality model key used for *wiki*'s revisions."""
    return ITEM_QUALITY_MODEL if wiki.project == "wikidata" else ARTICLE_QUALITY_MODEL


class OresApi:
    """Fetches quality predictions and feature vectors for revisions.

    Args:
        wiki: Wiki whose revisions are scored.
        course: Optional course being updated (for error records).
        http_client: Optional injected :class:`httpx.AsyncClient` (tests).
        error_reporter: Collaborator receiving final failures.
        retry_policy: Retry policy applied to every request.

    Raises:
        InvalidProjectError: If *wiki* is neither Wikipedia nor Wikidata.
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
        if wiki.project not in ("wikipedia", "wikidata"):
            raise InvalidProjectError(wiki.project)
        self._wiki = wiki
        self._course = course
        self._http_client = http_client
        self._error_reporter = error_reporter or ErrorReporter()
        self._retry_policy = retry_policy
        self.wiki_key = wiki_key_for(wiki)
        self.model_key = model_key_for(wiki)
        self._url = get_settings().ores_base_url.rstrip("/") + ORES_SCORES_PATH.format(
            wiki_key=self.wiki_key
        )

    @staticmethod
    def valid_wiki(wiki: Wiki) -> bool:
        """Return ``True`` if the scoring service has a quality model for *wiki*."""
        if wiki.project == "wikidata":
            return True
        return wiki.project == "wikipedia" and wiki.language in AVAILABLE_WIKIPEDIAS

    async def get_revision_data(self, rev_ids: Iterable[int | str]) -> dict[str, Any]:
        """Return scores and features for *rev_ids*.

        Returns:
            The decoded response document, or ``{}`` when the request
            ultimately failed.

        Raises:
            Exception: Errors outside the transient/API classes, after
                they have been reported.
        """
        rev_ids = [str(rev_id) for rev_id in rev_ids]
        if not rev_ids:
            return {}
        params = {
            "models": self.model_key,
            "features": "true",
            "revids": "|".join(rev_ids),
        }
        data = await call_with_retry(
            partial(self._send, params),
            report=partial(self._report, params),
            policy=self._retry_policy,
            label="ores scores",
        )
        return data or {}

    async def _send(self, params: dict[str, Any]) -> dict[str, Any]:
        async with self._client() as client:
            response = await client.get(self._url, params=params)
            response.raise_for_status()
            return response.json()

    async def _report(self, params: dict[str, Any], error: BaseException) -> None:
        await self._error_reporter.report(
            error,
            action="get_revision_data",
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
