"""MediaWiki Action API client.

General-purpose access to a wiki's ``api.php``:

- ``query()``: arbitrary ``action=query`` requests.
- ``get_page_content()``: raw wikitext (``""`` for redlinks).
- ``get_user_info()`` / ``get_user_id()``: ``list=users`` lookups.
- ``get_page_info()`` / ``is_redirect()``: ``prop=info`` lookups.
- ``get_article_rating()``: WikiProject assessments, following
  continuation tokens until the result set is complete.

Every request runs under the shared retry policy
(:mod:`wiki_dashboard.wiki.retry`).  When a request ultimately fails the
failure is reported and the method returns ``None``: callers treat that as
"no data this cycle", never as fatal.
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
from wiki_dashboard.wiki.article_rating import extract_ratings
from wiki_dashboard.wiki.config import RAW_PAGE_PATH
from wiki_dashboard.wiki.retry import (
    DEFAULT_RETRY_POLICY,
    RetryPolicy,
    WikiResponse,
    call_with_retry,
)

logger = logging.getLogger(__name__)


def default_wiki() -> Wiki:
    """Return an unsaved :class:`Wiki` for the configured default site."""
    settings = get_settings()
    return Wiki(language=settings.default_language, project=settings.default_project)


class WikiApi:
    """Client for one wiki's MediaWiki Action API.

    Args:
        wiki: Target wiki.  Defaults to the configured default wiki.
        course: Optional course being updated; failures are then recorded
            against it by the error reporter.
        http_client: Optional injected :class:`httpx.AsyncClient` (tests).
            If ``None``, a new client is created per request.
        error_reporter: Collaborator receiving final failures.
        retry_policy: Retry policy applied to every request.
    """

    def __init__(
        self,
        wiki: Wiki | None = None,
        course: Any = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        error_reporter: ErrorReporter | None = None,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    ) -> None:
        self._wiki = wiki or default_wiki()
        self._api_url = self._wiki.api_url
        self._course = course
        self._http_client = http_client
        self._error_reporter = error_reporter or ErrorReporter()
        self._retry_policy = retry_policy

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def query(self, query_parameters: dict[str, Any]) -> WikiResponse | None:
        """Run an arbitrary ``action=query`` request."""
        return await self._mediawiki("query", query_parameters)

    async def get_page_content(self, page_title: str) -> str | None:
        """Return the raw wikitext of *page_title*.

        Returns:
            The wikitext, ``""`` if the page does not exist (HTTP 404), or
            ``None`` if nothing could be fetched.
        """
        response = await self._mediawiki("get_wikitext", page_title)
        if response is None:
            return None
        if response.status == 200:
            return response.body
        if response.status == 404:
            return ""
        return None

    async def get_user_id(self, username: str) -> int | None:
        info = await self.get_user_info(username)
        if not info:
            return None
        return info.get("userid")

    async def get_user_info(self, username: str) -> dict[str, Any] | None:
        """Return the ``list=users`` record for *username*, or ``None``."""
        user_query = {
            "list": "users",
            "ususers": username,
            "usprop": "centralids|registration",
        }
        response = await self._mediawiki("query", user_query)
        if response is None:
            return None
        users = response.data.get("users") or []
        if not users:
            return None
        return users[0]

    async def is_redirect(self, page_title: str) -> bool:
        info = await self.get_page_info([page_title])
        if info is None:
            return False
        pages = list((info.get("pages") or {}).values())
        if not pages:
            return False
        return "redirect" in pages[0]

    async def get_page_info(self, titles: list[str]) -> dict[str, Any] | None:
        """Return the ``prop=info`` payload for *titles*, or ``None``."""
        response = await self.query({"prop": "info", "titles": titles})
        if response is None or response.status != 200:
            return None
        return response.data

    async def get_article_rating(self, titles: str | list[str]) -> dict[str, str | None]:
        """Return ``{title: rating}`` from WikiProject page assessments.

        Titles are sorted case-insensitively before querying so that
        continuation pages arrive in a stable order.
        """
        if isinstance(titles, str):
            titles = [titles]
        titles = sorted(titles, key=str.lower)
        query_parameters = {
            "titles": titles,
            "prop": "pageassessments",
            "redirects": "true",
        }
        data = await self.fetch_all(query_parameters)
        return extract_ratings(data.get("pages"))

    async def fetch_all(self, query: dict[str, Any]) -> dict[str, Any]:
        """Follow continuation tokens and deep-merge every page of results.

        The loop stops when the server omits ``continue``.  If a request
        fails outright, the data accumulated so far is returned.
        """
        params = dict(query)
        data: dict[str, Any] = {}
        while True:
            response = await self._mediawiki("query", params)
            if response is None:
                return data
            data = deep_merge(data, response.data)
            if not response.continuation:
                return data
            params = {**params, **response.continuation}

    # ------------------------------------------------------------------
    # Private HTTP helpers
    # ------------------------------------------------------------------

    async def _mediawiki(self, action: str, payload: Any) -> WikiResponse | None:
        return await call_with_retry(
            partial(self._send, action, payload),
            report=partial(self._report, action, payload),
            policy=self._retry_policy,
            label=f"mediawiki {action}",
        )

    async def _send(self, action: str, payload: Any) -> WikiResponse:
        """Perform one request.  Raises on transport or HTTP errors."""
        async with self._client() as client:
            if action == "get_wikitext":
                return await self._get_wikitext(client, payload)
            return await self._get_query(client, payload)

    async def _get_query(
        self, client: httpx.AsyncClient, query_parameters: dict[str, Any]
    ) -> WikiResponse:
        params = {"action": "query", "format": "json", **_encode_params(query_parameters)}
        response = await client.get(self._api_url, params=params)
        response.raise_for_status()
        body: dict[str, Any] = response.json()
        error = body.get("error")
        if error:
            raise WikiApiError(error.get("code"), error.get("info"))
        return WikiResponse(
            status=response.status_code,
            body=response.text,
            data=body.get("query") or {},
            continuation=body.get("continue"),
        )

    async def _get_wikitext(self, client: httpx.AsyncClient, page_title: str) -> WikiResponse:
        url = f"{self._wiki.base_url}{RAW_PAGE_PATH}"
        response = await client.get(url, params={"action": "raw", "title": page_title})
        if response.status_code == 404:
            return WikiResponse(status=404, body="", data={})
        response.raise_for_status()
        return WikiResponse(status=response.status_code, body=response.text, data={})

    async def _report(self, action: str, payload: Any, error: BaseException) -> None:
        await self._error_reporter.report(
            error,
            action=action,
            query=payload,
            api_url=self._api_url,
            course=self._course,
        )

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        """Yield the injected client, or a short-lived one with Wikimedia headers."""
        if self._http_client is not None:
            yield self._http_client
            return
        settings = get_settings()
        async with httpx.AsyncClient(
            timeout=settings.http_timeout_seconds,
            headers={"User-Agent": settings.user_agent},
        ) as client:
            yield client


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------


def deep_merge(base: dict[str, Any], other: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict with *other* merged into *base* recursively.

    Nested dicts are merged key by key; any other value in *other* replaces
    the one in *base*.
    """
    merged = dict(base)
    for key, value in other.items():
        existing = merged.get(key)
        if isinstance(existing, dict) and isinstance(value, dict):
            merged[key] = deep_merge(existing, value)
        else:
            merged[key] = value
    return merged


def _encode_params(params: dict[str, Any]) -> dict[str, Any]:
    """Join list values with ``|`` as the MediaWiki API expects."""
    encoded: dict[str, Any] = {}
    for key, value in params.items():
        if isinstance(value, (list, tuple, set)):
            encoded[key] = "|".join(str(v) for v in value)
        else:
            encoded[key] = value
    return encoded
