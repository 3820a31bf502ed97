"""Retirement of duplicate articles left behind by page moves and deletions.

A title can be held by only one page at a time, but the dashboard may know
several pages (different ``mw_page_id``) under the same ``(title, namespace)``
after a page was deleted and recreated, or moved over a redirect.  The
resolver asks the wiki which page id currently holds each contested title
and marks every other copy ``deleted``.  When the wiki gives no answer the
most recently created copy is kept.

Deletion is a flag, not a row removal: revisions keep pointing at the
retired article.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from typing import Any

import structlog

from wiki_dashboard.core.models.article import DRAFTSPACE, MAINSPACE, USERSPACE
from wiki_dashboard.core.models.wiki import Wiki
from wiki_dashboard.core.revision_store import RevisionStore
from wiki_dashboard.importers.utils import chunked
from wiki_dashboard.wiki.api import WikiApi

logger = structlog.get_logger(__name__)

# Canonical namespace prefixes; every MediaWiki site accepts these names.
_NAMESPACE_PREFIXES: dict[int, str] = {
    MAINSPACE: "",
    1: "Talk:",
    USERSPACE: "User:",
    3: "User talk:",
    4: "Project:",
    10: "Template:",
    14: "Category:",
    DRAFTSPACE: "Draft:",
}

# Max titles per prop=info request for anonymous clients.
_TITLES_PER_QUERY: int = 50


def full_title(title: str, namespace: int) -> str:
    """Return *title* with its namespace prefix, e.g. ``User:Ragesoss/sandbox``."""
    return f"{_NAMESPACE_PREFIXES.get(namespace, '')}{title}"


def _normalize(title: str) -> str:
    return title.replace("_", " ")


class DuplicateArticleDeleter:
    """Marks stale copies of contested article titles as deleted.

    Args:
        wiki: Wiki whose articles are checked.
        store: Persistence gateway.
        wiki_api: Client for *wiki*; created on demand when omitted.
    """

    def __init__(
        self,
        wiki: Wiki,
        store: RevisionStore,
        wiki_api: WikiApi | None = None,
    ) -> None:
        self._wiki = wiki
        self._store = store
        self._wiki_api = wiki_api or WikiApi(wiki)

    async def resolve_duplicates(self, articles: Iterable[Any]) -> list[int]:
        """Retire duplicates among the titles of *articles*.

        Args:
            articles: Objects with ``title`` and ``namespace`` attributes,
                typically the articles touched by one import slice.

        Returns:
            IDs of the articles marked deleted.
        """
        keys = {(article.title, article.namespace) for article in articles}
        if not keys:
            return []
        live = await self._store.live_articles_with_titles(self._wiki.id, keys)

        groups: dict[tuple[str, int], list[Any]] = defaultdict(list)
        for article in live:
            groups[(article.title, article.namespace)].append(article)
        contested = {key: copies for key, copies in groups.items() if len(copies) > 1}
        if not contested:
            return []

        current = await self._current_page_ids(list(contested))
        retired: list[int] = []
        for key, copies in contested.items():
            keep = [a for a in copies if a.mw_page_id == current.get(key)]
            # No answer from the wiki: keep the newest copy.
            keeper = keep[0] if keep else copies[-1]
            retired.extend(a.id for a in copies if a.id != keeper.id)

        await self._store.mark_articles_deleted(retired)
        logger.info(
            "duplicate_articles_resolved",
            wiki=self._wiki.domain,
            contested_titles=len(contested),
            retired=len(retired),
        )
        return retired

    async def _current_page_ids(self, keys: list[tuple[str, int]]) -> dict[tuple[str, int], int]:
        """Ask the wiki which page id currently holds each ``(title, namespace)``."""
        by_full_title = {_normalize(full_title(title, ns)): (title, ns) for title, ns in keys}
        current: dict[tuple[str, int], int] = {}
        for block in chunked(list(by_full_title), _TITLES_PER_QUERY):
            info = await self._wiki_api.get_page_info(block)
            if not info:
                continue
            for page in (info.get("pages") or {}).values():
                if "missing" in page or "pageid" not in page:
                    continue
                key = by_full_title.get(_normalize(page.get("title", "")))
                if key is not None:
                    current[key] = int(page["pageid"])
        return current
