"""Constants for the Wikimedia service clients.

Defines endpoint paths, request limits and model identifiers used by
:class:`~wiki_dashboard.wiki.api.WikiApi`,
:class:`~wiki_dashboard.wiki.ores.OresApi` and
:class:`~wiki_dashboard.wiki.replica.ReplicaClient`.  Service base URLs and
the User-Agent come from :mod:`wiki_dashboard.config.settings`.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Retry policy
# ---------------------------------------------------------------------------

MAX_ATTEMPTS: int = 3
"""Total attempts per request, including the first one."""

RATE_LIMIT_SLEEP_SECONDS: float = 1.0
"""Pause after an HTTP 429 before trying again."""

# ---------------------------------------------------------------------------
# MediaWiki Action API
# ---------------------------------------------------------------------------

RAW_PAGE_PATH: str = "/w/index.php"
"""Path serving raw wikitext via ``action=raw``.  Answers 404 for redlinks."""

# ---------------------------------------------------------------------------
# Quality-scoring service (ORES)
# ---------------------------------------------------------------------------

ORES_SCORES_PATH: str = "/v3/scores/{wiki_key}/"
"""Scores endpoint, relative to ``Settings.ores_base_url``."""

REVS_PER_REQUEST: int = 50
"""Maximum revision IDs per scoring request.

Matches the scoring service's per-request concurrency cap; larger batches
are rejected upstream.
"""

AVAILABLE_WIKIPEDIAS: tuple[str, ...] = ("en", "eu", "fa", "fr", "ru", "simple", "tr")
"""Wikipedia languages that have an ``articlequality`` model."""

ARTICLE_QUALITY_MODEL: str = "articlequality"
"""Model key for Wikipedia article quality."""

ITEM_QUALITY_MODEL: str = "itemquality"
"""Model key for Wikidata item quality."""

DELETED_REVISION_ERRORS: frozenset[str] = frozenset({"TextDeleted", "RevisionNotFound"})
"""Scoring error types meaning the revision is gone upstream.

Any other error type is left alone (not treated as a deletion).
"""

# ---------------------------------------------------------------------------
# Edit-history service (Replica)
# ---------------------------------------------------------------------------

REPLICA_REVISIONS_PATH: str = "/revisions.php"
"""User-contribution endpoint, relative to ``Settings.replica_base_url``."""
