"""Imports revision quality scores from the scoring service (ORES).

Two passes run over the revisions of one wiki (optionally limited to one
course's students):

- **current scores**: revisions in mainspace, userspace or draftspace that
  have no feature vector yet are scored in batches of
  :data:`~wiki_dashboard.wiki.config.REVS_PER_REQUEST`.  Each returned score
  sets ``wp10`` (the weighted mean, see
  :mod:`wiki_dashboard.importers.weighting`) and ``features``; a score that
  reports the revision as deleted upstream sets ``deleted`` instead of
  failing.
- **previous scores**: for revisions that are not page creations and have no
  ``features_previous``, the parent revision ids are looked up through the
  wiki's API and scored; ``wp10_previous`` and ``features_previous`` are
  read from the *parent's* score.

Each batch is written in one transaction.  A batch whose scores could not be
fetched writes nothing and the run moves on; the revisions stay candidates
for the next run.

Entry points for scheduled jobs::

    await update_revision_scores_for_all_wikis(store)
    await update_revision_scores_for_course(store, course)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from wiki_dashboard.core.error_reporting import ErrorReporter
from wiki_dashboard.core.models import Course, Wiki
from wiki_dashboard.core.revision_store import RevisionRef, RevisionStore
from wiki_dashboard.importers.utils import batch_count
from wiki_dashboard.importers.weighting import (
    RatingWeighting,
    weighted_mean_score,
    weighting_for,
)
from wiki_dashboard.wiki.api import WikiApi
from wiki_dashboard.wiki.config import (
    AVAILABLE_WIKIPEDIAS,
    DELETED_REVISION_ERRORS,
    REVS_PER_REQUEST,
)
from wiki_dashboard.wiki.ores import OresApi

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


async def update_revision_scores_for_all_wikis(
    store: RevisionStore,
    *,
    error_reporter: ErrorReporter | None = None,
) -> None:
    """Score every scoreable Wikipedia language, then Wikidata."""
    targets: list[tuple[str | None, str]] = [
        (language, "wikipedia") for language in AVAILABLE_WIKIPEDIAS
    ]
    targets.append((None, "wikidata"))
    for language, project in targets:
        importer = RevisionScoreImporter(
            store, language=language, project=project, error_reporter=error_reporter
        )
        await importer.update_revision_scores()
        await importer.update_previous_revision_scores()


async def update_revision_scores_for_course(
    store: RevisionStore,
    course: Course,
    *,
    error_reporter: ErrorReporter | None = None,
) -> None:
    """Score the revisions of *course* on each of its scoreable wikis."""
    for wiki in course.wikis:
        if not OresApi.valid_wiki(wiki):
            logger.debug("skipping %s for %s: no quality model", wiki.domain, course.slug)
            continue
        importer = RevisionScoreImporter(
            store, wiki=wiki, course=course, error_reporter=error_reporter
        )
        await importer.update_revision_scores()
        await importer.update_previous_revision_scores()


# ---------------------------------------------------------------------------
# RevisionScoreImporter
# ---------------------------------------------------------------------------


class RevisionScoreImporter:
    """Fetches and stores quality scores for one wiki.

    Args:
        store: Persistence gateway bound to an open session.
        language: Wiki language, used when *wiki* is not given.  ``None``
            for Wikidata.
        project: Wiki project, used when *wiki* is not given.
        wiki: Persisted wiki to score; looked up or created from
            ``(language, project)`` when omitted.
        course: Restrict scoring to this course's students.
        ores_api: Scoring client (tests); created on first use otherwise.
        wiki_api: Wiki API client (tests); created on first use otherwise.
        error_reporter: Receives final request failures.
    """

    def __init__(
        self,
        store: RevisionStore,
        language: str | None = "en",
        project: str = "wikipedia",
        wiki: Wiki | None = None,
        course: Course | None = None,
        *,
        ores_api: OresApi | None = None,
        wiki_api: WikiApi | None = None,
        error_reporter: ErrorReporter | None = None,
    ) -> None:
        self._store = store
        self._language = language
        self._project = project
        self._wiki = wiki
        self._course = course
        self._ores_api = ores_api
        self._wiki_api = wiki_api
        self._error_reporter = error_reporter or ErrorReporter()
        self._weighting: RatingWeighting | None = None
        self._policy_resolved = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch_ores_data_for_revision_id(self, rev_id: int) -> dict[str, Any]:
        """Return ``{"features": ..., "rating": ...}`` for one revision.

        Assumes *rev_id* belongs to this importer's wiki.  Both values are
        ``None`` when the scoring service has nothing for the revision.
        """
        ores_api = await self._ores()
        ores_data = await ores_api.get_revision_data([rev_id])
        score = self._scores_from(ores_data).get(str(rev_id)) or {}
        model = score.get(ores_api.model_key) or {}
        return {
            "features": model.get("features"),
            "rating": (model.get("score") or {}).get("prediction"),
        }

    async def update_revision_scores(self) -> None:
        """Score every candidate revision that has no feature vector yet."""
        ores_api = await self._ores()
        total = await self._store.count_scoring_candidates(self._wiki, self._course)
        batches = batch_count(total, REVS_PER_REQUEST)
        index = 0
        async for rev_batch in self._store.iter_scoring_batches(
            self._wiki, self._course, batch_size=REVS_PER_REQUEST
        ):
            index += 1
            logger.debug("Pulling revisions: batch %d of %d", index, batches)
            await self._get_and_save_scores(ores_api, rev_batch)

    async def update_previous_revision_scores(self) -> None:
        """Back-fill ``wp10_previous``/``features_previous`` from parent revisions."""
        ores_api = await self._ores()
        total = await self._store.count_scoring_candidates(
            self._wiki, self._course, previous=True
        )
        batches = batch_count(total, REVS_PER_REQUEST)
        index = 0
        async for rev_batch in self._store.iter_scoring_batches(
            self._wiki, self._course, previous=True, batch_size=REVS_PER_REQUEST
        ):
            index += 1
            logger.debug("Getting wp10_previous: batch %d of %d", index, batches)
            await self._get_and_save_previous_scores(ores_api, rev_batch)

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    async def _get_and_save_scores(self, ores_api: OresApi, rev_batch: list[RevisionRef]) -> None:
        scores_data = await ores_api.get_revision_data(ref.mw_rev_id for ref in rev_batch)
        scores = self._scores_from(scores_data)
        ids_by_rev = {ref.mw_rev_id: ref.id for ref in rev_batch}

        updates: list[dict[str, Any]] = []
        for mw_rev_id, score in scores.items():
            revision_id = ids_by_rev.get(int(mw_rev_id))
            if revision_id is None:
                continue
            values: dict[str, Any] = {
                "id": revision_id,
                "wp10": weighted_mean_score(score, ores_api.model_key, self._weighting),
                "features": self._features(score, ores_api.model_key),
            }
            if self._deleted(score, ores_api.model_key):
                values["deleted"] = True
            updates.append(values)
        await self._store.save_scores(updates)

    async def _get_and_save_previous_scores(
        self, ores_api: OresApi, rev_batch: list[RevisionRef]
    ) -> None:
        parent_revisions = await self._get_parent_revisions(rev_batch)
        if not parent_revisions:
            return
        parent_quality_data = await ores_api.get_revision_data(
            sorted(set(parent_revisions.values()), key=int)
        )
        scores = self._scores_from(parent_quality_data)

        updates: list[dict[str, Any]] = []
        for ref in rev_batch:
            parent_id = parent_revisions.get(ref.mw_rev_id)
            if parent_id is None or parent_id not in scores:
                continue
            parent_score = scores[parent_id]
            updates.append(
                {
                    "id": ref.id,
                    "wp10_previous": weighted_mean_score(
                        parent_score, ores_api.model_key, self._weighting
                    ),
                    "features_previous": self._features(parent_score, ores_api.model_key),
                }
            )
        await self._store.save_scores(updates)

    async def _get_parent_revisions(self, rev_batch: list[RevisionRef]) -> dict[int, str]:
        """Return ``{mw_rev_id: parent_rev_id}`` for revisions that have a parent."""
        wiki_api = self._wiki_api or WikiApi(
            self._wiki, self._course, error_reporter=self._error_reporter
        )
        response = await wiki_api.query(
            {
                "prop": "revisions",
                "revids": [ref.mw_rev_id for ref in rev_batch],
                "rvprop": "ids",
            }
        )
        if response is None or not response.data.get("pages"):
            return {}

        parents: dict[int, str] = {}
        for page_data in response.data["pages"].values():
            for rev_datum in page_data.get("revisions") or []:
                parent_id = int(rev_datum.get("parentid") or 0)
                # parentid 0: the revision created the page.
                if parent_id == 0:
                    continue
                parents[int(rev_datum["revid"])] = str(parent_id)
        return parents

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _ores(self) -> OresApi:
        """Resolve the wiki and the scoring client on first use."""
        if self._wiki is None:
            self._wiki = await self._store.get_or_create_wiki(self._language, self._project)
        if self._ores_api is None:
            self._ores_api = OresApi(
                self._wiki, self._course, error_reporter=self._error_reporter
            )
        if not self._policy_resolved:
            self._weighting = weighting_for(self._ores_api.wiki_key)
            self._policy_resolved = True
            if self._weighting is None:
                logger.warning(
                    "no scoring policy for %s; wp10 values will be left unset",
                    self._ores_api.wiki_key,
                )
        return self._ores_api

    def _scores_from(self, ores_data: Mapping[str, Any]) -> dict[str, Any]:
        assert self._ores_api is not None
        return ((ores_data or {}).get(self._ores_api.wiki_key) or {}).get("scores") or {}

    @staticmethod
    def _features(score: Mapping[str, Any] | None, model_key: str) -> dict[str, Any] | None:
        return ((score or {}).get(model_key) or {}).get("features")

    @staticmethod
    def _deleted(score: Mapping[str, Any] | None, model_key: str) -> bool:
        error = ((score or {}).get(model_key) or {}).get("error") or {}
        return error.get("type") in DELETED_REVISION_ERRORS
