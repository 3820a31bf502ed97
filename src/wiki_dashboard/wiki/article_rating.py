"""Extract one quality rating per page from ``prop=pageassessments`` data.

A page can be assessed by several WikiProjects, which do not always agree.
The extractor reports the highest-ranked class any project gave the page.
Pages without assessments (or missing pages) map to ``None``.
"""

from __future__ import annotations

from typing import Any

RATING_ORDER: tuple[str, ...] = (
    "fa",
    "fl",
    "a",
    "ga",
    "b",
    "c",
    "start",
    "stub",
    "list",
)
"""Assessment classes from best to worst, lower-cased."""

_RANK: dict[str, int] = {rating: rank for rank, rating in enumerate(RATING_ORDER)}


def extract_ratings(pages: dict[str, Any] | None) -> dict[str, str | None]:
    """Map each page title to its best assessment class.

    Args:
        pages: The ``pages`` block of a ``prop=pageassessments`` query,
            keyed by page id.

    Returns:
        ``{title: rating}`` where *rating* is lower-cased, or ``None`` when
        the page carries no usable assessment.
    """
    ratings: dict[str, str | None] = {}
    for page in (pages or {}).values():
        title = page.get("title")
        if title is None:
            continue
        ratings[title] = _best_rating(page.get("pageassessments") or {})
    return ratings


def _best_rating(assessments: dict[str, Any]) -> str | None:
    classes = [
        str(assessment.get("class", "")).strip().lower()
        for assessment in assessments.values()
        if isinstance(assessment, dict)
    ]
    classes = [cls for cls in classes if cls]
    if not classes:
        return None
    return min(classes, key=lambda cls: _RANK.get(cls, len(RATING_ORDER)))
