"""Rating weight tables used to turn quality probabilities into a score.

The scoring service returns, per revision, the probability that the revision
belongs to each quality class of its wiki's rating scheme.  The pipeline
stores a single number per revision: the probability-weighted expectation of
quality on a 0-100 scale::

    score = sum(probability[label] * weight[label] for label in weighting)

Each wiki that the scoring service supports has exactly one weighting,
indexed by the wiki's scoring key (``enwiki``, ``frwiki``, ``wikidatawiki``,
...).  Most Wikipedia models derive their labels from the English Wikipedia
assessment scale, so several languages share :data:`ENWIKI_WEIGHTING`.

The tables are validated when this module is imported; an out-of-range
weight or an uncovered wiki raises :class:`ScoringPolicyError` at startup
rather than producing skewed scores later.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from wiki_dashboard.core.exceptions import ScoringPolicyError
from wiki_dashboard.wiki.config import AVAILABLE_WIKIPEDIAS

MIN_WEIGHT: int = 0
MAX_WEIGHT: int = 100


@dataclass(frozen=True)
class RatingWeighting:
    """An immutable mapping from rating label to numeric weight.

    Attributes:
        name: Short identifier used in logs (e.g. ``"enwiki"``).
        weights: Label-to-weight mapping, highest class first.
    """

    name: str
    weights: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "weights", MappingProxyType(dict(self.weights)))


ENWIKI_WEIGHTING = RatingWeighting(
    "enwiki",
    {"FA": 100, "GA": 80, "B": 60, "C": 40, "Start": 20, "Stub": 0},
)
FRWIKI_WEIGHTING = RatingWeighting(
    "frwiki",
    {"adq": 100, "ba": 80, "a": 60, "b": 40, "bd": 20, "e": 0},
)
TRWIKI_WEIGHTING = RatingWeighting(
    "trwiki",
    {"sm": 100, "km": 80, "b": 60, "c": 40, "baslagıç": 20, "taslak": 0},
)
RUWIKI_WEIGHTING = RatingWeighting(
    "ruwiki",
    {"ИС": 100, "ДС": 80, "ХС": 80, "I": 60, "II": 40, "III": 20, "IV": 0},
)
WIKIDATA_WEIGHTING = RatingWeighting(
    "wikidatawiki",
    {"A": 100, "B": 75, "C": 50, "D": 25, "E": 0},
)

WEIGHTING_BY_WIKI: Mapping[str, RatingWeighting] = MappingProxyType(
    {
        "enwiki": ENWIKI_WEIGHTING,
        "simplewiki": ENWIKI_WEIGHTING,
        "fawiki": ENWIKI_WEIGHTING,
        "euwiki": ENWIKI_WEIGHTING,
        "frwiki": FRWIKI_WEIGHTING,
        "trwiki": TRWIKI_WEIGHTING,
        "ruwiki": RUWIKI_WEIGHTING,
        "wikidatawiki": WIKIDATA_WEIGHTING,
    }
)
"""Weighting per scoring key.  Keys are ``f"{language or project}wiki"``."""


def weighting_for(wiki_key: str) -> RatingWeighting | None:
    """Return the weighting for *wiki_key*.

    ``None`` means there is no scoring policy for the wiki: scores are left
    unset rather than defaulted.
    """
    return WEIGHTING_BY_WIKI.get(wiki_key)


def weighted_mean_score(
    score: Mapping[str, Any] | None,
    model_key: str,
    weighting: RatingWeighting | None,
) -> float | None:
    """Return the probability-weighted quality of one revision score.

    Args:
        score: One revision's entry from the scoring response, e.g.
            ``{"articlequality": {"score": {"probability": {...}}}}``.
        model_key: ``"articlequality"`` or ``"itemquality"``.
        weighting: The wiki's weighting, or ``None`` if it has none.

    Returns:
        A value in ``[0, 100]`` when the probabilities form a distribution,
        or ``None`` if there is no weighting or no probability block.
        Labels absent from the probability block count as zero.
    """
    if weighting is None or not score:
        return None
    probability = ((score.get(model_key) or {}).get("score") or {}).get("probability")
    if not probability:
        return None
    return sum(
        float(probability.get(label, 0.0)) * weight
        for label, weight in weighting.weights.items()
    )


def validate_weightings(
    tables: Mapping[str, RatingWeighting] = WEIGHTING_BY_WIKI,
) -> None:
    """Check every weighting table and the coverage of supported wikis.

    Raises:
        ScoringPolicyError: If a table is empty, a weight is not an integer
            in ``[0, 100]``, or a supported wiki has no table.
    """
    for wiki_key, weighting in tables.items():
        if not weighting.weights:
            raise ScoringPolicyError(f"Weighting for '{wiki_key}' is empty")
        for label, weight in weighting.weights.items():
            if isinstance(weight, bool) or not isinstance(weight, int):
                raise ScoringPolicyError(
                    f"Weight for '{label}' in '{wiki_key}' is not an integer: {weight!r}"
                )
            if not MIN_WEIGHT <= weight <= MAX_WEIGHT:
                raise ScoringPolicyError(
                    f"Weight for '{label}' in '{wiki_key}' is out of range: {weight}"
                )

    required = {f"{language}wiki" for language in AVAILABLE_WIKIPEDIAS} | {"wikidatawiki"}
    missing = sorted(required - set(tables))
    if missing:
        raise ScoringPolicyError(f"No weighting for scoreable wikis: {', '.join(missing)}")


validate_weightings()
