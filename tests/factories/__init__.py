"""Factory Boy factories and in-memory doubles for test data generation.

Available factories
-------------------
ReplicaRowFactory        : flat row as returned by the edit-history service
RevisionPayloadFactory   : grouped revision payload consumed by the importer
ArticlePayloadFactory    : grouped article payload consumed by the importer
article_entry()          : ``(key, {"article", "revisions"})`` importer input
ores_score() / ores_error() / ores_response() : scoring service documents
FakeRevisionStore        : in-memory stand-in for ``RevisionStore``
"""

from __future__ import annotations

from tests.factories.store import FakeRevisionStore
from tests.factories.wiki import (
    ArticlePayloadFactory,
    ReplicaRowFactory,
    RevisionPayloadFactory,
    article_entry,
    ores_error,
    ores_response,
    ores_score,
)

__all__ = [
    "ArticlePayloadFactory",
    "FakeRevisionStore",
    "ReplicaRowFactory",
    "RevisionPayloadFactory",
    "article_entry",
    "ores_error",
    "ores_response",
    "ores_score",
]
