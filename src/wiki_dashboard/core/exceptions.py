"""Application-wide exception hierarchy for the Wiki Dashboard pipeline.

All custom exceptions subclass ``WikiDashboardError``, enabling consistent
error handling and structured logging across the pipeline.

Hierarchy::

    WikiDashboardError
    ├── WikiApiError             (code, info)
    ├── InvalidProjectError      (project)
    ├── MalformedRevisionError   (field, value)
    └── ScoringPolicyError
"""

from __future__ import annotations


class WikiDashboardError(Exception):
    """Base class for all Wiki Dashboard exceptions."""


# ---------------------------------------------------------------------------
# External service exceptions
# ---------------------------------------------------------------------------


class WikiApiError(WikiDashboardError):
    """Raised when a MediaWiki API answers with a structured ``error`` body.

    The request succeeded at the HTTP level but the API refused it.  It is
    retried under the shared retry policy; once attempts run out the caller
    reports it and treats the call as having returned no data.

    Args:
        code: The ``error.code`` value from the API response.
        info: The human-readable ``error.info`` value.
    """

    def __init__(self, code: str | None, info: str | None = None) -> None:
        super().__init__(f"{code}: {info}" if info else str(code))
        self.code = code
        self.info = info


class InvalidProjectError(WikiDashboardError):
    """Raised when the quality-scoring service cannot score a wiki's project.

    Only Wikipedia and Wikidata revisions have quality models.

    Args:
        project: The wiki project that was requested (e.g. ``"wikivoyage"``).
    """

    def __init__(self, project: str | None) -> None:
        super().__init__(f"No quality model available for project '{project}'")
        self.project = project


# ---------------------------------------------------------------------------
# Data-processing exceptions
# ---------------------------------------------------------------------------


class MalformedRevisionError(WikiDashboardError):
    """Raised when an imported revision payload carries an unparseable value.

    Args:
        field: Name of the offending payload field.
        value: The raw value that could not be interpreted.
    """

    def __init__(self, field: str, value: object) -> None:
        super().__init__(f"Malformed value for '{field}': {value!r}")
        self.field = field
        self.value = value


class ScoringPolicyError(WikiDashboardError):
    """Raised when a rating weight table is missing or out of range."""
