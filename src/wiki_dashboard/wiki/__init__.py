"""Wikimedia service clients for the Wiki Dashboard pipeline.

Three external services are consumed:

- the **MediaWiki Action API** of each wiki (:mod:`.api`): page info,
  user info, page assessments, parent revision lookups;
- the **edit-history service** (:mod:`.replica`): revisions by a set of
  users over a date range;
- the **quality-scoring service** (:mod:`.ores`): per-revision quality
  probabilities and feature vectors.

All three share one retry policy (:mod:`.retry`): three attempts in total,
a one-second pause after HTTP 429, final failures handed to the error
reporter and surfaced to callers as "no data".

**No credentials required**: all endpoints are read-only and
unauthenticated.  A descriptive ``User-Agent`` header is sent per Wikimedia
policy.
"""
