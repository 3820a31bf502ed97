"""Revision and quality-score importers.

- :mod:`.revision_importer`: pulls course students' revisions from the
  edit-history service and persists articles and revisions.
- :mod:`.revision_score_importer`: fetches quality scores for stored
  revisions and their parents.
- :mod:`.duplicate_article_deleter`: retires stale copies of contested
  article titles after an import slice.
- :mod:`.weighting`: per-wiki rating weight tables.
"""
