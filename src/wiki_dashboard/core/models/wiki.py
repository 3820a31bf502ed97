"""Wiki ORM model.

A wiki is identified by its language and project, e.g. ``("en", "wikipedia")``
or ``(None, "wikidata")``.  Rows are immutable once created and looked up or
created on demand via :meth:`RevisionStore.get_or_create_wiki`.
"""

from __future__ import annotations

from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from wiki_dashboard.core.models.base import Base

# Projects whose wikis live on a shared, language-less host.
_MULTILINGUAL_PROJECTS: dict[str, str] = {
    "wikidata": "www.wikidata.org",
    "wikisource": "wikisource.org",
    "wikimedia": "commons.wikimedia.org",
}


class Wiki(Base):
    """A MediaWiki site tracked by the dashboard."""

    __tablename__ = "wikis"
    __table_args__ = (
        sa.UniqueConstraint("language", "project", name="uq_wikis_language_project"),
    )

    id: Mapped[int] = mapped_column(sa.BigInteger, primary_key=True, autoincrement=True)
    language: Mapped[Optional[str]] = mapped_column(sa.String(16), nullable=True)
    project: Mapped[str] = mapped_column(sa.String(32), nullable=False)

    @property
    def domain(self) -> str:
        """Host name of the wiki, e.g. ``en.wikipedia.org``."""
        if self.language is None:
            return _MULTILINGUAL_PROJECTS.get(self.project, f"{self.project}.org")
        return f"{self.language}.{self.project}.org"

    @property
    def base_url(self) -> str:
        return f"https://{self.domain}"

    @property
    def api_url(self) -> str:
        """MediaWiki Action API endpoint for this wiki."""
        return f"{self.base_url}/w/api.php"

    @property
    def db_name(self) -> str:
        """Replica database name, e.g. ``enwiki`` or ``wikidatawiki``."""
        if self.project == "wikipedia":
            return f"{self.language}wiki"
        if self.language is None:
            return f"{self.project}wiki"
        return f"{self.language}{self.project}"

    def __repr__(self) -> str:
        return f"<Wiki {self.domain}>"
