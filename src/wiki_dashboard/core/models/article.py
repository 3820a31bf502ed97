"""Article ORM model.

An article is a page on one wiki.  ``(mw_page_id, wiki_id)`` is unique: the
importer relies on it to upsert rather than duplicate pages, and the
duplicate-article resolver relies on ``deleted`` to retire stale copies.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wiki_dashboard.core.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from wiki_dashboard.core.models.wiki import Wiki

MAINSPACE: int = 0
USERSPACE: int = 2
DRAFTSPACE: int = 118

QUALITY_TRACKED_NAMESPACES: tuple[int, ...] = (MAINSPACE, USERSPACE, DRAFTSPACE)
"""Namespaces whose revisions are eligible for quality scoring."""


class Article(TimestampMixin, Base):
    """A page on a specific wiki.

    Title and namespace change over a page's lifetime (moves), so they are
    updated on every sighting rather than treated as identity.
    """

    __tablename__ = "articles"
    __table_args__ = (
        sa.UniqueConstraint("mw_page_id", "wiki_id", name="uq_articles_mw_page_id_wiki_id"),
        sa.Index("idx_articles_title_namespace", "title", "namespace"),
    )

    id: Mapped[int] = mapped_column(sa.BigInteger, primary_key=True, autoincrement=True)
    mw_page_id: Mapped[int] = mapped_column(sa.BigInteger, nullable=False)
    wiki_id: Mapped[int] = mapped_column(
        sa.BigInteger,
        sa.ForeignKey("wikis.id", ondelete="RESTRICT"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(sa.String(1000), nullable=False)
    namespace: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=MAINSPACE)
    deleted: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False, server_default=sa.false()
    )

    wiki: Mapped["Wiki"] = relationship("Wiki", lazy="raise")

    def __repr__(self) -> str:
        return f"<Article mw_page_id={self.mw_page_id} wiki_id={self.wiki_id} title={self.title!r}>"
