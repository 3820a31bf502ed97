"""Revision ORM model.

One edit to an article.  ``(mw_rev_id, wiki_id)`` is unique and load-bearing:
bulk inserts use ``ON CONFLICT DO NOTHING`` against it, so a revision is
never imported twice.

Rows are immutable after import except for the scoring columns:

- ``wp10`` / ``features`` are written once by the score importer;
- ``wp10_previous`` / ``features_previous`` are back-filled at most once
  from the parent revision's score;
- ``deleted`` flips to true when the scoring service reports the revision
  text as gone.

``error_count`` belongs to the update scheduler and is only carried here.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wiki_dashboard.core.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from wiki_dashboard.core.models.article import Article


class Revision(TimestampMixin, Base):
    """A single edit, identified per wiki by its MediaWiki revision ID."""

    __tablename__ = "revisions"
    __table_args__ = (
        sa.UniqueConstraint("mw_rev_id", "wiki_id", name="uq_revisions_mw_rev_id_wiki_id"),
        sa.Index("idx_revisions_article_id_date", "article_id", "date"),
        sa.Index("idx_revisions_user_id_date", "user_id", "date"),
    )

    id: Mapped[int] = mapped_column(sa.BigInteger, primary_key=True, autoincrement=True)
    mw_rev_id: Mapped[int] = mapped_column(sa.BigInteger, nullable=False)
    wiki_id: Mapped[int] = mapped_column(
        sa.BigInteger,
        sa.ForeignKey("wikis.id", ondelete="RESTRICT"),
        nullable=False,
    )
    date: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    characters: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    article_id: Mapped[Optional[int]] = mapped_column(
        sa.BigInteger,
        sa.ForeignKey("articles.id", ondelete="SET NULL"),
        nullable=True,
    )
    mw_page_id: Mapped[Optional[int]] = mapped_column(sa.BigInteger, nullable=True)
    user_id: Mapped[Optional[int]] = mapped_column(
        sa.BigInteger,
        sa.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    new_article: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False, server_default=sa.false()
    )
    system: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False, server_default=sa.false()
    )
    deleted: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False, server_default=sa.false()
    )

    # ------------------------------------------------------------------
    # Quality scoring
    # ------------------------------------------------------------------
    wp10: Mapped[Optional[float]] = mapped_column(sa.Float, nullable=True)
    wp10_previous: Mapped[Optional[float]] = mapped_column(sa.Float, nullable=True)
    features: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONB, nullable=True)
    features_previous: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONB, nullable=True)

    # ------------------------------------------------------------------
    # Update bookkeeping (owned by the update scheduler)
    # ------------------------------------------------------------------
    error_count: Mapped[int] = mapped_column(
        sa.Integer, nullable=False, default=0, server_default=sa.text("0")
    )

    article: Mapped[Optional["Article"]] = relationship("Article", lazy="raise")

    def __repr__(self) -> str:
        return f"<Revision mw_rev_id={self.mw_rev_id} wiki_id={self.wiki_id}>"
