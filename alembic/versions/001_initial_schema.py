"""Initial schema: wikis, articles, revisions, courses and error records.

Creates the Wiki Dashboard pipeline schema in FK-dependency order:

1. wikis                 (language, project) is unique
2. users                 wiki editors, username is unique
3. courses               import windows (start, end)
4. courses_users         enrollment with role and cached revision_count
5. courses_wikis         wikis tracked per course
6. articles              (mw_page_id, wiki_id) is unique
7. revisions             (mw_rev_id, wiki_id) is unique; the revision
                         importer's ON CONFLICT DO NOTHING targets it
8. course_error_records  failures recorded while updating a course

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("NOW()")),
    ]


def upgrade() -> None:
    """Create all pipeline tables and indexes."""

    # ------------------------------------------------------------------
    # 1. wikis
    # ------------------------------------------------------------------
    op.create_table(
        "wikis",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("language", sa.String(16), nullable=True),
        sa.Column("project", sa.String(32), nullable=False),
        sa.UniqueConstraint("language", "project", name="uq_wikis_language_project"),
    )

    # ------------------------------------------------------------------
    # 2. users
    # ------------------------------------------------------------------
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(255), nullable=False, unique=True),
        *_timestamps(),
    )

    # ------------------------------------------------------------------
    # 3. courses
    # ------------------------------------------------------------------
    op.create_table(
        "courses",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("slug", sa.String(255), nullable=False, unique=True),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("start", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("end", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("home_wiki_id", sa.BigInteger, sa.ForeignKey("wikis.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_courses_start_end", "courses", ["start", "end"])

    # ------------------------------------------------------------------
    # 4. courses_users
    # ------------------------------------------------------------------
    op.create_table(
        "courses_users",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("course_id", sa.BigInteger, sa.ForeignKey("courses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.BigInteger, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("revision_count", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.UniqueConstraint("course_id", "user_id", "role", name="uq_courses_users"),
    )
    op.create_index("ix_courses_users_course_id", "courses_users", ["course_id"])
    op.create_index("ix_courses_users_user_id", "courses_users", ["user_id"])

    # ------------------------------------------------------------------
    # 5. courses_wikis
    # ------------------------------------------------------------------
    op.create_table(
        "courses_wikis",
        sa.Column("course_id", sa.BigInteger, sa.ForeignKey("courses.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("wiki_id", sa.BigInteger, sa.ForeignKey("wikis.id", ondelete="CASCADE"), primary_key=True),
    )

    # ------------------------------------------------------------------
    # 6. articles
    # ------------------------------------------------------------------
    op.create_table(
        "articles",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("mw_page_id", sa.BigInteger, nullable=False),
        sa.Column("wiki_id", sa.BigInteger, sa.ForeignKey("wikis.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("title", sa.String(1000), nullable=False),
        sa.Column("namespace", sa.Integer, nullable=False),
        sa.Column("deleted", sa.Boolean, nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.UniqueConstraint("mw_page_id", "wiki_id", name="uq_articles_mw_page_id_wiki_id"),
    )
    op.create_index("idx_articles_title_namespace", "articles", ["title", "namespace"])

    # ------------------------------------------------------------------
    # 7. revisions
    # ------------------------------------------------------------------
    op.create_table(
        "revisions",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("mw_rev_id", sa.BigInteger, nullable=False),
        sa.Column("wiki_id", sa.BigInteger, sa.ForeignKey("wikis.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("date", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("characters", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("article_id", sa.BigInteger, sa.ForeignKey("articles.id", ondelete="SET NULL"), nullable=True),
        sa.Column("mw_page_id", sa.BigInteger, nullable=True),
        sa.Column("user_id", sa.BigInteger, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("new_article", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("system", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("deleted", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("wp10", sa.Float, nullable=True),
        sa.Column("wp10_previous", sa.Float, nullable=True),
        sa.Column("features", JSONB, nullable=True),
        sa.Column("features_previous", JSONB, nullable=True),
        sa.Column("error_count", sa.Integer, nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.UniqueConstraint("mw_rev_id", "wiki_id", name="uq_revisions_mw_rev_id_wiki_id"),
    )
    op.create_index("idx_revisions_article_id_date", "revisions", ["article_id", "date"])
    op.create_index("idx_revisions_user_id_date", "revisions", ["user_id", "date"])

    # ------------------------------------------------------------------
    # 8. course_error_records
    # ------------------------------------------------------------------
    op.create_table(
        "course_error_records",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("course_id", sa.BigInteger, sa.ForeignKey("courses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type_of_error", sa.String(255), nullable=False),
        sa.Column("sentry_tag_uuid", sa.UUID(), nullable=False),
        sa.Column("miscellaneous", JSONB, nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("NOW()")),
    )
    op.create_index("ix_course_error_records_course_id", "course_error_records", ["course_id"])


def downgrade() -> None:
    """Drop all tables created by this migration in reverse dependency order."""
    op.drop_table("course_error_records")
    op.drop_table("revisions")
    op.drop_table("articles")
    op.drop_table("courses_wikis")
    op.drop_table("courses_users")
    op.drop_table("courses")
    op.drop_table("users")
    op.drop_table("wikis")
