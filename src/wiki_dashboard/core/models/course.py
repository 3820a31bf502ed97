"""Course, user and enrollment ORM models.

Enrollment management lives outside this pipeline; these models carry only
the columns the importers read:

- Course: the start date bounds every import window.
- User: usernames are resolved to ids when revisions are imported.
- CoursesUsers: role plus the cached ``revision_count`` that separates
  "new" students (none imported yet) from "old" ones.
- CoursesWikis: which wikis a course tracks.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wiki_dashboard.core.models.base import Base, TimestampMixin
from wiki_dashboard.core.models.wiki import Wiki

STUDENT_ROLE: int = 0
INSTRUCTOR_ROLE: int = 1


class User(TimestampMixin, Base):
    """A wiki editor known to the dashboard."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(sa.BigInteger, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(sa.String(255), nullable=False, unique=True)


class Course(TimestampMixin, Base):
    """A course whose students' edits are tracked."""

    __tablename__ = "courses"
    __table_args__ = (sa.Index("ix_courses_start_end", "start", "end"),)

    id: Mapped[int] = mapped_column(sa.BigInteger, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(sa.String(255), nullable=False, unique=True)
    title: Mapped[Optional[str]] = mapped_column(sa.String(255), nullable=True)
    start: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    end: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    home_wiki_id: Mapped[Optional[int]] = mapped_column(
        sa.BigInteger,
        sa.ForeignKey("wikis.id", ondelete="SET NULL"),
        nullable=True,
    )

    wikis: Mapped[list[Wiki]] = relationship(
        Wiki,
        secondary="courses_wikis",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Course {self.slug}>"


class CoursesUsers(Base):
    """Enrollment of a user in a course."""

    __tablename__ = "courses_users"
    __table_args__ = (
        sa.UniqueConstraint("course_id", "user_id", "role", name="uq_courses_users"),
    )

    id: Mapped[int] = mapped_column(sa.BigInteger, primary_key=True, autoincrement=True)
    course_id: Mapped[int] = mapped_column(
        sa.BigInteger,
        sa.ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[int] = mapped_column(
        sa.BigInteger,
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=STUDENT_ROLE)
    revision_count: Mapped[int] = mapped_column(
        sa.Integer, nullable=False, default=0, server_default=sa.text("0")
    )


class CoursesWikis(Base):
    """Association between a course and a tracked wiki."""

    __tablename__ = "courses_wikis"

    course_id: Mapped[int] = mapped_column(
        sa.BigInteger,
        sa.ForeignKey("courses.id", ondelete="CASCADE"),
        primary_key=True,
    )
    wiki_id: Mapped[int] = mapped_column(
        sa.BigInteger,
        sa.ForeignKey("wikis.id", ondelete="CASCADE"),
        primary_key=True,
    )
