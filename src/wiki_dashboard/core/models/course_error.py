"""Course error record ORM model.

Written by :class:`~wiki_dashboard.core.error_reporting.ErrorReporter` when
an external call fails while a course is being updated, so that course
maintainers can see which updates went stale and why.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from wiki_dashboard.core.models.base import Base


class CourseErrorRecord(Base):
    """One reported failure during a course update.

    ``sentry_tag_uuid`` is also attached to the structured log line so the
    record and the log entry can be correlated.
    """

    __tablename__ = "course_error_records"

    id: Mapped[int] = mapped_column(sa.BigInteger, primary_key=True, autoincrement=True)
    course_id: Mapped[int] = mapped_column(
        sa.BigInteger,
        sa.ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type_of_error: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    sentry_tag_uuid: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    miscellaneous: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=sa.text("NOW()"),
    )
