"""SQLAlchemy ORM models for the Wiki Dashboard pipeline.

All models are imported here so that:
1. Alembic autogenerate can discover them via Base.metadata.
2. Application code can do `from wiki_dashboard.core.models import Revision`
   without knowing which sub-module a model lives in.
3. SQLAlchemy's relationship resolution finds all mapper targets at
   import time, avoiding "mapper not yet configured" errors.
"""

from __future__ import annotations

from wiki_dashboard.core.models.base import Base, TimestampMixin
from wiki_dashboard.core.models.wiki import Wiki
from wiki_dashboard.core.models.article import (
    QUALITY_TRACKED_NAMESPACES,
    Article,
)
from wiki_dashboard.core.models.course import (
    STUDENT_ROLE,
    Course,
    CoursesUsers,
    CoursesWikis,
    User,
)
from wiki_dashboard.core.models.course_error import CourseErrorRecord
from wiki_dashboard.core.models.revision import Revision

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    # Wikis and pages
    "Wiki",
    "Article",
    "QUALITY_TRACKED_NAMESPACES",
    "Revision",
    # Courses
    "Course",
    "CoursesUsers",
    "CoursesWikis",
    "User",
    "STUDENT_ROLE",
    "CourseErrorRecord",
]
