"""SQLAlchemy declarative base and shared mixins for all ORM models.

Provides:
- Base: the DeclarativeBase subclass all models inherit from
- TimestampMixin: created_at / updated_at columns with server-side defaults
"""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Shared declarative base for all Wiki Dashboard models."""


class TimestampMixin:
    """Adds created_at and updated_at columns with database-side defaults.

    The server default only fires on INSERT.  The onupdate kwarg on the
    column covers the ORM-level UPDATE path; bulk ``insert()`` statements
    rely on the server default.
    """

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=sa.text("NOW()"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=sa.text("NOW()"),
        onupdate=sa.text("NOW()"),
    )
