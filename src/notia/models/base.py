"""
SQLAlchemy Base Models

Declarative base shared by every table, plus the creation/modification
timestamps carried by notes.
"""

from datetime import datetime

from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    """
    ``created_on`` is stamped by the database on insert. ``updated_on``
    starts equal to it and moves on every ORM update; bookkeeping updates
    that must not count as edits pin it to its current value.
    """

    created_on: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_on: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=True,
    )
