"""
Note Models

Core entities for the relational note store: notes, their optional
parent/sub-note relation, and the category/tag labels attached through
composite-key link tables.

Tables:
    notes            Authoritative note content and bookkeeping flags.
    categories       Unique category names.
    tags             Unique tag names.
    note_categories  (note_id, category_id) links.
    note_tags        (note_id, tag_id) links.
"""

from __future__ import annotations

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from notia.models.base import Base, TimestampMixin

TITLE_MAX_LENGTH = 255
LABEL_MAX_LENGTH = 100


class Note(Base, TimestampMixin):
    """
    Note entity.

    Attributes:
        id: Primary key, assigned by the database on insert.
        title: First line of the content unless set explicitly.
        content: Full note content (may be empty).
        is_embedded: True while a vector record exists for this note.
        is_subnote: True exactly when parent_id is set.
        parent_id: Optional parent note.
    """

    __tablename__ = "notes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(TITLE_MAX_LENGTH), index=True)
    content: Mapped[str] = mapped_column(Text, default="")
    is_embedded: Mapped[bool] = mapped_column(Boolean, default=False)
    is_subnote: Mapped[bool] = mapped_column(Boolean, default=False)
    parent_id: Mapped[int | None] = mapped_column(
        ForeignKey("notes.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<Note(id={self.id}, title='{self.title[:20]}...')>"


class Category(Base):
    """Category label, unique by name."""

    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(LABEL_MAX_LENGTH), unique=True)

    def __repr__(self) -> str:
        return f"<Category(id={self.id}, name='{self.name}')>"


class Tag(Base):
    """Tag label, unique by name."""

    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(LABEL_MAX_LENGTH), unique=True)

    def __repr__(self) -> str:
        return f"<Tag(id={self.id}, name='{self.name}')>"


class NoteCategory(Base):
    """Link between a note and a category, keyed by the pair."""

    __tablename__ = "note_categories"

    note_id: Mapped[int] = mapped_column(
        ForeignKey("notes.id", ondelete="CASCADE"),
        primary_key=True,
    )
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id", ondelete="CASCADE"),
        primary_key=True,
    )


class NoteTag(Base):
    """Link between a note and a tag, keyed by the pair."""

    __tablename__ = "note_tags"

    note_id: Mapped[int] = mapped_column(
        ForeignKey("notes.id", ondelete="CASCADE"),
        primary_key=True,
    )
    tag_id: Mapped[int] = mapped_column(
        ForeignKey("tags.id", ondelete="CASCADE"),
        primary_key=True,
    )
