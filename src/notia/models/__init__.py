"""Models package - re-exports all models for convenient imports."""

from notia.models.base import Base, TimestampMixin
from notia.models.note import Category, Note, NoteCategory, NoteTag, Tag

__all__ = [
    "Base",
    "TimestampMixin",
    "Note",
    "Category",
    "Tag",
    "NoteCategory",
    "NoteTag",
]
