"""Repositories package."""

from notia.repositories.base import BaseRepository
from notia.repositories.notes import NoteRepository

__all__ = [
    "BaseRepository",
    "NoteRepository",
]
