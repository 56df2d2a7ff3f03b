"""
Base Repository

Generic repository pattern implementation for async SQLAlchemy access.
Provides type-safe lookups with consistent session handling.
"""

from typing import Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from notia.core.errors import NotFound
from notia.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Generic repository providing common lookups.

    Implements the Repository pattern with async SQLAlchemy. All methods
    expect an externally managed session (injected via FastAPI dependency
    or opened by a background task).

    Usage:
        class NoteRepository(BaseRepository[Note]):
            def __init__(self):
                super().__init__(Note, "note")
    """

    def __init__(self, model: type[ModelType], entity_name: str):
        self.model = model
        self.entity_name = entity_name

    async def get_by_id(self, session: AsyncSession, id: int) -> ModelType | None:
        """Get a record by primary key. Returns None if not found."""
        result = await session.execute(
            select(self.model).where(self.model.id == id)  # type: ignore[attr-defined]
        )
        return result.scalars().first()

    async def get_or_raise(self, session: AsyncSession, id: int) -> ModelType:
        """Get a record by primary key, raising NotFound if it is missing."""
        db_obj = await self.get_by_id(session, id)
        if db_obj is None:
            raise NotFound(self.entity_name, id)
        return db_obj
