"""
Note Repository

Data access layer for notes and their category/tag links.
Owns note identity and authoritative content; never touches the
similarity index (that is the synchronizer's job).
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from sqlalchemy import Row, delete, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from notia.core.errors import NotFound, ValidationError
from notia.models import Category, Note, NoteCategory, NoteTag, Tag
from notia.repositories.base import BaseRepository
from notia.schemas.notes import NoteDraft
from notia.services.normalizer import derive_title, normalize_query

logger = logging.getLogger(__name__)


class NoteRepository(BaseRepository[Note]):
    """
    Repository for Note entities.

    Key guarantees:
        - ``save``: insert when the draft has no id, otherwise update the
          existing row; NotFound for an unknown id or parent id.
        - ``delete``: link rows, sub-note detachment and the note itself
          commit together or not at all.
        - Errors are raised, never swallowed.
    """

    def __init__(self) -> None:
        super().__init__(Note, "note")

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    async def save(self, session: AsyncSession, draft: NoteDraft) -> int:
        """
        Insert or update a note.

        Args:
            session: Active database session.
            draft: Note data. Empty content is stored as-is.

        Returns:
            The id of the inserted or updated note.

        Raises:
            NotFound: ``draft.id`` or ``draft.parent_id`` does not exist.
        """
        content = draft.content or ""
        title = (draft.title or "").strip() or derive_title(content)

        if draft.parent_id is not None:
            await self.get_or_raise(session, draft.parent_id)

        if draft.is_new:
            note = Note(
                title=title,
                content=content,
                is_embedded=False,
                is_subnote=draft.parent_id is not None,
                parent_id=draft.parent_id,
            )
            session.add(note)
        else:
            note = await self.get_or_raise(session, draft.id)  # type: ignore[arg-type]
            if note.content != content:
                # Stored vector no longer matches until the synchronizer runs
                note.is_embedded = False
            note.title = title
            note.content = content
            note.parent_id = draft.parent_id
            note.is_subnote = draft.parent_id is not None

        try:
            await session.commit()
        except SQLAlchemyError:
            await session.rollback()
            raise
        await session.refresh(note)

        logger.info(
            "Note %d %s (title='%s')",
            note.id,
            "created" if draft.is_new else "updated",
            note.title[:40],
        )
        return note.id

    async def delete(self, session: AsyncSession, note_id: int) -> None:
        """
        Delete a note with its category/tag links in one transaction.

        Sub-notes of the deleted note are detached (parent cleared) in the
        same transaction.

        Raises:
            NotFound: No such note. Nothing is modified.
        """
        await self.get_or_raise(session, note_id)

        try:
            await session.execute(
                delete(NoteCategory).where(NoteCategory.note_id == note_id)
            )
            await session.execute(delete(NoteTag).where(NoteTag.note_id == note_id))
            await session.execute(
                update(Note)
                .where(Note.parent_id == note_id)
                .values(parent_id=None, is_subnote=False)
            )
            await session.execute(delete(Note).where(Note.id == note_id))
            await session.commit()
        except SQLAlchemyError:
            await session.rollback()
            raise

        logger.info("Note %d deleted", note_id)

    async def set_embedded(
        self,
        session: AsyncSession,
        note_id: int,
        embedded: bool,
    ) -> bool:
        """
        Record whether a vector currently exists for a note.

        Leaves ``updated_on`` untouched: this is bookkeeping, not an edit.

        Returns:
            False if the note no longer exists.
        """
        stmt = (
            update(Note)
            .where(Note.id == note_id)
            .values(is_embedded=embedded, updated_on=Note.updated_on)
        )
        try:
            result = await session.execute(stmt)
            await session.commit()
        except SQLAlchemyError:
            await session.rollback()
            raise
        return bool(result.rowcount)

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    async def get_all(self, session: AsyncSession) -> Sequence[Row[Any]]:
        """List all notes as ``(id, title)`` rows, content omitted."""
        result = await session.execute(select(Note.id, Note.title).order_by(Note.id))
        return result.all()

    async def search(self, session: AsyncSession, text: str) -> Sequence[Row[Any]]:
        """
        Case-insensitive substring search over title, content, category
        names and tag names.

        Returns:
            ``(id, title)`` rows, distinct by note id. Blank text lists
            every note.
        """
        needle = normalize_query(text)
        if not needle:
            return await self.get_all(session)

        stmt = (
            select(Note.id, Note.title)
            .outerjoin(NoteCategory, NoteCategory.note_id == Note.id)
            .outerjoin(Category, Category.id == NoteCategory.category_id)
            .outerjoin(NoteTag, NoteTag.note_id == Note.id)
            .outerjoin(Tag, Tag.id == NoteTag.tag_id)
            .where(
                or_(
                    Note.title.icontains(needle, autoescape=True),
                    Note.content.icontains(needle, autoescape=True),
                    Category.name.icontains(needle, autoescape=True),
                    Tag.name.icontains(needle, autoescape=True),
                )
            )
            .distinct()
            .order_by(Note.id)
        )
        result = await session.execute(stmt)
        return result.all()

    async def list_unembedded(self, session: AsyncSession) -> Sequence[Note]:
        """Notes whose index record is missing or stale."""
        result = await session.execute(
            select(Note).where(Note.is_embedded.is_(False)).order_by(Note.id)
        )
        return result.scalars().all()

    # ------------------------------------------------------------------
    # Category / tag links
    # ------------------------------------------------------------------

    async def link_category(
        self, session: AsyncSession, note_id: int, name: str
    ) -> Category:
        """Attach a category by name (created if needed). Idempotent."""
        return await self._link(
            session, note_id, name, Category, NoteCategory, "category_id"
        )

    async def link_tag(self, session: AsyncSession, note_id: int, name: str) -> Tag:
        """Attach a tag by name (created if needed). Idempotent."""
        return await self._link(session, note_id, name, Tag, NoteTag, "tag_id")

    async def unlink_category(
        self, session: AsyncSession, note_id: int, category_id: int
    ) -> None:
        await self._unlink(
            session, note_id, delete(NoteCategory).where(
                NoteCategory.note_id == note_id,
                NoteCategory.category_id == category_id,
            )
        )

    async def unlink_tag(self, session: AsyncSession, note_id: int, tag_id: int) -> None:
        await self._unlink(
            session, note_id, delete(NoteTag).where(
                NoteTag.note_id == note_id,
                NoteTag.tag_id == tag_id,
            )
        )

    async def categories_for(
        self, session: AsyncSession, note_id: int
    ) -> Sequence[Category]:
        result = await session.execute(
            select(Category)
            .join(NoteCategory, NoteCategory.category_id == Category.id)
            .where(NoteCategory.note_id == note_id)
            .order_by(Category.name)
        )
        return result.scalars().all()

    async def tags_for(self, session: AsyncSession, note_id: int) -> Sequence[Tag]:
        result = await session.execute(
            select(Tag)
            .join(NoteTag, NoteTag.tag_id == Tag.id)
            .where(NoteTag.note_id == note_id)
            .order_by(Tag.name)
        )
        return result.scalars().all()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _link(self, session, note_id, name, label_model, link_model, label_column):
        label_name = normalize_query(name)
        if not label_name:
            raise ValidationError(f"{label_model.__tablename__} name must not be empty")
        await self.get_or_raise(session, note_id)

        try:
            return await self._attach(session, note_id, label_name, label_model, link_model, label_column)
        except IntegrityError:
            # Another request created the same label or link row first
            await session.rollback()
            logger.info(
                "Concurrent %s link for note %d ('%s'), retrying",
                label_model.__tablename__, note_id, label_name,
            )
        except SQLAlchemyError:
            await session.rollback()
            raise

        try:
            return await self._attach(session, note_id, label_name, label_model, link_model, label_column)
        except SQLAlchemyError:
            await session.rollback()
            raise

    async def _attach(self, session, note_id, label_name, label_model, link_model, label_column):
        label = await self._find_label(session, label_model, label_name)
        if label is None:
            label = label_model(name=label_name)
            session.add(label)
            await session.flush()  # assigns label.id

        # Composite primary key: (note_id, label_id)
        if await session.get(link_model, (note_id, label.id)) is None:
            session.add(link_model(note_id=note_id, **{label_column: label.id}))
        await session.commit()
        return label

    async def _find_label(self, session, label_model, label_name):
        result = await session.execute(
            select(label_model).where(label_model.name == label_name)
        )
        return result.scalars().first()

    async def _unlink(self, session, note_id, stmt) -> None:
        await self.get_or_raise(session, note_id)
        try:
            await session.execute(stmt)
            await session.commit()
        except SQLAlchemyError:
            await session.rollback()
            raise
