"""
Note Index Synchronizer

Keeps the similarity index eventually consistent with the relational
note store. Runs after the relational write has committed, typically as a
background task with its own database session.

Failure policy:
    Embedding and index outages are logged and contained. They never
    roll back or fail the note mutation that triggered them. Each save
    re-derives the document from current content, so the next save of
    the same note heals a missed update; ``resync_pending`` sweeps notes
    that were never re-saved.

Ordering:
    Work for one note id runs one task at a time, and a save re-reads the
    note's current row before embedding. A task that finishes late
    therefore writes the latest text, and a save that lands after the
    note was deleted removes the record instead of recreating it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from notia.core.errors import ServiceUnavailable
from notia.repositories.notes import NoteRepository
from notia.services.base import EmbeddingProvider, SimilarityIndex
from notia.services.normalizer import compose_document

logger = logging.getLogger(__name__)

KEY_PREFIX = "note_"

_MISSING = object()


def index_key(note_id: int) -> str:
    """Index key for a note id, e.g. ``note_12``."""
    return f"{KEY_PREFIX}{note_id}"


def note_id_from_key(key: str) -> int | None:
    """Inverse of ``index_key``; None for foreign keys."""
    if not key.startswith(KEY_PREFIX):
        return None
    try:
        return int(key[len(KEY_PREFIX):])
    except ValueError:
        return None


class NoteIndexSynchronizer:
    """
    Sole writer of note vector records.

    Usage::

        sync = NoteIndexSynchronizer(embedder, index, session_factory)
        note_id = await repo.save(session, draft)
        await sync.on_saved(note_id, title, content)
    """

    def __init__(
        self,
        embedder: EmbeddingProvider,
        index: SimilarityIndex,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        repository: NoteRepository | None = None,
    ) -> None:
        """
        Args:
            embedder: Text → vector client.
            index: Similarity index client.
            session_factory: Used to read the current note and record
                ``is_embedded``; when None the caller's title and content
                are trusted and the flag is not maintained.
            repository: Note repository (default: a new instance).
        """
        self._embedder = embedder
        self._index = index
        self._session_factory = session_factory
        self._repository = repository or NoteRepository()
        # note id -> (lock, number of tasks holding or waiting on it)
        self._locks: dict[int, tuple[asyncio.Lock, int]] = {}

    async def on_saved(self, note_id: int, title: str | None, content: str | None) -> bool:
        """
        Embed and upsert the note's document under ``note_<id>``.

        With a session factory the note's current row wins over the
        ``title`` and ``content`` arguments; a note that no longer exists
        has its record removed. Empty content (after normalization) is not
        embedded, and any record left from earlier content is removed so
        the note contributes nothing.

        Returns:
            True if the index now holds the note's current document.
        """
        async with self._note_lock(note_id):
            current = await self._load(note_id)
            if current is None:
                logger.info("Note %d no longer exists, dropping its index record", note_id)
                await self._delete_record(note_id)
                return False
            if current is not _MISSING:
                title, content = current
            return await self._index_document(note_id, title, content)

    async def on_deleted(self, note_id: int) -> bool:
        """
        Remove ``note_<id>`` from the index. A missing key is not an error.

        Returns:
            True if the delete reached the index.
        """
        async with self._note_lock(note_id):
            return await self._delete_record(note_id)

    async def resync_pending(self) -> int:
        """
        Re-synchronize every note whose ``is_embedded`` flag is false.

        Returns:
            Number of notes now indexed.
        """
        if self._session_factory is None:
            raise RuntimeError("resync_pending requires a session factory")

        async with self._session_factory() as session:
            pending = [
                (note.id, note.title, note.content)
                for note in await self._repository.list_unembedded(session)
            ]

        logger.info("Re-synchronizing %d pending notes", len(pending))
        indexed = 0
        for note_id, title, content in pending:
            if await self.on_saved(note_id, title, content):
                indexed += 1
        return indexed

    # ------------------------------------------------------------------
    # Internal helpers (callers hold the note's lock)
    # ------------------------------------------------------------------

    async def _index_document(self, note_id: int, title: str | None, content: str | None) -> bool:
        key = index_key(note_id)
        document = compose_document(note_id, title, content)

        if document is None:
            logger.info("Note %d has no content, skipping embedding", note_id)
            if await self._delete_record(note_id):
                await self._mark(note_id, False)
            return False

        try:
            vector = await self._embedder.embed(document)
            await self._index.upsert(
                key,
                vector,
                document,
                metadata={"note_id": note_id, "title": title or ""},
            )
        except ServiceUnavailable as e:
            logger.warning("Index sync failed for note %d, will retry on next save: %s", note_id, e)
            await self._mark(note_id, False)
            return False
        except Exception:
            logger.exception("Unexpected error syncing note %d", note_id)
            await self._mark(note_id, False)
            return False

        if not await self._mark(note_id, True):
            logger.info("Note %d was deleted while indexing, dropping %s", note_id, key)
            await self._delete_record(note_id)
            return False

        logger.info("Note %d indexed as %s", note_id, key)
        return True

    async def _delete_record(self, note_id: int) -> bool:
        try:
            await self._index.delete(index_key(note_id))
        except ServiceUnavailable as e:
            logger.warning("Index delete failed for note %d: %s", note_id, e)
            return False
        except Exception:
            logger.exception("Unexpected error removing note %d from index", note_id)
            return False
        return True

    async def _load(self, note_id: int):
        """
        Current ``(title, content)`` of the note, None if it is gone, or
        ``_MISSING`` when the store cannot be read and the caller's values
        stand.
        """
        if self._session_factory is None:
            return _MISSING
        try:
            async with self._session_factory() as session:
                note = await self._repository.get_by_id(session, note_id)
        except SQLAlchemyError as e:
            logger.warning("Could not reload note %d, indexing submitted text: %s", note_id, e)
            return _MISSING
        if note is None:
            return None
        return note.title, note.content

    async def _mark(self, note_id: int, embedded: bool) -> bool:
        """
        Best-effort ``is_embedded`` bookkeeping in its own session.

        Returns:
            False only when the note row is known to be gone.
        """
        if self._session_factory is None:
            return True
        try:
            async with self._session_factory() as session:
                return await self._repository.set_embedded(session, note_id, embedded)
        except SQLAlchemyError as e:
            logger.warning("Could not record is_embedded=%s for note %d: %s", embedded, note_id, e)
            return True

    @asynccontextmanager
    async def _note_lock(self, note_id: int) -> AsyncIterator[None]:
        """Serialize work per note id; the entry is dropped once unused."""
        lock, users = self._locks.get(note_id, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[note_id] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[note_id]
            if users == 1:
                del self._locks[note_id]
            else:
                self._locks[note_id] = (lock, users - 1)
