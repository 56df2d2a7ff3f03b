"""
Notes API Router

REST endpoints for note CRUD, keyword search and category/tag links.

Every successful create/update/delete schedules index synchronization as
a background task: the relational write is committed and answered first,
and an embedding or index outage can never fail the request.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from notia.core.database import get_db
from notia.repositories.notes import NoteRepository
from notia.schemas.notes import (
    LabelCreate,
    LabelRead,
    NoteDraft,
    NoteRead,
    NoteSummary,
    NoteWrite,
)
from notia.services.sync import NoteIndexSynchronizer

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def _get_repository() -> NoteRepository:
    """FastAPI dependency: returns a NoteRepository instance."""
    return NoteRepository()


def _get_synchronizer(request: Request) -> NoteIndexSynchronizer:
    """FastAPI dependency: the synchronizer built at startup."""
    return request.app.state.synchronizer


async def _save_and_schedule_sync(
    db: AsyncSession,
    repo: NoteRepository,
    sync: NoteIndexSynchronizer,
    background_tasks: BackgroundTasks,
    draft: NoteDraft,
):
    note_id = await repo.save(db, draft)
    note = await repo.get_or_raise(db, note_id)
    background_tasks.add_task(sync.on_saved, note.id, note.title, note.content)
    return note


# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------


@router.post("/", response_model=NoteRead, status_code=status.HTTP_201_CREATED)
async def create_note(
    body: NoteWrite,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    repo: NoteRepository = Depends(_get_repository),
    sync: NoteIndexSynchronizer = Depends(_get_synchronizer),
):
    """Create a note. The title defaults to the first line of the content."""
    draft = NoteDraft(**body.model_dump())
    return await _save_and_schedule_sync(db, repo, sync, background_tasks, draft)


@router.put("/{note_id}", response_model=NoteRead)
async def update_note(
    note_id: int,
    body: NoteWrite,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    repo: NoteRepository = Depends(_get_repository),
    sync: NoteIndexSynchronizer = Depends(_get_synchronizer),
):
    """Replace a note's title, content and parent."""
    draft = NoteDraft(id=note_id, **body.model_dump())
    return await _save_and_schedule_sync(db, repo, sync, background_tasks, draft)


@router.get("/", response_model=list[NoteSummary])
async def list_notes(
    db: AsyncSession = Depends(get_db),
    repo: NoteRepository = Depends(_get_repository),
):
    """List all notes (id and title only)."""
    return await repo.get_all(db)


@router.get("/search", response_model=list[NoteSummary])
async def search_notes(
    q: str = Query("", max_length=200, description="Keyword to look for"),
    db: AsyncSession = Depends(get_db),
    repo: NoteRepository = Depends(_get_repository),
):
    """Keyword search over titles, contents, categories and tags."""
    return await repo.search(db, q)


@router.get("/{note_id}", response_model=NoteRead)
async def read_note(
    note_id: int,
    db: AsyncSession = Depends(get_db),
    repo: NoteRepository = Depends(_get_repository),
):
    """Retrieve a single note by ID."""
    return await repo.get_or_raise(db, note_id)


@router.delete("/{note_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_note(
    note_id: int,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    repo: NoteRepository = Depends(_get_repository),
    sync: NoteIndexSynchronizer = Depends(_get_synchronizer),
) -> None:
    """Delete a note with its links, then drop its index record."""
    await repo.delete(db, note_id)
    background_tasks.add_task(sync.on_deleted, note_id)


# ---------------------------------------------------------------------------
# Categories / tags
# ---------------------------------------------------------------------------


@router.get("/{note_id}/categories", response_model=list[LabelRead])
async def list_note_categories(
    note_id: int,
    db: AsyncSession = Depends(get_db),
    repo: NoteRepository = Depends(_get_repository),
):
    await repo.get_or_raise(db, note_id)
    return await repo.categories_for(db, note_id)


@router.post("/{note_id}/categories", response_model=LabelRead)
async def add_note_category(
    note_id: int,
    body: LabelCreate,
    db: AsyncSession = Depends(get_db),
    repo: NoteRepository = Depends(_get_repository),
):
    """Attach a category by name. Adding an existing link is a no-op."""
    return await repo.link_category(db, note_id, body.name)


@router.delete("/{note_id}/categories/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_note_category(
    note_id: int,
    category_id: int,
    db: AsyncSession = Depends(get_db),
    repo: NoteRepository = Depends(_get_repository),
) -> None:
    await repo.unlink_category(db, note_id, category_id)


@router.get("/{note_id}/tags", response_model=list[LabelRead])
async def list_note_tags(
    note_id: int,
    db: AsyncSession = Depends(get_db),
    repo: NoteRepository = Depends(_get_repository),
):
    await repo.get_or_raise(db, note_id)
    return await repo.tags_for(db, note_id)


@router.post("/{note_id}/tags", response_model=LabelRead)
async def add_note_tag(
    note_id: int,
    body: LabelCreate,
    db: AsyncSession = Depends(get_db),
    repo: NoteRepository = Depends(_get_repository),
):
    """Attach a tag by name. Adding an existing link is a no-op."""
    return await repo.link_tag(db, note_id, body.name)


@router.delete("/{note_id}/tags/{tag_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_note_tag(
    note_id: int,
    tag_id: int,
    db: AsyncSession = Depends(get_db),
    repo: NoteRepository = Depends(_get_repository),
) -> None:
    await repo.unlink_tag(db, note_id, tag_id)
