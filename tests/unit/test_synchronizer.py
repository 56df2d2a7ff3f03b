"""
Note Index Synchronizer Unit Tests

The relational store is a real SQLite database; the embedder and the
similarity index are the in-memory fakes from conftest. Verifies the
record key/text contract, idempotence, ordering against concurrent
saves and deletes, and that index outages never propagate to the caller.
"""

import asyncio

import pytest

from notia.core.errors import ServiceUnavailable
from notia.schemas.notes import NoteDraft
from notia.services.sync import NoteIndexSynchronizer, index_key, note_id_from_key


@pytest.fixture
def sync(embedder, index, session_factory, repo) -> NoteIndexSynchronizer:
    return NoteIndexSynchronizer(embedder, index, session_factory, repo)


async def _create(session_factory, repo, title: str, content: str) -> int:
    async with session_factory() as session:
        return await repo.save(session, NoteDraft(title=title, content=content))


async def _update(session_factory, repo, note_id: int, title: str, content: str) -> None:
    async with session_factory() as session:
        await repo.save(session, NoteDraft(id=note_id, title=title, content=content))


async def _wait_for_embedding(embedder) -> None:
    while not embedder.calls:
        await asyncio.sleep(0)


async def _is_embedded(session_factory, repo, note_id: int) -> bool:
    async with session_factory() as session:
        note = await repo.get_or_raise(session, note_id)
        return note.is_embedded


def test_key_helpers():
    assert index_key(12) == "note_12"
    assert note_id_from_key("note_12") == 12
    assert note_id_from_key("doc_12") is None
    assert note_id_from_key("note_x") is None


class TestOnSaved:
    @pytest.mark.asyncio
    async def test_record_holds_title_and_content(self, sync, index, session_factory, repo):
        note_id = await _create(session_factory, repo, "Trip", "Visited Kyoto in April")

        assert await sync.on_saved(note_id, "Trip", "Visited Kyoto in April") is True

        record = await index.get(f"note_{note_id}")
        assert record is not None
        assert "Trip" in record.text
        assert "Visited Kyoto in April" in record.text
        assert index.records[f"note_{note_id}"][2] == {"note_id": note_id, "title": "Trip"}
        assert await _is_embedded(session_factory, repo, note_id) is True

    @pytest.mark.asyncio
    async def test_resave_is_idempotent(self, sync, index, session_factory, repo):
        note_id = await _create(session_factory, repo, "Same", "unchanged body")

        await sync.on_saved(note_id, "Same", "unchanged body")
        first = await index.get(index_key(note_id))
        await sync.on_saved(note_id, "Same", "unchanged body")
        second = await index.get(index_key(note_id))

        assert first == second
        assert len(index.records) == 1

    @pytest.mark.asyncio
    async def test_update_overwrites_record(self, sync, index, session_factory, repo):
        note_id = await _create(session_factory, repo, "Plan", "beach")
        await sync.on_saved(note_id, "Plan", "beach")
        await _update(session_factory, repo, note_id, "Plan", "mountains")

        await sync.on_saved(note_id, "Plan", "mountains")

        record = await index.get(index_key(note_id))
        assert "mountains" in record.text
        assert "beach" not in record.text

    @pytest.mark.asyncio
    async def test_empty_content_is_not_embedded(self, sync, embedder, index, session_factory, repo):
        note_id = await _create(session_factory, repo, "Empty", "")

        assert await sync.on_saved(note_id, "Empty", "   \n") is False

        assert embedder.calls == []
        assert index.records == {}

    @pytest.mark.asyncio
    async def test_emptied_note_loses_stale_record(self, sync, index, session_factory, repo):
        note_id = await _create(session_factory, repo, "Was full", "some text")
        await sync.on_saved(note_id, "Was full", "some text")
        await _update(session_factory, repo, note_id, "Was full", "")

        await sync.on_saved(note_id, "Was full", "")

        assert await index.get(index_key(note_id)) is None
        assert await _is_embedded(session_factory, repo, note_id) is False

    @pytest.mark.asyncio
    async def test_index_outage_is_contained(self, sync, index, session_factory, repo):
        note_id = await _create(session_factory, repo, "Kept", "still saved")
        index.error = ServiceUnavailable("similarity index", "ConnectError")

        assert await sync.on_saved(note_id, "Kept", "still saved") is False

        async with session_factory() as session:
            note = await repo.get_or_raise(session, note_id)
        assert note.content == "still saved"
        assert note.is_embedded is False

    @pytest.mark.asyncio
    async def test_embedding_outage_is_contained(self, sync, embedder, index, session_factory, repo):
        note_id = await _create(session_factory, repo, "Kept", "body")
        embedder.error = ServiceUnavailable("embedding", "timed out")

        assert await sync.on_saved(note_id, "Kept", "body") is False
        assert index.records == {}

    @pytest.mark.asyncio
    async def test_unexpected_error_is_contained(self, sync, index, session_factory, repo):
        note_id = await _create(session_factory, repo, "Kept", "body")
        index.error = RuntimeError("boom")

        assert await sync.on_saved(note_id, "Kept", "body") is False

    @pytest.mark.asyncio
    async def test_next_save_heals_missed_update(self, sync, index, session_factory, repo):
        note_id = await _create(session_factory, repo, "Heal", "v1")
        index.error = ServiceUnavailable("similarity index")
        await sync.on_saved(note_id, "Heal", "v1")

        index.error = None
        assert await sync.on_saved(note_id, "Heal", "v1") is True
        assert await index.get(index_key(note_id)) is not None

    @pytest.mark.asyncio
    async def test_works_without_session_factory(self, embedder, index):
        sync = NoteIndexSynchronizer(embedder, index)

        assert await sync.on_saved(5, "Loose", "no bookkeeping") is True
        assert "note_5" in index.records


class TestOrdering:
    @pytest.mark.asyncio
    async def test_late_save_after_delete_leaves_no_record(self, sync, embedder, index, session_factory, repo):
        note_id = await _create(session_factory, repo, "Trip", "We visited Kyoto")
        await sync.on_saved(note_id, "Trip", "We visited Kyoto")
        async with session_factory() as session:
            await repo.delete(session, note_id)
        await sync.on_deleted(note_id)

        assert await sync.on_saved(note_id, "Trip", "We visited Kyoto") is False

        assert await index.get(index_key(note_id)) is None
        assert len(embedder.calls) == 1

    @pytest.mark.asyncio
    async def test_delete_during_embedding_drops_record(self, sync, embedder, index, session_factory, repo):
        note_id = await _create(session_factory, repo, "Trip", "We visited Kyoto")
        embedder.gate = asyncio.Event()
        saving = asyncio.create_task(sync.on_saved(note_id, "Trip", "We visited Kyoto"))
        await _wait_for_embedding(embedder)

        async with session_factory() as session:
            await repo.delete(session, note_id)
        embedder.gate.set()

        assert await saving is False
        assert await index.get(index_key(note_id)) is None

    @pytest.mark.asyncio
    async def test_stale_save_indexes_current_text(self, sync, index, session_factory, repo):
        note_id = await _create(session_factory, repo, "Draft", "old text")
        await _update(session_factory, repo, note_id, "Draft", "new text")
        await sync.on_saved(note_id, "Draft", "new text")

        assert await sync.on_saved(note_id, "Draft", "old text") is True

        record = await index.get(index_key(note_id))
        assert "new text" in record.text
        assert "old text" not in record.text
        assert await _is_embedded(session_factory, repo, note_id) is True

    @pytest.mark.asyncio
    async def test_overlapping_saves_end_with_latest_text(self, sync, embedder, index, session_factory, repo):
        note_id = await _create(session_factory, repo, "Draft", "first version")
        embedder.gate = asyncio.Event()
        older = asyncio.create_task(sync.on_saved(note_id, "Draft", "first version"))
        await _wait_for_embedding(embedder)

        await _update(session_factory, repo, note_id, "Draft", "second version")
        newer = asyncio.create_task(sync.on_saved(note_id, "Draft", "second version"))
        await asyncio.sleep(0)
        embedder.gate.set()

        assert await asyncio.gather(older, newer) == [True, True]
        record = await index.get(index_key(note_id))
        assert "second version" in record.text
        assert await _is_embedded(session_factory, repo, note_id) is True
        assert sync._locks == {}


class TestOnDeleted:
    @pytest.mark.asyncio
    async def test_delete_removes_key_and_links(self, sync, index, session_factory, repo):
        note_id = await _create(session_factory, repo, "Gone", "soon deleted")
        await sync.on_saved(note_id, "Gone", "soon deleted")
        async with session_factory() as session:
            await repo.link_tag(session, note_id, "temp")
            await repo.delete(session, note_id)

        assert await sync.on_deleted(note_id) is True

        assert await index.get(index_key(note_id)) is None
        async with session_factory() as session:
            assert await repo.tags_for(session, note_id) == []

    @pytest.mark.asyncio
    async def test_missing_key_is_not_an_error(self, sync):
        assert await sync.on_deleted(999) is True

    @pytest.mark.asyncio
    async def test_index_outage_is_contained(self, sync, index):
        index.error = ServiceUnavailable("similarity index")

        assert await sync.on_deleted(1) is False


class TestResyncPending:
    @pytest.mark.asyncio
    async def test_indexes_notes_missed_during_outage(self, sync, index, session_factory, repo):
        first = await _create(session_factory, repo, "One", "first body")
        second = await _create(session_factory, repo, "Two", "second body")
        await _create(session_factory, repo, "Empty", "")
        index.error = ServiceUnavailable("similarity index")
        await sync.on_saved(first, "One", "first body")
        await sync.on_saved(second, "Two", "second body")

        index.error = None
        indexed = await sync.resync_pending()

        assert indexed == 2
        assert set(index.records) == {index_key(first), index_key(second)}

    @pytest.mark.asyncio
    async def test_requires_session_factory(self, embedder, index):
        with pytest.raises(RuntimeError):
            await NoteIndexSynchronizer(embedder, index).resync_pending()
