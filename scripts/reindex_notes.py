#!/usr/bin/env python3
"""
Re-index Notes Script

Re-synchronizes every note whose ``is_embedded`` flag is false with the
similarity index. Index sync is best-effort on save, so a note saved
while Chroma or the embedding model was down stays stale until it is
saved again or this sweep runs.

Usage:
    Requires the database and Chroma to be reachable (settings from .env):
    $ python scripts/reindex_notes.py
"""

import asyncio
import logging

from notia.core.config import settings
from notia.core.database import dispose_engine, get_session_factory
from notia.core.logging import setup_logging
from notia.services.embeddings import EmbeddingClient
from notia.services.similarity_index import ChromaIndexClient
from notia.services.sync import NoteIndexSynchronizer

logger = logging.getLogger("notia.scripts.reindex")


async def main() -> None:
    """Run one re-synchronization sweep and report the result."""
    setup_logging()
    embedder = EmbeddingClient(settings.EMBEDDING_MODEL, timeout=settings.SERVICE_TIMEOUT)
    index = ChromaIndexClient(
        settings.CHROMA_BASE_URL,
        settings.CHROMA_COLLECTION,
        tenant=settings.CHROMA_TENANT,
        database=settings.CHROMA_DATABASE,
        timeout=settings.SERVICE_TIMEOUT,
    )
    sync = NoteIndexSynchronizer(embedder, index, get_session_factory())

    try:
        indexed = await sync.resync_pending()
        logger.info("Re-indexed %d notes", indexed)
    finally:
        embedder.reset()
        await dispose_engine()


if __name__ == "__main__":
    asyncio.run(main())
