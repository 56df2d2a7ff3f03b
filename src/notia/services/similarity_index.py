"""
Similarity Index Client

Thin async client for a Chroma server (v2 REST API) holding one vector
record per note.

Design:
    - Async HTTP calls via httpx (non-blocking), one timeout for every call.
    - The collection is created on first use with cosine distance and its
      id cached for the lifetime of the client.
    - Every transport, status or payload problem surfaces as
      ``ServiceUnavailable``; callers decide whether that is fatal.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

import httpx

from notia.core.errors import ServiceUnavailable
from notia.services.base import IndexMatch, IndexRecord

logger = logging.getLogger(__name__)

SERVICE_NAME = "similarity index"


def distance_to_score(distance: float) -> float:
    """
    Convert a cosine distance in [0, 2] to a relevance score in [0, 1].

    ``1 - d`` is the cosine similarity; shifting it from [-1, 1] to
    [0, 1] gives 1.0 for identical vectors and 0.5 for orthogonal ones.
    """
    score = 1.0 - distance / 2.0
    return round(min(1.0, max(0.0, score)), 4)


class ChromaIndexClient:
    """
    Similarity index backed by a Chroma collection.

    Usage::

        index = ChromaIndexClient("http://localhost:8000", "notia-notes-collection")
        await index.upsert("note_1", vector, "Note ID: 1 ...")
        matches = await index.query(query_vector, k=3)
    """

    def __init__(
        self,
        base_url: str,
        collection_name: str,
        *,
        tenant: str = "default_tenant",
        database: str = "default_database",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Args:
            base_url: Chroma server URL, e.g. ``http://localhost:8000``.
            collection_name: Collection holding the note vectors.
            tenant: Chroma tenant.
            database: Chroma database.
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (tests use MockTransport).
        """
        self._base_url = base_url.rstrip("/")
        self.collection_name = collection_name
        self._prefix = f"/api/v2/tenants/{tenant}/databases/{database}/collections"
        self._timeout = timeout
        self._transport = transport
        self._collection_id: str | None = None
        self._collection_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def upsert(
        self,
        key: str,
        vector: list[float],
        text: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Create or overwrite the record stored under ``key``."""
        payload: dict[str, Any] = {
            "ids": [key],
            "embeddings": [vector],
            "documents": [text],
        }
        if metadata:
            payload["metadatas"] = [metadata]
        await self._collection_call("upsert", payload)
        logger.info("Index record upserted: %s", key)

    async def delete(self, key: str) -> None:
        """Delete one record. A missing key is not an error."""
        await self.delete_many([key])

    async def delete_many(self, keys: Sequence[str]) -> None:
        """Delete several records. Missing keys are ignored."""
        if not keys:
            return
        await self._collection_call("delete", {"ids": list(keys)})
        logger.info("Index records deleted: %s", ", ".join(keys))

    async def query(self, vector: list[float], k: int) -> list[IndexMatch]:
        """
        Return up to ``k`` nearest records, highest score first.

        Raises:
            ServiceUnavailable: Unreachable, error status or malformed payload.
        """
        data = await self._collection_call(
            "query",
            {
                "query_embeddings": [vector],
                "n_results": k,
                "include": ["documents", "metadatas", "distances"],
            },
        )
        try:
            ids = data["ids"][0]
            distances = data["distances"][0]
            documents = data["documents"][0]
            metadatas = (data.get("metadatas") or [[None] * len(ids)])[0]
            matches = [
                IndexMatch(
                    key=key,
                    score=distance_to_score(float(distance)),
                    text=document or "",
                    metadata=metadata or {},
                )
                for key, distance, document, metadata in zip(
                    ids, distances, documents, metadatas, strict=True
                )
            ]
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise ServiceUnavailable(SERVICE_NAME, f"malformed query response: {e}") from e

        return sorted(matches, key=lambda m: (-m.score, m.key))

    async def get(self, key: str) -> IndexRecord | None:
        """Fetch the stored vector and text for ``key``, or None."""
        data = await self._collection_call(
            "get",
            {"ids": [key], "include": ["embeddings", "documents"]},
        )
        try:
            if not data["ids"]:
                return None
            return IndexRecord(
                key=data["ids"][0],
                vector=[float(x) for x in data["embeddings"][0]],
                text=data["documents"][0] or "",
            )
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise ServiceUnavailable(SERVICE_NAME, f"malformed get response: {e}") from e

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def _post(self, path: str, payload: dict[str, Any]) -> Any:
        try:
            async with self._client() as client:
                response = await client.post(path, json=payload)
                response.raise_for_status()
                return response.json() if response.content else {}
        except httpx.HTTPStatusError as e:
            logger.warning(
                "Chroma API error %d on %s: %s",
                e.response.status_code,
                path,
                e.response.text[:200],
            )
            raise ServiceUnavailable(
                SERVICE_NAME, f"HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            logger.warning("Chroma unreachable (%s): %s", type(e).__name__, e)
            raise ServiceUnavailable(SERVICE_NAME, type(e).__name__) from e
        except ValueError as e:
            raise ServiceUnavailable(SERVICE_NAME, "invalid JSON response") from e

    async def _ensure_collection(self) -> str:
        async with self._collection_lock:
            if self._collection_id is None:
                data = await self._post(
                    self._prefix,
                    {
                        "name": self.collection_name,
                        "get_or_create": True,
                        "metadata": {"hnsw:space": "cosine"},
                    },
                )
                try:
                    self._collection_id = str(data["id"])
                except (KeyError, TypeError) as e:
                    raise ServiceUnavailable(
                        SERVICE_NAME, "collection response has no id"
                    ) from e
                logger.info(
                    "Using Chroma collection '%s' (%s)",
                    self.collection_name,
                    self._collection_id,
                )
        return self._collection_id

    async def _collection_call(self, operation: str, payload: dict[str, Any]) -> Any:
        collection_id = await self._ensure_collection()
        return await self._post(f"{self._prefix}/{collection_id}/{operation}", payload)
