"""
Embedding Client

Local embedding generation using sentence-transformers.
Default model: all-MiniLM-L6-v2 (384 dimensions, ~22M parameters).

Design choices:
    - One explicitly constructed client per application, injected into the
      synchronizer and the query engine.
    - Lazy loading: model downloaded/loaded on first embed call.
    - asyncio.to_thread: model inference is CPU-bound and must not
      block the event loop; every call is bounded by a timeout.

Pre-download the model for production:
    python -c "from sentence_transformers import SentenceTransformer; \\
               SentenceTransformer('all-MiniLM-L6-v2')"
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any

from notia.core.errors import ServiceUnavailable, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_MODEL_NAME: str = "all-MiniLM-L6-v2"
EMBEDDING_DIMENSION: int = 384


class EmbeddingClient:
    """
    Async embedding client backed by a local sentence-transformers model.

    Vectors are L2-normalized, so cosine similarity equals the dot product
    and the same text always maps to the same vector.

    Usage::

        client = EmbeddingClient(timeout=30.0)
        vector = await client.embed("hello world")
        assert len(vector) == 384
    """

    def __init__(
        self,
        model_name: str = DEFAULT_MODEL_NAME,
        timeout: float = 30.0,
    ) -> None:
        self.model_name = model_name
        self._timeout = timeout
        self._model: Any = None
        self._load_lock = threading.Lock()

    def _get_model(self) -> Any:
        """
        Get or lazily initialize the sentence-transformers model.

        The import is deferred so that ``sentence_transformers`` is not
        required at module-import time (keeps test collection fast).
        """
        with self._load_lock:
            if self._model is None:
                from sentence_transformers import SentenceTransformer

                logger.info("Loading embedding model: %s ...", self.model_name)
                self._model = SentenceTransformer(self.model_name)
                logger.info("Model loaded (%s)", self.model_name)
        return self._model

    def _encode_sync(self, texts: list[str]) -> list[list[float]]:
        """
        Synchronous batch encoding.

        Always call via ``asyncio.to_thread``. This is CPU-bound and will
        block the calling thread for the duration of inference.
        """
        model = self._get_model()
        embeddings = model.encode(texts, normalize_embeddings=True)
        # numpy ndarray → native Python lists for JSON transport
        result: list[list[float]] = embeddings.tolist()
        return result

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        """
        Generate embeddings for a batch of texts.

        Raises:
            ServiceUnavailable: Model could not be loaded, inference failed,
                or the call exceeded the timeout.
        """
        if not texts:
            return []
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._encode_sync, texts),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning("Embedding timed out after %.1fs", self._timeout)
            raise ServiceUnavailable("embedding", "timed out") from e
        except Exception as e:
            logger.warning("Embedding failed: %s", e)
            raise ServiceUnavailable("embedding", str(e)) from e

    async def embed(self, text: str) -> list[float]:
        """Generate a single embedding. Blank text is rejected."""
        if not text or not text.strip():
            raise ValidationError("cannot embed empty text")
        results = await self.embed_many([text])
        return results[0]

    async def warm_up(self) -> None:
        """Load the model ahead of the first request."""
        try:
            await asyncio.wait_for(
                asyncio.to_thread(self._get_model), timeout=self._timeout
            )
        except Exception as e:
            raise ServiceUnavailable("embedding", str(e)) from e

    def reset(self) -> None:
        """Release the model from memory."""
        self._model = None
        logger.info("Embedding model released")
