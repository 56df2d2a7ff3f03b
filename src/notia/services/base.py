"""
Service protocols.

Interfaces the synchronizer and the query engine depend on. Concrete
clients (sentence-transformers, Chroma, Ollama) satisfy them structurally,
and tests substitute in-memory fakes.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, runtime_checkable

Role = Literal["user", "assistant"]


@dataclass(frozen=True)
class ConversationTurn:
    """One message in a chat history."""

    role: Role
    content: str


@dataclass(frozen=True)
class IndexMatch:
    """
    A nearest-neighbour hit from the similarity index.

    Attributes:
        key: Record key, e.g. ``note_12``.
        score: Similarity in [0, 1]; 1.0 means identical.
        text: Source text stored with the vector.
        metadata: Extra fields stored with the record.
    """

    key: str
    score: float
    text: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class IndexRecord:
    """A stored vector with the text that produced it."""

    key: str
    vector: list[float]
    text: str


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Fixed-dimension text embedding. Must be deterministic per text."""

    async def embed(self, text: str) -> list[float]: ...


@runtime_checkable
class SimilarityIndex(Protocol):
    """Key/vector store with k-nearest-neighbour queries."""

    async def upsert(
        self,
        key: str,
        vector: list[float],
        text: str,
        metadata: dict[str, Any] | None = None,
    ) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def delete_many(self, keys: Sequence[str]) -> None: ...

    async def query(self, vector: list[float], k: int) -> list[IndexMatch]: ...

    async def get(self, key: str) -> IndexRecord | None: ...


@runtime_checkable
class GenerationProvider(Protocol):
    """Chat-style text generation."""

    async def generate(
        self,
        system_prompt: str,
        history: Sequence[ConversationTurn],
        user_message: str,
    ) -> str: ...
