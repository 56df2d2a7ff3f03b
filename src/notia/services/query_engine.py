"""
Retrieval-Augmented Query Engine

Answers a question from the user's own notes:

    question → embed → k-nearest notes above a score floor →
    prompt (instructions + note context + history + question) →
    generation → remember the exchange

The conversation memory is only touched after generation succeeds, so a
failed, timed-out or cancelled request leaves it exactly as it was.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Final

from notia.core.config import Settings
from notia.core.errors import ServiceUnavailable, ValidationError
from notia.services.base import (
    ConversationTurn,
    EmbeddingProvider,
    GenerationProvider,
    IndexMatch,
    SimilarityIndex,
)
from notia.services.llm import LLMService
from notia.services.memory import ConversationMemory

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 3
DEFAULT_MIN_SCORE = 0.5
NOT_CONFIGURED = "AI service not configured"

SYSTEM_PROMPT: Final[str] = """You are an intelligent note-taking assistant integrated into the Notia app. \
Your role is to help users find information in their personal notes and answer questions based on the content they've written.

Guidelines:
- Be concise and helpful in your responses
- Answer ONLY from the user's notes provided in the context below
- If the notes don't contain relevant information, clearly state that
- If you're uncertain, admit it rather than making up information

Context from the user's notes:
{context}
"""

NO_CONTEXT: Final[str] = "No relevant notes were found for this question."


class EngineState(str, Enum):
    """Lifecycle of the query engine and of a conversation using it."""

    UNINITIALIZED = "uninitialized"
    READY = "ready"
    BUSY = "busy"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class RagAnswer:
    """Generated answer plus the notes it was grounded on."""

    text: str
    sources: list[IndexMatch] = field(default_factory=list)


def format_context(matches: Sequence[IndexMatch]) -> str:
    """Concatenate retrieved note texts, best match first."""
    if not matches:
        return NO_CONTEXT
    return "\n\n".join(
        f"[Note {i}] (relevance {m.score:.2f})\n{m.text}"
        for i, m in enumerate(matches, 1)
    )


def build_system_prompt(matches: Sequence[IndexMatch]) -> str:
    return SYSTEM_PROMPT.format(context=format_context(matches))


def select_matches(
    matches: Sequence[IndexMatch],
    max_results: int,
    min_score: float,
) -> list[IndexMatch]:
    """
    Keep matches scoring at or above ``min_score``, best first.

    Ties are broken by key so the prompt is stable across runs.
    """
    kept = [m for m in matches if m.score >= min_score]
    kept.sort(key=lambda m: (-m.score, m.key))
    return kept[:max_results]


class QueryEngine:
    """
    Stateless RAG orchestrator; all per-conversation state lives in the
    ``ConversationMemory`` passed to ``ask``.

    Usage::

        engine = QueryEngine(embedder, index, generator)
        memory = ConversationMemory(capacity=10)
        text = await engine.ask(memory, "Where did I go in spring?")
    """

    def __init__(
        self,
        embedder: EmbeddingProvider | None,
        index: SimilarityIndex | None,
        generator: GenerationProvider | None,
        *,
        max_results: int = DEFAULT_MAX_RESULTS,
        min_score: float = DEFAULT_MIN_SCORE,
    ) -> None:
        if max_results < 1:
            raise ValueError("max_results must be at least 1")
        if not 0.0 <= min_score <= 1.0:
            raise ValueError("min_score must be within [0, 1]")
        self._embedder = embedder
        self._index = index
        self._generator = generator
        self.max_results = max_results
        self.min_score = min_score
        self.unavailable_reason: str | None = None
        self.state = EngineState.UNINITIALIZED
        if embedder is not None and index is not None and generator is not None:
            self.state = EngineState.READY

    @classmethod
    def unavailable(cls, reason: str = NOT_CONFIGURED) -> QueryEngine:
        """An engine that rejects every request with ``reason``."""
        engine = cls(None, None, None)
        engine.mark_unavailable(reason)
        return engine

    def mark_unavailable(self, reason: str) -> None:
        logger.warning("Query engine unavailable: %s", reason)
        self.state = EngineState.UNAVAILABLE
        self.unavailable_reason = reason

    @property
    def is_ready(self) -> bool:
        return self.state == EngineState.READY

    async def retrieve(self, question: str) -> list[IndexMatch]:
        """
        Embed the question and fetch the best notes above the floor.

        Raises:
            ServiceUnavailable: Embedding or index call failed.
        """
        self._require_ready()
        vector = await self._embedder.embed(question)  # type: ignore[union-attr]
        matches = await self._index.query(vector, self.max_results)  # type: ignore[union-attr]
        selected = select_matches(matches, self.max_results, self.min_score)
        logger.info(
            "Retrieved %d/%d notes above score %.2f",
            len(selected),
            len(matches),
            self.min_score,
        )
        return selected

    async def answer(self, memory: ConversationMemory, user_message: str) -> RagAnswer:
        """
        Answer ``user_message`` and record the exchange in ``memory``.

        Raises:
            ValidationError: Blank message (no external call is made).
            ServiceUnavailable: Engine not configured, or an embedding,
                index or generation call failed or timed out.
            EmptyResponse: Generation produced no usable text.
        """
        question = user_message.strip() if user_message else ""
        if not question:
            raise ValidationError("message must not be empty")
        self._require_ready()

        sources = await self.retrieve(question)
        history = memory.snapshot()
        text = await self._generator.generate(  # type: ignore[union-attr]
            build_system_prompt(sources),
            history,
            question,
        )

        # Only a complete success reaches the memory
        memory.append(ConversationTurn(role="user", content=question))
        memory.append(ConversationTurn(role="assistant", content=text))
        return RagAnswer(text=text, sources=sources)

    async def ask(self, memory: ConversationMemory, user_message: str) -> str:
        """Answer text only; see ``answer``."""
        result = await self.answer(memory, user_message)
        return result.text

    def _require_ready(self) -> None:
        if self.state == EngineState.UNAVAILABLE:
            raise ServiceUnavailable("query engine", self.unavailable_reason or NOT_CONFIGURED)
        if self.state == EngineState.UNINITIALIZED:
            raise ServiceUnavailable("query engine", "not initialized")


async def build_query_engine(
    settings: Settings,
    embedder: EmbeddingProvider,
    index: SimilarityIndex,
    *,
    warm_up: bool = True,
) -> QueryEngine:
    """
    Construct the engine for the running application.

    The generation client is built here from settings; a blank model or
    URL, or an embedding model that cannot be loaded, leaves the engine
    ``UNAVAILABLE`` instead of failing startup.
    """
    if not settings.generation_configured:
        return QueryEngine.unavailable(NOT_CONFIGURED)

    generator = LLMService(
        settings.OLLAMA_BASE_URL,
        settings.OLLAMA_MODEL,
        temperature=settings.RAG_TEMPERATURE,
        timeout=settings.SERVICE_TIMEOUT,
    )
    engine = QueryEngine(
        embedder,
        index,
        generator,
        max_results=settings.RAG_MAX_RESULTS,
        min_score=settings.RAG_MIN_SCORE,
    )

    warm = getattr(embedder, "warm_up", None)
    if warm_up and warm is not None:
        try:
            await warm()
        except ServiceUnavailable as e:
            engine.mark_unavailable(f"{NOT_CONFIGURED} ({e})")
            return engine

    logger.info(
        "Query engine ready (model=%s, k=%d, min_score=%.2f)",
        settings.OLLAMA_MODEL,
        engine.max_results,
        engine.min_score,
    )
    return engine
