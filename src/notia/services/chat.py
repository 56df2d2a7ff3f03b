"""
Chat Sessions

One ``ChatSession`` per conversation: it owns the conversation memory and
runs at most one question at a time as an ``asyncio.Task``. The task is
both the cancellable handle and the future that carries the typed result
(answer or error) back to the caller.
"""

from __future__ import annotations

import asyncio
import logging
import uuid

from notia.core.errors import ConversationBusy
from notia.services.memory import DEFAULT_CAPACITY, ConversationMemory
from notia.services.query_engine import EngineState, QueryEngine, RagAnswer

logger = logging.getLogger(__name__)


class ChatSession:
    """
    A single conversation with the query engine.

    Usage::

        session = ChatSession(engine)
        task = session.submit("What did I write about Kyoto?")
        answer = await task          # or session.cancel()
    """

    def __init__(
        self,
        engine: QueryEngine,
        *,
        conversation_id: str | None = None,
        capacity: int = DEFAULT_CAPACITY,
    ) -> None:
        self.engine = engine
        self.conversation_id = conversation_id or uuid.uuid4().hex
        self.memory = ConversationMemory(capacity)
        self._inflight: asyncio.Task[RagAnswer] | None = None

    @property
    def busy(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    @property
    def state(self) -> EngineState:
        if self.engine.state != EngineState.READY:
            return self.engine.state
        return EngineState.BUSY if self.busy else EngineState.READY

    def submit(self, message: str) -> asyncio.Task[RagAnswer]:
        """
        Start answering ``message`` in the background.

        Raises:
            ConversationBusy: A previous question is still in flight.
        """
        if self.busy:
            raise ConversationBusy(self.conversation_id)
        task = asyncio.create_task(
            self.engine.answer(self.memory, message),
            name=f"chat-{self.conversation_id}",
        )
        self._inflight = task
        return task

    async def ask(self, message: str) -> RagAnswer:
        """Submit and wait for the answer."""
        return await self.submit(message)

    def cancel(self) -> bool:
        """Cancel the in-flight question, if any. Memory is left untouched."""
        if not self.busy:
            return False
        logger.info("Cancelling in-flight request for conversation %s", self.conversation_id)
        return self._inflight.cancel()  # type: ignore[union-attr]

    def clear(self) -> None:
        self.memory.clear()


class ChatSessionRegistry:
    """In-process map of conversation id → ChatSession. Never persisted."""

    def __init__(self, engine: QueryEngine, capacity: int = DEFAULT_CAPACITY) -> None:
        self.engine = engine
        self.capacity = capacity
        self._sessions: dict[str, ChatSession] = {}

    def get_or_create(self, conversation_id: str) -> ChatSession:
        session = self._sessions.get(conversation_id)
        if session is None:
            session = ChatSession(
                self.engine,
                conversation_id=conversation_id,
                capacity=self.capacity,
            )
            self._sessions[conversation_id] = session
        return session

    def get(self, conversation_id: str) -> ChatSession | None:
        return self._sessions.get(conversation_id)

    def remove(self, conversation_id: str) -> bool:
        """
        Forget an idle conversation.

        A conversation with a question in flight stays registered so that
        a new request for the same id is still rejected as busy.

        Returns:
            True if the session was dropped.
        """
        session = self._sessions.get(conversation_id)
        if session is None or session.busy:
            return False
        del self._sessions[conversation_id]
        return True

    def close_all(self) -> None:
        """Cancel every in-flight request (application shutdown)."""
        for session in self._sessions.values():
            session.cancel()
        self._sessions.clear()
