"""
Chat API Router

HTTP endpoints for retrieval-augmented chat over the user's notes.

Endpoints:
    GET    /status                        Query engine availability.
    POST   /{conversation_id}/ask         Answer a question (409 while busy).
    GET    /{conversation_id}/history     Remembered turns, oldest first.
    DELETE /{conversation_id}/history     Clear and forget the conversation.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, status

from notia.schemas.chat import (
    AskRequest,
    AskResponse,
    ChatStatus,
    SourceReference,
    TurnRead,
)
from notia.services.chat import ChatSessionRegistry
from notia.services.sync import note_id_from_key

logger = logging.getLogger(__name__)

router = APIRouter()

PREVIEW_LENGTH = 100


def _get_registry(request: Request) -> ChatSessionRegistry:
    """FastAPI dependency: the session registry built at startup."""
    return request.app.state.chat_sessions


@router.get("/status", response_model=ChatStatus)
async def chat_status(registry: ChatSessionRegistry = Depends(_get_registry)) -> ChatStatus:
    engine = registry.engine
    return ChatStatus(state=engine.state.value, detail=engine.unavailable_reason)


@router.post("/{conversation_id}/ask", response_model=AskResponse)
async def ask(
    conversation_id: str,
    request: AskRequest,
    registry: ChatSessionRegistry = Depends(_get_registry),
) -> AskResponse:
    """
    Answer a question using the notes most similar to it.

    Process:
        1. Embed the question with the local MiniLM model.
        2. Retrieve up to k notes scoring at or above the floor.
        3. Generate an answer with Ollama from those notes plus the
           conversation history.

    Errors:
        409 if this conversation already has a question in flight,
        503 if the AI service is unavailable or not configured,
        502 if the model produced no answer.
    """
    logger.info("Chat ask: conversation=%s, message='%s'", conversation_id, request.message[:50])

    session = registry.get_or_create(conversation_id)
    result = await session.ask(request.message)

    return AskResponse(
        conversation_id=conversation_id,
        answer=result.text,
        sources=[
            SourceReference(
                key=match.key,
                note_id=note_id_from_key(match.key),
                score=match.score,
                preview=match.text[:PREVIEW_LENGTH],
            )
            for match in result.sources
        ],
    )


@router.get("/{conversation_id}/history", response_model=list[TurnRead])
async def history(
    conversation_id: str,
    registry: ChatSessionRegistry = Depends(_get_registry),
) -> list[TurnRead]:
    session = registry.get(conversation_id)
    if session is None:
        return []
    return [TurnRead(role=t.role, content=t.content) for t in session.memory.snapshot()]


@router.delete("/{conversation_id}/history", status_code=status.HTTP_204_NO_CONTENT)
async def clear_history(
    conversation_id: str,
    registry: ChatSessionRegistry = Depends(_get_registry),
) -> None:
    session = registry.get(conversation_id)
    if session is None:
        return
    session.clear()
    registry.remove(conversation_id)
