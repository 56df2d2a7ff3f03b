"""
Chat API Schemas

Pydantic models for the retrieval-augmented chat request/response cycle.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class AskRequest(BaseModel):
    """Request body for a chat question."""

    message: str = Field(
        ...,
        min_length=1,
        max_length=2000,
        description="Natural language question about the user's notes",
    )


class SourceReference(BaseModel):
    """Note used as context for an answer."""

    key: str = Field(description="Index key, e.g. 'note_12'")
    note_id: int | None = Field(default=None, description="Source note id")
    score: float = Field(description="Similarity score in [0, 1]")
    preview: str = Field(description="First 100 chars of the indexed text")


class AskResponse(BaseModel):
    """Response from the chat endpoint."""

    conversation_id: str
    answer: str = Field(description="Generated answer text")
    sources: list[SourceReference] = Field(default_factory=list)


class TurnRead(BaseModel):
    """One remembered conversation turn."""

    role: Literal["user", "assistant"]
    content: str


class ChatStatus(BaseModel):
    """Query engine availability."""

    state: str
    detail: str | None = None
