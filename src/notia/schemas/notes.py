"""
Note Schemas

Pydantic models for Note request/response validation.
Separates concerns: NoteDraft (input to save), NoteRead (full output),
NoteSummary (list/search projection without content).
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from notia.models.note import LABEL_MAX_LENGTH, TITLE_MAX_LENGTH


class NoteDraft(BaseModel):
    """
    Input to ``NoteRepository.save``.

    ``id`` absent or 0 means "new, unsaved". ``title`` absent means
    "derive from the first line of content".
    """

    id: int | None = Field(default=None, ge=0)
    title: str | None = Field(default=None, max_length=TITLE_MAX_LENGTH)
    content: str = Field(default="", description="Note content (may be empty)")
    parent_id: int | None = Field(default=None, ge=1)

    @property
    def is_new(self) -> bool:
        return not self.id


class NoteWrite(BaseModel):
    """Request body for POST /notes and PUT /notes/{id}."""

    title: str | None = Field(default=None, max_length=TITLE_MAX_LENGTH)
    content: str = ""
    parent_id: int | None = Field(default=None, ge=1)


class NoteSummary(BaseModel):
    """Lightweight projection for list and keyword-search results."""

    id: int
    title: str

    model_config = ConfigDict(from_attributes=True)


class NoteRead(NoteSummary):
    """Full Note representation including timestamps and flags."""

    content: str
    created_on: datetime
    updated_on: datetime | None = None
    is_embedded: bool
    is_subnote: bool
    parent_id: int | None = None


class LabelCreate(BaseModel):
    """Request body for attaching a category or tag by name."""

    name: str = Field(..., min_length=1, max_length=LABEL_MAX_LENGTH)


class LabelRead(BaseModel):
    """Category or tag returned to the client."""

    id: int
    name: str

    model_config = ConfigDict(from_attributes=True)
