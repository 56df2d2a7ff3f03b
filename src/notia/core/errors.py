"""
Error Taxonomy

Typed failures shared by the repository, the index synchronizer and the
query engine. The HTTP layer maps each kind to a status code in
``notia.main``.
"""

from __future__ import annotations


class NotiaError(Exception):
    """Base class for all application errors."""


class NotFound(NotiaError):
    """Operation on a note, category or tag id that does not exist."""

    def __init__(self, entity: str, entity_id: int | str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class ValidationError(NotiaError):
    """A required field is empty or malformed."""


class ServiceUnavailable(NotiaError):
    """
    An external service (embedding, similarity index, generation) is
    unreachable, timed out, answered with an error, or is not configured.
    """

    def __init__(self, service: str, detail: str = "") -> None:
        self.service = service
        self.detail = detail
        message = f"{service} unavailable"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class EmptyResponse(NotiaError):
    """The generation service answered but produced no usable text."""


class ConversationBusy(NotiaError):
    """A request is already in flight for this conversation."""

    def __init__(self, conversation_id: str) -> None:
        self.conversation_id = conversation_id
        super().__init__(f"conversation {conversation_id} already has a request in flight")
