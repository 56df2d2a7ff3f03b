"""
Conversation Memory

Bounded, in-process history for one conversation. Never persisted.
"""

from __future__ import annotations

from collections import deque

from notia.services.base import ConversationTurn, Role

DEFAULT_CAPACITY = 10


class ConversationMemory:
    """
    FIFO window of the most recent turns.

    Appending beyond ``capacity`` evicts the oldest turn. ``snapshot``
    is ordered oldest-first.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._turns: deque[ConversationTurn] = deque(maxlen=capacity)

    def append(self, turn: ConversationTurn) -> None:
        self._turns.append(turn)

    def add(self, role: Role, content: str) -> None:
        self.append(ConversationTurn(role=role, content=content))

    def clear(self) -> None:
        self._turns.clear()

    def snapshot(self) -> tuple[ConversationTurn, ...]:
        return tuple(self._turns)

    def __len__(self) -> int:
        return len(self._turns)
