"""
Pytest Configuration and Fixtures

Shared fixtures for the unit suite: a throwaway SQLite database per test
and in-memory stand-ins for the embedding, similarity index and
generation services. Nothing here needs Docker or network access.
"""

import os

from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Test environment defaults, MUST be before any notia imports.
#
# 1. Load .env first so that local credentials are available.
# 2. setdefault fills in anything still missing (CI runners, fresh clones
#    without a .env file) so that pydantic Settings validation doesn't crash.
# ---------------------------------------------------------------------------
load_dotenv()  # .env → os.environ (no-op if file is missing)

_test_env = {
    "POSTGRES_USER": "notia",
    "POSTGRES_PASSWORD": "notia_password",
    "POSTGRES_HOST": "localhost",
    "POSTGRES_PORT": "5432",
    "POSTGRES_DB": "notia_db",
    "LOG_LEVEL": "WARNING",
}
for _key, _value in _test_env.items():
    os.environ.setdefault(_key, _value)

# ---------------------------------------------------------------------------
# Imports (safe now that env vars are set)
# ---------------------------------------------------------------------------
import asyncio  # noqa: E402
import hashlib  # noqa: E402
import math  # noqa: E402
import re  # noqa: E402
from collections.abc import AsyncGenerator, Sequence  # noqa: E402
from typing import Any  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from notia.core.database import create_schema  # noqa: E402
from notia.core.errors import ValidationError  # noqa: E402
from notia.repositories.notes import NoteRepository  # noqa: E402
from notia.services.base import ConversationTurn, IndexMatch, IndexRecord  # noqa: E402

FAKE_DIMENSION = 64

_WORD = re.compile(r"\w+")


# ---------------------------------------------------------------------------
# Service fakes
# ---------------------------------------------------------------------------


class FakeEmbedder:
    """
    Deterministic bag-of-words embedder.

    Each word is hashed into one of ``FAKE_DIMENSION`` buckets and the
    vector is L2-normalized, so texts sharing words score higher.
    ``gate`` holds each call after it is recorded until the event is set.
    """

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.error: Exception | None = None
        self.gate: asyncio.Event | None = None

    async def embed(self, text: str) -> list[float]:
        if not text or not text.strip():
            raise ValidationError("cannot embed empty text")
        self.calls.append(text)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        vector = [0.0] * FAKE_DIMENSION
        for word in _WORD.findall(text.lower()):
            bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % FAKE_DIMENSION
            vector[bucket] += 1.0
        norm = math.sqrt(sum(x * x for x in vector)) or 1.0
        return [x / norm for x in vector]


class InMemoryIndex:
    """
    Dict-backed similarity index scoring by cosine similarity.

    ``scripted`` replaces real ranking with a fixed list of matches;
    ``error`` makes every call raise.
    """

    def __init__(self) -> None:
        self.records: dict[str, tuple[list[float], str, dict[str, Any]]] = {}
        self.scripted: list[IndexMatch] | None = None
        self.error: Exception | None = None
        self.queries: list[tuple[list[float], int]] = []

    def _check(self) -> None:
        if self.error is not None:
            raise self.error

    async def upsert(
        self,
        key: str,
        vector: list[float],
        text: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self._check()
        self.records[key] = (list(vector), text, dict(metadata or {}))

    async def delete(self, key: str) -> None:
        await self.delete_many([key])

    async def delete_many(self, keys: Sequence[str]) -> None:
        self._check()
        for key in keys:
            self.records.pop(key, None)

    async def query(self, vector: list[float], k: int) -> list[IndexMatch]:
        self._check()
        self.queries.append((vector, k))
        if self.scripted is not None:
            return list(self.scripted)[:k]
        matches = [
            IndexMatch(
                key=key,
                score=round((1.0 + sum(a * b for a, b in zip(vector, stored))) / 2.0, 4),
                text=text,
                metadata=metadata,
            )
            for key, (stored, text, metadata) in self.records.items()
        ]
        matches.sort(key=lambda m: (-m.score, m.key))
        return matches[:k]

    async def get(self, key: str) -> IndexRecord | None:
        self._check()
        if key not in self.records:
            return None
        vector, text, _ = self.records[key]
        return IndexRecord(key=key, vector=vector, text=text)


class FakeGenerator:
    """
    Generation stand-in that answers with the context it was given.

    ``gate`` holds every call until the event is set, which lets tests
    observe a request while it is in flight.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[ConversationTurn, ...], str]] = []
        self.error: Exception | None = None
        self.reply: str | None = None
        self.gate: asyncio.Event | None = None

    async def generate(
        self,
        system_prompt: str,
        history: Sequence[ConversationTurn],
        user_message: str,
    ) -> str:
        self.calls.append((system_prompt, tuple(history), user_message))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if self.reply is not None:
            return self.reply
        return f"Based on your notes: {system_prompt}"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh SQLite database file with every table created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'notia-test.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as s:
        yield s


@pytest.fixture
def repo() -> NoteRepository:
    return NoteRepository()


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def index() -> InMemoryIndex:
    return InMemoryIndex()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()
