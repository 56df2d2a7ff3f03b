"""
Notia Backend Application

FastAPI application entrypoint with async lifespan management.
Wires the relational store, the index synchronizer and the query engine
together at startup, and maps the error taxonomy to HTTP responses.

Start locally:
    uvicorn notia.main:app --host 0.0.0.0 --port 8001 --reload
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from notia.api.v1.chat import router as chat_router
from notia.api.v1.notes import router as notes_router
from notia.core.config import settings
from notia.core.database import (
    create_schema,
    dispose_engine,
    get_engine,
    get_session_factory,
)
from notia.core.errors import (
    ConversationBusy,
    EmptyResponse,
    NotFound,
    ServiceUnavailable,
    ValidationError,
)
from notia.core.logging import setup_logging
from notia.services.chat import ChatSessionRegistry
from notia.services.embeddings import EmbeddingClient
from notia.services.query_engine import build_query_engine
from notia.services.similarity_index import ChromaIndexClient
from notia.services.sync import NoteIndexSynchronizer

# Initialize logging before any log statements
setup_logging()
logger = logging.getLogger(__name__)


@dataclass
class AppServices:
    """Long-lived collaborators shared by the routers."""

    synchronizer: NoteIndexSynchronizer
    chat_sessions: ChatSessionRegistry
    embedder: EmbeddingClient | None = None

    def close(self) -> None:
        self.chat_sessions.close_all()
        if self.embedder is not None:
            self.embedder.reset()


async def build_services() -> AppServices:
    """
    Construct the external-service clients once and inject them.

    The embedding and index clients are shared by the synchronizer and
    the query engine; nothing here touches the network except the
    embedding model warm-up, whose failure only disables chat.
    """
    embedder = EmbeddingClient(settings.EMBEDDING_MODEL, timeout=settings.SERVICE_TIMEOUT)
    index = ChromaIndexClient(
        settings.CHROMA_BASE_URL,
        settings.CHROMA_COLLECTION,
        tenant=settings.CHROMA_TENANT,
        database=settings.CHROMA_DATABASE,
        timeout=settings.SERVICE_TIMEOUT,
    )
    synchronizer = NoteIndexSynchronizer(embedder, index, get_session_factory())
    engine = await build_query_engine(settings, embedder, index)
    return AppServices(
        synchronizer=synchronizer,
        chat_sessions=ChatSessionRegistry(engine, capacity=settings.CHAT_MEMORY_SIZE),
        embedder=embedder,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
        1. Validate database connectivity and create missing tables.
        2. Build clients, synchronizer and query engine.

    Shutdown:
        1. Cancel in-flight chat requests, release the embedding model.
        2. Dispose database engine.
    """
    logger.info("Starting %s...", settings.PROJECT_NAME)
    logger.info("Log Level: %s", settings.LOG_LEVEL)

    engine = get_engine()
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection verified")
    except Exception:
        logger.exception("Database connection failed")
        raise
    await create_schema(engine)

    services = await build_services()
    app.state.synchronizer = services.synchronizer
    app.state.chat_sessions = services.chat_sessions

    yield  # Application runs here

    services.close()
    await dispose_engine()
    logger.info("%s shutdown complete", settings.PROJECT_NAME)


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Personal notes with semantic retrieval and chat.",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(notes_router, prefix="/api/v1/notes", tags=["Notes"])
app.include_router(chat_router, prefix="/api/v1/chat", tags=["Chat"])


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(ConversationBusy)
async def busy_handler(request: Request, exc: ConversationBusy) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(ServiceUnavailable)
async def unavailable_handler(request: Request, exc: ServiceUnavailable) -> JSONResponse:
    # 503: upstream AI service down or not configured
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": exc.detail or str(exc), "service": exc.service},
    )


@app.exception_handler(EmptyResponse)
async def empty_response_handler(request: Request, exc: EmptyResponse) -> JSONResponse:
    # 502 Bad Gateway: upstream answered without a usable reply
    return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={"detail": str(exc)})


@app.get("/health")
async def health_check(request: Request) -> dict[str, str]:
    """Health check for load balancers and orchestrators."""
    registry: ChatSessionRegistry | None = getattr(request.app.state, "chat_sessions", None)
    return {
        "status": "ok",
        "service": "notia",
        "environment": os.getenv("ENVIRONMENT", "local"),
        "chat": registry.engine.state.value if registry else "uninitialized",
    }
