# =============================================================================
# Application Entry Point — FastAPI App + Composition Root
# =============================================================================
#
# Run with:
#   uvicorn chatmesh.main:app --reload
#
# LIFESPAN (startup):
#   1. Shared httpx.AsyncClient for every HTTP tool agent
#   2. Agent registry with the default agent set
#   3. Orchestrator configured from settings
#   4. Chat history backend (sql | memory)
#   5. LLM provider + document-search capabilities
#   6. ChatService stored on app.state for the route handlers
#
# DESIGN DECISION: Missing LLM credentials don't stop the server.
# Without a key the provider can't be built; the app still starts, logs
# the problem, and agents answer with their no-LLM fallbacks while
# routing falls back to keyword classification.
# =============================================================================

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from chatmesh.agents.defaults import build_default_registry
from chatmesh.agents.orchestrator import AgentOrchestrator, RoutingConfig
from chatmesh.agents.types import DOCUMENT_STORE, EMBEDDER
from chatmesh.api.chat import router as chat_router
from chatmesh.config import Settings, get_settings
from chatmesh.db.engine import dispose_engine, get_async_engine
from chatmesh.db.models import Base
from chatmesh.services.chat import ChatService
from chatmesh.services.embedder import OpenAIEmbedder
from chatmesh.services.history import ChatHistoryStore, InMemoryChatHistory, SqlChatHistory
from chatmesh.services.llm import get_llm_provider
from chatmesh.services.locks import SessionLocks
from chatmesh.services.vectorstore import ChromaDocumentStore

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Install one stream handler on the root logger (idempotent)."""
    root = logging.getLogger()
    root.setLevel((level or get_settings().log_level).upper())
    if not any(getattr(h, "_chatmesh", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._chatmesh = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    # Chatty third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def build_history_store(settings: Settings) -> ChatHistoryStore:
    if settings.history_backend == "memory":
        logger.info("Using in-memory chat history")
        return InMemoryChatHistory()

    engine = get_async_engine(settings.database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Using SQL chat history")
    return SqlChatHistory()


def build_chat_service(
    settings: Settings,
    http_client: httpx.AsyncClient,
    history: ChatHistoryStore,
) -> ChatService:
    registry = build_default_registry(settings, http_client)
    orchestrator = AgentOrchestrator(registry, RoutingConfig.from_settings(settings))

    try:
        llm = get_llm_provider()
    except ValueError as e:
        logger.error("LLM provider unavailable, agents will run degraded: %s", e)
        llm = None

    return ChatService(
        orchestrator,
        history,
        llm=llm,
        locks=SessionLocks(),
        capabilities={
            DOCUMENT_STORE: ChromaDocumentStore(settings.chroma_url),
            EMBEDDER: OpenAIEmbedder(),
        },
        chat_default_topic=settings.chat_default_topic,
        history_limit=settings.history_limit,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info("Starting %s v%s", settings.app_name, settings.app_version)

    app.state.http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(settings.tool_http_timeout_seconds),
        limits=httpx.Limits(max_connections=50, max_keepalive_connections=10),
    )
    history = await build_history_store(settings)
    app.state.chat_service = build_chat_service(settings, app.state.http_client, history)
    app.state.registry = app.state.chat_service.orchestrator.registry

    yield

    logger.info("Shutting down %s", settings.app_name)
    await app.state.http_client.aclose()
    await dispose_engine()


def create_app() -> FastAPI:
    configure_logging()
    settings = get_settings()
    app = FastAPI(
        title=settings.app_name,
        description="Multi-agent conversational assistant with confidence-gated routing",
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.include_router(chat_router)
    return app


app = create_app()
