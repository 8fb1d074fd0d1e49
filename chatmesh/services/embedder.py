# =============================================================================
# Embedding Service — Query & Chunk Vectors (Provider-Agnostic)
# =============================================================================
#
# Generates embeddings with any OpenAI-compatible embeddings endpoint
# (OpenAI, DashScope, local gateways) for the document_search agent.
#
# DESIGN DECISION: OpenAI SDK with configurable base_url.
# Most providers expose the OpenAI embeddings API; EMBEDDING_BASE_URL
# switches between them with zero code changes.
#
# DESIGN DECISION: Sync client behind an async facade.
# The sync OpenAI client is created once and reused. Agents run inside the
# event loop, so OpenAIEmbedder pushes calls to a worker thread with
# asyncio.to_thread(), the same way ChromaDocumentStore wraps Chroma.
#
# API key resolution order:
#   1. OPENAI_API_KEY (explicit embedding key)
#   2. LLM_API_KEY (shared key)
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Protocol

from openai import OpenAI

from chatmesh.config import settings

logger = logging.getLogger(__name__)

EMBEDDING_BATCH_SIZE = 100


class Embedder(Protocol):
    """Anything that can turn text into vectors for similarity search."""

    async def embed_query(self, text: str) -> list[float]:
        ...

    async def embed_documents(self, texts: Sequence[str]) -> list[list[float]]:
        ...


# ---------------------------------------------------------------------------
# Embedding Client — Lazy Singleton
# ---------------------------------------------------------------------------

_client: OpenAI | None = None


def _get_client() -> OpenAI:
    """Lazily initialize and cache the embedding client."""
    global _client
    if _client is None:
        resolved_key = settings.openai_api_key or settings.llm_api_key
        if not resolved_key:
            raise ValueError(
                "No API key configured for embeddings. "
                "Set OPENAI_API_KEY or LLM_API_KEY in .env"
            )

        client_kwargs: dict = {"api_key": resolved_key}
        if settings.embedding_base_url:
            client_kwargs["base_url"] = settings.embedding_base_url

        _client = OpenAI(**client_kwargs)

        logger.info(
            "Initialized embedding client (model=%s, base_url=%s)",
            settings.embedding_model,
            settings.embedding_base_url or "https://api.openai.com/v1",
        )
    return _client


# ---------------------------------------------------------------------------
# Sync API
# ---------------------------------------------------------------------------


def embed_batch(
    texts: Sequence[str],
    batch_size: int = EMBEDDING_BATCH_SIZE,
    client: OpenAI | None = None,
) -> list[list[float]]:
    """
    Embed texts in sub-batches, preserving input order.

    Raises:
        ValueError: If no API key is configured.
        openai.APIError: If the embeddings call fails.
    """
    if not texts:
        return []

    client = client or _get_client()
    all_embeddings: list[list[float]] = [[] for _ in texts]

    for start in range(0, len(texts), batch_size):
        batch = list(texts[start : start + batch_size])
        create_kwargs: dict = {"model": settings.embedding_model, "input": batch}
        if settings.embedding_dimensions:
            create_kwargs["dimensions"] = settings.embedding_dimensions

        response = client.embeddings.create(**create_kwargs)

        # Items carry their index; sort so output order matches input order
        for item in sorted(response.data, key=lambda x: x.index):
            all_embeddings[start + item.index] = item.embedding

    logger.debug(
        "Generated %d embeddings (model=%s)", len(texts), settings.embedding_model,
    )
    return all_embeddings


def embed_query(text: str, client: OpenAI | None = None) -> list[float]:
    """Embed a single query string."""
    return embed_batch([text], batch_size=1, client=client)[0]


# ---------------------------------------------------------------------------
# Async Facade
# ---------------------------------------------------------------------------


class OpenAIEmbedder:
    """Embedder backed by the OpenAI-compatible embeddings API."""

    def __init__(self, client: OpenAI | None = None) -> None:
        self._client = client

    async def embed_query(self, text: str) -> list[float]:
        return await asyncio.to_thread(embed_query, text, self._client)

    async def embed_documents(self, texts: Sequence[str]) -> list[list[float]]:
        return await asyncio.to_thread(embed_batch, texts, EMBEDDING_BATCH_SIZE, self._client)
