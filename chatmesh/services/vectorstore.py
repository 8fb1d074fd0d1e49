# =============================================================================
# Document Store — Per-User Vector Search over Uploaded Documents
# =============================================================================
#
# Backs the document_search agent. Each user's uploaded document chunks
# live in their own Chroma collection named "user_<user_id>", so one
# user's search can never surface another user's documents.
#
# DESIGN DECISION: Protocol (structural typing) over ABC.
# The agent only needs similarity_search(); tests pass a tiny fake with
# the same method instead of running Chroma.
#
# DESIGN DECISION: Sync Chroma client wrapped in asyncio.to_thread().
# chromadb's Python client is synchronous. Searches run in a worker
# thread so they never block the event loop.
#
# ChromaDB supports both in-process and client/server modes:
# - In-process (default): no extra infra
# - Client/server: set CHROMA_URL
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

import chromadb

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class DocumentChunk:
    """One retrieved chunk with its similarity to the query."""

    content: str
    similarity_score: float  # 1 - cosine distance, higher = more relevant
    metadata: dict = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class DocumentStore(Protocol):
    async def similarity_search(
        self,
        user_id: str,
        query_embedding: list[float],
        k: int = 15,
    ) -> list[DocumentChunk]:
        """
        Return up to k chunks from the user's documents, most similar first.
        Users without any documents get an empty list.
        """
        ...


def collection_name(user_id: str) -> str:
    return f"user_{user_id}"


def _sanitise_metadata(meta: dict) -> dict[str, Any]:
    """Chroma metadata values must be str, int, float or bool."""
    clean: dict[str, Any] = {}
    for key, value in meta.items():
        if value is None:
            continue
        if isinstance(value, (str, int, float, bool)):
            clean[key] = value
        else:
            clean[key] = str(value)
    return clean


# ---------------------------------------------------------------------------
# Implementation: ChromaDB
# ---------------------------------------------------------------------------


class ChromaDocumentStore:
    def __init__(
        self,
        chroma_url: str | None = None,
        client: Any | None = None,
    ) -> None:
        if client is not None:
            self._client = client
        elif chroma_url:
            self._client = chromadb.HttpClient(host=chroma_url)
        else:
            self._client = chromadb.Client()

    def _collection(self, user_id: str, create: bool = False):
        name = collection_name(user_id)
        if create:
            return self._client.get_or_create_collection(
                name=name, metadata={"hnsw:space": "cosine"},
            )
        return self._client.get_collection(name=name)

    def add_chunks(
        self,
        user_id: str,
        source: str,
        contents: Sequence[str],
        embeddings: Sequence[list[float]],
        metadatas: Sequence[dict] | None = None,
    ) -> int:
        """
        Store chunks of one uploaded document. Sync (ingestion runs
        outside the request path). Re-adding the same source upserts.
        """
        metadatas = metadatas or [{} for _ in contents]
        ids = [f"{source}_chunk{i}" for i in range(len(contents))]
        enriched = [
            _sanitise_metadata({**meta, "source": source, "chunk_index": i})
            for i, meta in enumerate(metadatas)
        ]
        self._collection(user_id, create=True).upsert(
            ids=ids,
            documents=list(contents),
            embeddings=list(embeddings),
            metadatas=enriched,
        )
        logger.info(
            "Stored %d chunks from '%s' for user %s", len(ids), source, user_id,
        )
        return len(ids)

    async def similarity_search(
        self,
        user_id: str,
        query_embedding: list[float],
        k: int = 15,
    ) -> list[DocumentChunk]:
        def _sync_search() -> list[DocumentChunk]:
            try:
                collection = self._collection(user_id)
            except Exception:
                # chromadb raises different types across versions for a
                # missing collection; every one means "no documents yet".
                logger.info("No document collection for user %s", user_id)
                return []

            count = collection.count()
            if count == 0:
                return []

            results = collection.query(
                query_embeddings=[query_embedding],
                n_results=min(k, count),
                include=["documents", "metadatas", "distances"],
            )

            chunks: list[DocumentChunk] = []
            if results and results["ids"] and results["ids"][0]:
                for i in range(len(results["ids"][0])):
                    distance = results["distances"][0][i] if results["distances"] else 0.0
                    chunks.append(DocumentChunk(
                        content=results["documents"][0][i] if results["documents"] else "",
                        similarity_score=round(1.0 - distance, 4),
                        metadata=(results["metadatas"][0][i] or {}) if results["metadatas"] else {},
                    ))
            return chunks

        return await asyncio.to_thread(_sync_search)
