# =============================================================================
# Unit Tests — Storage (ChromaDB document store + SQL chat history)
# =============================================================================
#
# ChromaDocumentStore runs against ChromaDB's in-process mode; every test
# uses its own user id, so collections never collide.
# SqlChatHistory runs against a throwaway SQLite file via aiosqlite, with
# the schema created from the ORM models. The embedding helpers run
# against a mocked OpenAI client.
# =============================================================================

from __future__ import annotations

import asyncio
import uuid
from types import SimpleNamespace
from unittest.mock import MagicMock

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from chatmesh.db.models import Base
from chatmesh.services.embedder import OpenAIEmbedder, embed_batch
from chatmesh.services.history import InMemoryChatHistory, SqlChatHistory
from chatmesh.services.vectorstore import ChromaDocumentStore, _sanitise_metadata, collection_name


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _user() -> str:
    return uuid.uuid4().hex[:12]


# ---------------------------------------------------------------------------
# Test: ChromaDocumentStore
# ---------------------------------------------------------------------------


class TestChromaDocumentStore:
    """Tests for ChromaDocumentStore (in-process mode)."""

    def test_collection_name(self):
        assert collection_name("42") == "user_42"

    def test_sanitise_metadata(self):
        meta = {"page": 1, "title": "Q3", "tags": ["a", "b"], "missing": None}
        assert _sanitise_metadata(meta) == {"page": 1, "title": "Q3", "tags": "['a', 'b']"}

    def test_add_chunks_returns_count(self):
        store = ChromaDocumentStore()
        count = store.add_chunks(
            _user(),
            "report.pdf",
            ["Hello world", "Goodbye world"],
            [[0.1, 0.2, 0.3], [0.3, 0.2, 0.1]],
        )
        assert count == 2

    def test_search_ranks_by_similarity(self):
        store = ChromaDocumentStore()
        user = _user()
        store.add_chunks(
            user,
            "report.pdf",
            ["Revenue increased by 15%", "Expenses decreased by 5%"],
            [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]],
            [{"page_number": 1}, {"page_number": 2}],
        )

        chunks = _run(store.similarity_search(user, [0.9, 0.1, 0.0], k=2))

        assert [c.content for c in chunks] == [
            "Revenue increased by 15%", "Expenses decreased by 5%",
        ]
        assert chunks[0].similarity_score > chunks[1].similarity_score
        assert chunks[0].metadata["source"] == "report.pdf"
        assert chunks[0].metadata["page_number"] == 1

    def test_k_limits_results(self):
        store = ChromaDocumentStore()
        user = _user()
        store.add_chunks(
            user, "a.txt", ["one", "two", "three"],
            [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]],
        )
        assert len(_run(store.similarity_search(user, [1.0, 0.0, 0.0], k=1))) == 1

    def test_users_are_isolated(self):
        store = ChromaDocumentStore()
        alice, bob = _user(), _user()
        store.add_chunks(alice, "secret.pdf", ["alice only"], [[1.0, 0.0, 0.0]])
        store.add_chunks(bob, "notes.txt", ["bob only"], [[1.0, 0.0, 0.0]])

        chunks = _run(store.similarity_search(bob, [1.0, 0.0, 0.0], k=5))
        assert [c.content for c in chunks] == ["bob only"]

    def test_readding_source_upserts(self):
        store = ChromaDocumentStore()
        user = _user()
        store.add_chunks(user, "doc.pdf", ["old text"], [[1.0, 0.0, 0.0]])
        store.add_chunks(user, "doc.pdf", ["new text"], [[1.0, 0.0, 0.0]])
        chunks = _run(store.similarity_search(user, [1.0, 0.0, 0.0], k=5))
        assert [c.content for c in chunks] == ["new text"]

    def test_unknown_user_has_no_documents(self):
        store = ChromaDocumentStore()
        assert _run(store.similarity_search(_user(), [1.0, 0.0, 0.0])) == []


# ---------------------------------------------------------------------------
# Test: Chat History
# ---------------------------------------------------------------------------


class TestInMemoryChatHistory:
    def test_recent_messages_oldest_first(self):
        history = InMemoryChatHistory()

        async def go():
            for i in range(5):
                await history.add_message("s1", "human", f"message {i}")
            return await history.get_recent_messages("s1", limit=3)

        messages = _run(go())
        assert [m.content for m in messages] == ["message 2", "message 3", "message 4"]

    def test_sessions_are_separate(self):
        history = InMemoryChatHistory()

        async def go():
            await history.add_message("s1", "human", "hello")
            await history.add_message("s2", "human", "hola")
            return await history.get_recent_messages("s2")

        assert [m.content for m in _run(go())] == ["hola"]

    def test_session_history_keeps_agent(self):
        history = InMemoryChatHistory()

        async def go():
            await history.add_message("s1", "ai", "Sunny.", agent_name="weather", confidence=0.9)
            return await history.get_session_history("s1")

        stored = _run(go())
        assert stored[0].agent_name == "weather"
        assert stored[0].confidence == 0.9

    def test_unknown_session_is_empty(self):
        assert _run(InMemoryChatHistory().get_recent_messages("nope")) == []


class TestSqlChatHistory:
    """SqlChatHistory against a temporary SQLite database."""

    @staticmethod
    async def _with_history(tmp_path, scenario):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'chat.db'}")
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
            return await scenario(SqlChatHistory(factory))
        finally:
            await engine.dispose()

    def test_add_and_read_back(self, tmp_path):
        async def scenario(history):
            await history.add_message("s1", "human", "What's the weather?", user_id="u1")
            await history.add_message(
                "s1", "ai", "Sunny in Paris.", agent_name="weather", confidence=0.9,
            )
            return await history.get_recent_messages("s1")

        messages = _run(self._with_history(tmp_path, scenario))

        assert [(m.role, m.content) for m in messages] == [
            ("human", "What's the weather?"),
            ("ai", "Sunny in Paris."),
        ]

    def test_limit_returns_latest_oldest_first(self, tmp_path):
        async def scenario(history):
            for i in range(6):
                await history.add_message("s1", "human", f"m{i}")
            return await history.get_recent_messages("s1", limit=2)

        messages = _run(self._with_history(tmp_path, scenario))
        assert [m.content for m in messages] == ["m4", "m5"]

    def test_session_history_includes_agent_columns(self, tmp_path):
        async def scenario(history):
            await history.add_message("s1", "human", "hi")
            await history.add_message("s1", "ai", "Hello!", agent_name="general", confidence=0.75)
            return await history.get_session_history("s1")

        stored = _run(self._with_history(tmp_path, scenario))

        assert [m.role for m in stored] == ["human", "ai"]
        assert stored[1].agent_name == "general"
        assert stored[1].confidence == 0.75
        assert stored[1].created_at is not None

    def test_zero_limit(self, tmp_path):
        async def scenario(history):
            await history.add_message("s1", "human", "hi")
            return await history.get_recent_messages("s1", limit=0)

        assert _run(self._with_history(tmp_path, scenario)) == []


# ---------------------------------------------------------------------------
# Test: Embeddings
# ---------------------------------------------------------------------------


def _embedding_client(*batches):
    """Mock OpenAI client; each create() call returns the next batch."""
    client = MagicMock()
    client.embeddings.create.side_effect = [
        SimpleNamespace(data=[SimpleNamespace(index=i, embedding=e) for i, e in batch])
        for batch in batches
    ]
    return client


class TestEmbedder:
    def test_order_follows_item_index(self):
        client = _embedding_client([(1, [0.2]), (0, [0.1])])
        assert embed_batch(["a", "b"], client=client) == [[0.1], [0.2]]

    def test_sub_batches(self):
        client = _embedding_client([(0, [0.1]), (1, [0.2])], [(0, [0.3])])
        assert embed_batch(["a", "b", "c"], batch_size=2, client=client) == [[0.1], [0.2], [0.3]]
        assert client.embeddings.create.call_count == 2
        assert client.embeddings.create.call_args_list[1].kwargs["input"] == ["c"]

    def test_empty_input_skips_api(self):
        client = _embedding_client()
        assert embed_batch([], client=client) == []
        client.embeddings.create.assert_not_called()

    def test_async_facade(self):
        client = _embedding_client([(0, [0.5, 0.5])])
        assert _run(OpenAIEmbedder(client).embed_query("revenue")) == [0.5, 0.5]
