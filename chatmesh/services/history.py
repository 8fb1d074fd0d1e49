# =============================================================================
# Chat History Store — Recent Turns for Agent Context
# =============================================================================
#
# The chat service reads the latest N messages of a session before
# routing, and appends the human message plus the agent's reply after.
#
# DESIGN DECISION: Protocol with two implementations.
#   - SqlChatHistory: async SQLAlchemy (chat_sessions / chat_messages)
#   - InMemoryChatHistory: dict of lists, for dev and tests
# HISTORY_BACKEND selects one at startup (see chatmesh.main).
# =============================================================================

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chatmesh.agents.types import ChatMessage
from chatmesh.db.engine import session_scope
from chatmesh.db.models import ChatSession, Message

logger = logging.getLogger(__name__)


@dataclass
class StoredMessage:
    """A persisted turn, including which agent produced it."""

    role: str
    content: str
    agent_name: str | None = None
    confidence: float | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_chat_message(self) -> ChatMessage:
        return ChatMessage(role=self.role, content=self.content)


class ChatHistoryStore(Protocol):
    async def get_recent_messages(self, session_id: str, limit: int = 20) -> list[ChatMessage]:
        """Latest `limit` messages of a session, oldest first."""
        ...

    async def add_message(
        self,
        session_id: str,
        role: str,
        content: str,
        agent_name: str | None = None,
        confidence: float | None = None,
        user_id: str | None = None,
    ) -> None:
        ...

    async def get_session_history(self, session_id: str) -> list[StoredMessage]:
        """Every message of a session, oldest first."""
        ...


# ---------------------------------------------------------------------------
# In-Memory Implementation
# ---------------------------------------------------------------------------


class InMemoryChatHistory:
    def __init__(self) -> None:
        self._sessions: dict[str, list[StoredMessage]] = defaultdict(list)

    async def get_recent_messages(self, session_id: str, limit: int = 20) -> list[ChatMessage]:
        messages = self._sessions.get(session_id, [])
        recent = messages[-limit:] if limit > 0 else []
        return [m.to_chat_message() for m in recent]

    async def add_message(
        self,
        session_id: str,
        role: str,
        content: str,
        agent_name: str | None = None,
        confidence: float | None = None,
        user_id: str | None = None,
    ) -> None:
        self._sessions[session_id].append(
            StoredMessage(role, content, agent_name=agent_name, confidence=confidence),
        )

    async def get_session_history(self, session_id: str) -> list[StoredMessage]:
        return list(self._sessions.get(session_id, []))


# ---------------------------------------------------------------------------
# SQL Implementation
# ---------------------------------------------------------------------------


class SqlChatHistory:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        # None = the shared engine from chatmesh.db.engine
        self._session_factory = session_factory

    async def get_recent_messages(self, session_id: str, limit: int = 20) -> list[ChatMessage]:
        if limit <= 0:
            return []
        async with session_scope(self._session_factory) as session:
            result = await session.execute(
                select(Message)
                .where(Message.session_id == session_id)
                .order_by(Message.id.desc())
                .limit(limit)
            )
            rows = list(result.scalars().all())
        rows.reverse()
        return [ChatMessage(role=row.role, content=row.content) for row in rows]

    async def add_message(
        self,
        session_id: str,
        role: str,
        content: str,
        agent_name: str | None = None,
        confidence: float | None = None,
        user_id: str | None = None,
    ) -> None:
        async with session_scope(self._session_factory) as session:
            chat_session = await session.get(ChatSession, session_id)
            if chat_session is None:
                session.add(ChatSession(id=session_id, user_id=user_id))
                logger.info("Created chat session %s", session_id)
            session.add(Message(
                session_id=session_id,
                role=role,
                content=content,
                agent_name=agent_name,
                confidence=confidence,
            ))

    async def get_session_history(self, session_id: str) -> list[StoredMessage]:
        async with session_scope(self._session_factory) as session:
            result = await session.execute(
                select(Message)
                .where(Message.session_id == session_id)
                .order_by(Message.id)
            )
            rows = result.scalars().all()
        return [
            StoredMessage(
                role=row.role,
                content=row.content,
                agent_name=row.agent_name,
                confidence=row.confidence,
                created_at=row.created_at,
            )
            for row in rows
        ]
