# =============================================================================
# Chat Service — One User Message In, One Agent Reply Out
# =============================================================================
#
# FLOW (per message):
#   1. Take the session lock (messages of one session run in order)
#   2. Read the recent history for the session
#   3. Build the AgentContext (LLM, topic, user, capabilities)
#   4. Route across every registered agent except the internal ones
#   5. Persist the human message and the winning reply
#
# The API layer stays thin: request validation and response mapping
# only. Everything conversational happens here and in the agents package.
#
# DESIGN DECISION: History persistence is best-effort.
# The user already has an answer by the time it is saved; a database
# hiccup is logged with its traceback and the reply is still returned.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from chatmesh.agents.orchestrator import AgentOrchestrator
from chatmesh.agents.types import AgentContext
from chatmesh.services.history import ChatHistoryStore
from chatmesh.services.llm import LLMProvider
from chatmesh.services.locks import SessionLocks

logger = logging.getLogger(__name__)


@dataclass
class ChatReply:
    reply: str
    agent: str
    confidence: float
    session_id: str
    metadata: dict[str, Any] = field(default_factory=dict)


class ChatService:
    def __init__(
        self,
        orchestrator: AgentOrchestrator,
        history: ChatHistoryStore,
        llm: LLMProvider | None = None,
        locks: SessionLocks | None = None,
        capabilities: Mapping[str, Any] | None = None,
        chat_default_topic: str | None = None,
        history_limit: int = 20,
    ) -> None:
        self.orchestrator = orchestrator
        self.history = history
        self.llm = llm
        self.locks = locks or SessionLocks()
        self.capabilities = dict(capabilities or {})
        self.chat_default_topic = chat_default_topic
        self.history_limit = history_limit

    def build_context(
        self,
        message: str,
        session_id: str,
        user_id: str | None,
        chat_history: list,
    ) -> AgentContext:
        return AgentContext(
            session_id=session_id,
            input=message,
            chat_history=chat_history,
            llm=self.llm,
            user_id=user_id,
            chat_default_topic=self.chat_default_topic,
            capabilities=self.capabilities,
        )

    async def process_chat(
        self,
        message: str,
        session_id: str,
        user_id: str | None = None,
    ) -> ChatReply:
        async with self.locks.hold(session_id):
            chat_history = await self.history.get_recent_messages(
                session_id, self.history_limit,
            )
            logger.info(
                "Processing message for session %s (%d history messages)",
                session_id, len(chat_history),
            )

            context = self.build_context(message, session_id, user_id, chat_history)
            outcome = await self.orchestrator.route_by_confidence(None, message, context)

            try:
                await self.history.add_message(session_id, "human", message, user_id=user_id)
                await self.history.add_message(
                    session_id,
                    "ai",
                    outcome.result.output,
                    agent_name=outcome.agent,
                    confidence=outcome.result.confidence,
                    user_id=user_id,
                )
            except Exception:
                logger.exception("Failed to persist chat history for session %s", session_id)

        return ChatReply(
            reply=outcome.result.output,
            agent=outcome.agent,
            confidence=outcome.result.confidence,
            session_id=session_id,
            metadata={"candidates": sorted(outcome.all)},
        )

    async def get_history(self, session_id: str):
        return await self.history.get_session_history(session_id)
