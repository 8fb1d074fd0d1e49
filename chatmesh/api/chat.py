# =============================================================================
# Chat API — Conversational Endpoint + History
# =============================================================================
#
# POST /chat                       → route one message, return the reply
# GET  /chat/history/{session_id}  → every stored turn of a session
# GET  /health                     → liveness + number of agents
#
# This module only validates requests and maps responses.
# Routing never fails the request. When no agent can answer, the reply is
# the fallback apology with agent "fallback" and HTTP 200; only malformed
# requests produce errors (422 from Pydantic).
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from chatmesh.agents.registry import AgentRegistry
from chatmesh.api.deps import get_chat_service, get_registry
from chatmesh.config import settings
from chatmesh.models.requests import ChatRequest
from chatmesh.models.responses import (
    ChatHistoryResponse,
    ChatMessageResponse,
    ChatResponse,
    HealthResponse,
)
from chatmesh.services.chat import ChatService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Chat"])


@router.post(
    "/chat",
    response_model=ChatResponse,
    summary="Send a chat message",
    description=(
        "Routes the message to the best-suited agent (general conversation, "
        "research, weather, time, document search, ...) and returns its reply."
    ),
)
async def chat_endpoint(
    request: ChatRequest,
    service: ChatService = Depends(get_chat_service),
) -> ChatResponse:
    logger.info(
        "Chat request: session=%s, message='%s'",
        request.session_id,
        request.message[:80],
    )
    reply = await service.process_chat(
        request.message, request.session_id, user_id=request.user_id,
    )
    return ChatResponse(
        reply=reply.reply,
        agent=reply.agent,
        confidence=min(1.0, max(0.0, reply.confidence)),
        session_id=reply.session_id,
    )


@router.get(
    "/chat/history/{session_id}",
    response_model=ChatHistoryResponse,
    summary="Get the message history of a chat session",
)
async def chat_history_endpoint(
    session_id: str,
    service: ChatService = Depends(get_chat_service),
) -> ChatHistoryResponse:
    messages = await service.get_history(session_id)
    return ChatHistoryResponse(
        session_id=session_id,
        messages=[ChatMessageResponse.model_validate(m) for m in messages],
    )


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(
    registry: AgentRegistry | None = Depends(get_registry),
) -> HealthResponse:
    return HealthResponse(
        status="ok",
        version=settings.app_version,
        service=settings.app_name,
        agents=len(registry) if registry is not None else 0,
    )
