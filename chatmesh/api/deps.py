# =============================================================================
# API Dependencies — FastAPI Dependency Injection
# =============================================================================
#
# The lifespan in chatmesh.main builds the long-lived objects (registry,
# orchestrator, chat service) once and stores them on app.state. Route
# handlers get them through these dependencies, which tests replace via
# app.dependency_overrides.
# =============================================================================

from __future__ import annotations

from fastapi import HTTPException, Request

from chatmesh.agents.registry import AgentRegistry
from chatmesh.services.chat import ChatService


def get_chat_service(request: Request) -> ChatService:
    service = getattr(request.app.state, "chat_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Chat service is not initialized")
    return service


def get_registry(request: Request) -> AgentRegistry | None:
    return getattr(request.app.state, "registry", None)
