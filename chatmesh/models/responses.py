# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# Shape of data going OUT of the API. Routing internals (every candidate
# answer, call chains) stay server-side; clients see the reply, which
# agent produced it, and its confidence.
# =============================================================================

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    """Response for GET /health — confirms the API is running."""

    status: str = "ok"
    version: str
    service: str
    agents: int = Field(default=0, description="Number of registered agents")


class ChatResponse(BaseModel):
    """Response for POST /chat."""

    reply: str = Field(description="The answer shown to the user")
    agent: str = Field(
        description="Agent that produced the reply ('fallback' when routing failed)",
    )
    confidence: float = Field(ge=0.0, le=1.0)
    session_id: str


class ChatMessageResponse(BaseModel):
    role: str
    content: str
    agent_name: str | None = None
    confidence: float | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ChatHistoryResponse(BaseModel):
    """Response for GET /chat/history/{session_id}."""

    session_id: str
    messages: list[ChatMessageResponse]
