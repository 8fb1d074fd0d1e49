# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# Shape of data coming INTO the API. FastAPI validates request bodies
# against these (automatic 422 on invalid data) and publishes them in
# the OpenAPI docs at /docs.
# =============================================================================

from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    """
    Request body for POST /chat — one user message in a chat session.

    Example:
        {
            "message": "What's the weather in Santo Domingo?",
            "session_id": "5f0c7d2e",
            "user_id": "u-42"
        }
    """

    message: str = Field(
        ...,
        min_length=1,
        max_length=8000,
        description="The user's message",
        examples=["What's the weather in Santo Domingo?"],
    )

    # Client-generated; the same id continues the same conversation
    session_id: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Chat session identifier",
        examples=["5f0c7d2e"],
    )

    # Needed for document search over the user's uploaded documents
    user_id: str | None = Field(
        default=None,
        max_length=255,
        description="Owner of the session; enables document search when set",
        examples=["u-42"],
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {"message": "hola!", "session_id": "5f0c7d2e"},
                {
                    "message": "What does my uploaded contract say about termination?",
                    "session_id": "5f0c7d2e",
                    "user_id": "u-42",
                },
            ]
        }
    )
