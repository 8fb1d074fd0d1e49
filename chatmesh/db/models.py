# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# Chat history persisted by SqlChatHistory.
#
# SCHEMA OVERVIEW:
#
# ┌──────────────────┐       ┌─────────────────────────────────────┐
# │  chat_sessions   │       │  chat_messages                      │
# ├──────────────────┤       ├─────────────────────────────────────┤
# │ id (PK, str)     │──1:N─▶│ id (PK)                             │
# │ user_id          │       │ session_id (FK → chat_sessions.id)  │
# │ created_at       │       │ role ("human" | "ai" | "system")    │
# │ updated_at       │       │ content (text)                      │
# └──────────────────┘       │ agent_name (nullable)               │
#                            │ confidence (nullable)               │
#                            │ created_at                          │
#                            └─────────────────────────────────────┘
#
# DESIGN DECISIONS:
#
# 1. Session ids are client-supplied strings. The API creates the
#    chat_sessions row on the first message of a session.
#
# 2. agent_name / confidence are stored on "ai" rows so the history
#    endpoint can show which agent answered each turn.
#
# 3. Composite index (session_id, created_at) serves the only hot query:
#    "latest N messages of a session".
# =============================================================================

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Declarative base for all chatmesh ORM models."""

    pass


class ChatSession(Base):
    __tablename__ = "chat_sessions"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    user_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    messages: Mapped[list["Message"]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="Message.id",
    )

    def __repr__(self) -> str:
        return f"<ChatSession(id={self.id!r}, user_id={self.user_id!r})>"


class Message(Base):
    __tablename__ = "chat_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("chat_sessions.id", ondelete="CASCADE"),
        nullable=False,
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    agent_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False,
    )

    session: Mapped[ChatSession] = relationship(back_populates="messages")

    def __repr__(self) -> str:
        return f"<Message(id={self.id}, session={self.session_id!r}, role={self.role!r})>"


chat_message_session_idx = Index(
    "ix_chat_messages_session_created",
    Message.session_id,
    Message.created_at,
)
