# =============================================================================
# Database Package
# =============================================================================
# Async SQLAlchemy engine, session scope, and chat history ORM models
# (ChatSession, Message).
# =============================================================================
