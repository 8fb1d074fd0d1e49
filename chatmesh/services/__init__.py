# =============================================================================
# Services Package — Business Logic
# =============================================================================
#   - llm.py: multi-provider LLM abstraction (Anthropic, OpenAI-compatible)
#   - chat.py: per-message flow (lock → history → route → persist)
#   - history.py / locks.py: chat history stores and per-session locks
#   - formatter.py / language.py: output cleanup and language enforcement
#   - embedder.py / vectorstore.py: embeddings and per-user document search
# =============================================================================
