# =============================================================================
# chatmesh — Multi-Agent Conversational Assistant
# =============================================================================
# A registry of cooperating agents behind one chat endpoint. Each message
# is routed by a confidence-gated LangGraph: cheap heuristics first, then
# an LLM routing prediction, then single or parallel execution with a
# completeness score as the tie-breaker.
#
# Package structure:
#   chatmesh/
#   ├── agents/       → registry, orchestrator, routing heuristics, agents
#   ├── api/          → FastAPI route handlers (chat, history, health)
#   ├── db/           → async SQLAlchemy engine and chat history models
#   ├── models/       → Pydantic V2 request/response schemas
#   └── services/     → LLM providers, chat service, history, formatter,
#                        language utilities, embeddings, document store
# =============================================================================
