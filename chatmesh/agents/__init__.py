# =============================================================================
# Agents Package — Registry, Routing, and Concrete Agents
# =============================================================================
#   - types.py / errors.py: AgentContext, AgentResult, Agent protocol, errors
#   - registry.py: name → agent map and call_agent() delegation
#   - orchestrator.py: LangGraph confidence-gated routing
#   - prediction.py / classification.py / scoring.py: routing heuristics
#   - general, routing, research, summarizer, location (weather/time),
#     tools, documents, code, subject: concrete agents
#   - defaults.py: the production agent set
# =============================================================================
