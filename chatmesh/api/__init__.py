# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
#   - chat.py: POST /chat, GET /chat/history/{session_id}, GET /health
#   - deps.py: dependencies resolving app.state services
# =============================================================================
