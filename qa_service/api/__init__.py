# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
# Each module defines an APIRouter for one feature:
#   - ask.py: question answering, plain JSON and SSE streaming
#   - records.py: stored question/answer records
#   - users.py: registration, profile, the caller's own records
#   - health.py: API info, health, provider connection check
#   - deps.py: caller identity + access to shared services on app.state
#   - middleware.py: per-request logging
# =============================================================================
