# =============================================================================
# Services Package — Business Logic
# =============================================================================
# Contains the query pipeline, separated from API handlers:
#   - exceptions.py: request-scoped error taxonomy
#   - llm.py: LLMClient — selects one provider at startup, uniform contract
#   - storage.py: QAStorage protocol + SQLAlchemy implementation
#   - orchestrator.py: per-request state machine (persist → answer/stream →
#     finalize), cancellation and failure recovery
#   - events.py: SSE event formatting for the streaming endpoint
#   - auth.py: API key generation & hashing
# =============================================================================
