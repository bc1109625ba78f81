# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Request/response schemas for the HTTP API, kept separate from the ORM
# models in qa_service/db/models.py so the stored API key hash never
# reaches a response body.
# =============================================================================
