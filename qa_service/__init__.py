# =============================================================================
# LLM Q&A Service
# =============================================================================
# Answers questions through one configured LLM provider, either in a single
# round trip or streamed to the client as Server-Sent Events. Every question
# and its final answer is stored as a record.
#
# Package structure:
#   qa_service/
#   ├── api/          → FastAPI route handlers (ask, records, users, health)
#   ├── db/           → Database engine, session, and ORM models
#   ├── models/       → Pydantic V2 request/response schemas
#   ├── providers/    → Vendor LLM backends and the upstream SSE decoder
#   ├── services/     → Query pipeline (LLM client, storage, orchestrator,
#   │                    outbound events, auth)
#   ├── config.py     → Settings
#   └── main.py       → create_app()
# =============================================================================
