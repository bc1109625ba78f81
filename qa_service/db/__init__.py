# =============================================================================
# Database Package
# =============================================================================
# Provides the async SQLAlchemy engine, session management, and ORM models.
#
# Key exports:
#   - create_engine / create_session_factory / init_models: used by create_app()
#   - get_async_session: FastAPI dependency for database sessions
#   - User, QARecord: ORM models for callers and question/answer records
# =============================================================================
