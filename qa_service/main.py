# =============================================================================
# Application Entry Point — FastAPI App Factory
# =============================================================================
#
# create_app(settings) wires everything from one explicit Settings object:
#
#   lifespan startup
#   ├── async engine + session factory      (db/engine.py)
#   ├── create missing tables
#   ├── LLMClient (provider chosen by LLM_PROVIDER)
#   ├── SQLAlchemyQAStorage
#   ├── QueryOrchestrator(storage, llm_client)
#   └── provider connection check (logged, never fatal)
#
# All of these live on app.state and are reached through api/deps.py.
#
# Run locally:
#   uvicorn qa_service.main:app --reload
# =============================================================================

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from qa_service.api.ask import router as ask_router
from qa_service.api.health import router as health_router
from qa_service.api.middleware import RequestLoggingMiddleware
from qa_service.api.records import router as records_router
from qa_service.api.users import router as users_router
from qa_service.config import Settings, get_settings
from qa_service.db.engine import create_engine, create_session_factory, init_models
from qa_service.logging_config import configure_logging
from qa_service.services.exceptions import UpstreamError
from qa_service.services.llm import LLMClient
from qa_service.services.orchestrator import QueryOrchestrator
from qa_service.services.storage import SQLAlchemyQAStorage

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    llm_client: LLMClient | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    `llm_client` replaces the one built from settings (tests use it to
    plug in a fake streaming provider).
    """
    settings = settings or get_settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "%s v%s starting (%s, provider=%s)",
            settings.app_name,
            settings.app_version,
            settings.llm_mode,
            settings.llm_provider,
        )

        engine = create_engine(settings.database_url, echo=settings.debug)
        await init_models(engine)
        session_factory = create_session_factory(engine)

        client = llm_client or LLMClient.from_settings(settings)
        storage = SQLAlchemyQAStorage(session_factory)

        app.state.settings = settings
        app.state.engine = engine
        app.state.session_factory = session_factory
        app.state.llm_client = client
        app.state.storage = storage
        app.state.orchestrator = QueryOrchestrator(storage, client)

        try:
            await client.check_connection()
            logger.info("LLM provider reachable: %s", client.provider.name)
        except UpstreamError as e:
            logger.warning(
                "LLM provider check failed (%s); requests may fail: %s",
                client.provider.name, e.message,
            )

        yield

        logger.info("Shutting down...")
        await client.aclose()
        await engine.dispose()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "Question answering over pluggable LLM providers, with "
            "Server-Sent-Events streaming and persisted question/answer records."
        ),
        lifespan=lifespan,
    )

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Type"],
    )

    app.include_router(health_router)
    app.include_router(ask_router)
    app.include_router(records_router)
    app.include_router(users_router)

    return app


app = create_app()
