# =============================================================================
# Health API — Service Info and Liveness
# =============================================================================
#
#   GET /                 API information and route map
#   GET /api/health       liveness + selected provider info (no upstream call)
#   GET /api/health/llm   runs the provider's connection check
# =============================================================================

from __future__ import annotations

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends

from qa_service.api.deps import get_llm_client, get_settings_dep
from qa_service.config import Settings
from qa_service.models.responses import (
    ApiInfoResponse,
    HealthResponse,
    LLMCheckResponse,
)
from qa_service.services.exceptions import UpstreamError
from qa_service.services.llm import LLMClient

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

ENDPOINTS = {
    "GET /api/ask?prompt=": "Ask a question",
    "GET /api/ask/stream?prompt=": "Ask a question, stream the answer (SSE)",
    "GET /api/records": "List all records",
    "GET /api/records/{id}": "Get one record",
    "POST /api/auth/register": "Register a user and get an API key",
    "GET /api/user/profile": "Current user's profile (auth required)",
    "GET /api/user/records": "Current user's records (auth required)",
    "GET /api/user/users": "List registered users (auth required)",
    "GET /api/health": "Health check",
    "GET /api/health/llm": "LLM provider connection check",
}


@router.get("/", response_model=ApiInfoResponse, summary="API information")
async def api_info(
    settings: Settings = Depends(get_settings_dep),
) -> ApiInfoResponse:
    return ApiInfoResponse(
        name=settings.app_name,
        version=settings.app_version,
        llm_mode=settings.llm_mode,
        endpoints=ENDPOINTS,
    )


@router.get("/api/health", response_model=HealthResponse, summary="Health check")
async def health(
    llm_client: LLMClient = Depends(get_llm_client),
) -> HealthResponse:
    return HealthResponse(
        timestamp=datetime.now(UTC),
        services={"database": "ok", "llm": "ok"},
        llm_provider=llm_client.provider_info(),
    )


@router.get(
    "/api/health/llm",
    response_model=LLMCheckResponse,
    summary="Check the LLM provider connection",
)
async def llm_health(
    llm_client: LLMClient = Depends(get_llm_client),
) -> LLMCheckResponse:
    """Always 200; `status` tells whether the provider answered."""
    try:
        await llm_client.check_connection()
    except UpstreamError as e:
        logger.warning("LLM connection check failed: %s", e.message)
        return LLMCheckResponse(
            provider=llm_client.provider.name, status="error", detail=e.message,
        )
    return LLMCheckResponse(provider=llm_client.provider.name, status="ok")
