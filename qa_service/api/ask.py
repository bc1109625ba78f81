# =============================================================================
# Ask API — Question Answering Endpoints
# =============================================================================
#
#   GET /api/ask?prompt=...         one JSON answer
#   GET /api/ask/stream?prompt=...  Server-Sent Events (start, delta*, end|error)
#
# Both routes are thin: resolve the (optional) caller, hand the question to
# the QueryOrchestrator, translate the outcome.
#
# ERROR MAPPING:
#   Plain route   → ServiceError becomes HTTPException(err.http_status)
#                   (missing prompt 400, storage 500, provider 503)
#   Stream route  → the response is already 200 text/event-stream, so any
#                   failure is reported as exactly one `error` event
#
# CANCELLATION: the SSE body generator owns the cancellation token. When
# the client disconnects, Starlette cancels or closes the generator, whose
# `finally` sets the token; the orchestrator stops waiting and the upstream
# reader task is torn down.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse

from qa_service.api.deps import get_current_user, get_orchestrator
from qa_service.db.models import User
from qa_service.models.responses import AskResponse
from qa_service.services.events import (
    SSE_HEADERS,
    SSE_MEDIA_TYPE,
    error_event,
    format_sse,
)
from qa_service.services.exceptions import ServiceError
from qa_service.services.orchestrator import QueryOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Question Answering"])


# ---------------------------------------------------------------------------
# GET /api/ask — Ask a question
# ---------------------------------------------------------------------------


@router.get(
    "/ask",
    response_model=AskResponse,
    summary="Ask a question",
    description=(
        "Store the question, ask the configured LLM provider and return the "
        "stored record with its answer."
    ),
)
async def ask_endpoint(
    prompt: str | None = Query(default=None, description="The question to ask"),
    user: User | None = Depends(get_current_user),
    orchestrator: QueryOrchestrator = Depends(get_orchestrator),
) -> AskResponse:
    """
    Error handling:
    - Missing or blank prompt → 400
    - Question or answer could not be stored → 500
    - LLM provider failure → 503 (the record keeps a fixed error answer)
    """
    user_id = user.id if user else None
    logger.info(
        "Ask request: user_id=%s, question='%s'", user_id, (prompt or "")[:80],
    )

    try:
        result = await orchestrator.answer(prompt or "", user_id)
    except ServiceError as e:
        logger.error("Ask failed (%s): %s", e.code, e.message)
        raise HTTPException(status_code=e.http_status, detail=e.message) from e

    return AskResponse(
        id=result.record_id,
        question=result.question,
        answer=result.answer,
        user_id=result.user_id,
    )


# ---------------------------------------------------------------------------
# GET /api/ask/stream — Ask a question, stream the answer
# ---------------------------------------------------------------------------


@router.get(
    "/ask/stream",
    summary="Ask a question and stream the answer (SSE)",
    description=(
        "Server-Sent Events. Each event is a `data:` line holding a JSON "
        "object with `type` start, delta, end or error."
    ),
    response_class=StreamingResponse,
)
async def ask_stream_endpoint(
    prompt: str | None = Query(default=None, description="The question to ask"),
    user: User | None = Depends(get_current_user),
    orchestrator: QueryOrchestrator = Depends(get_orchestrator),
) -> StreamingResponse:
    user_id = user.id if user else None
    logger.info(
        "Stream request: user_id=%s, question='%s'", user_id, (prompt or "")[:80],
    )
    return StreamingResponse(
        _sse_body(orchestrator, prompt or "", user_id),
        media_type=SSE_MEDIA_TYPE,
        headers=SSE_HEADERS,
    )


async def _sse_body(
    orchestrator: QueryOrchestrator,
    question: str,
    user_id: int | None,
) -> AsyncIterator[str]:
    """Format orchestrator events as SSE frames, one chunk per event."""
    cancel = asyncio.Event()
    events = orchestrator.stream(question, user_id, cancel)
    finished = False
    try:
        async for event in events:
            finished = event.terminal
            yield format_sse(event)
    except ServiceError as e:
        logger.error("Stream failed (%s): %s", e.code, e.message)
        finished = True
        yield format_sse(error_event(e.message))
    finally:
        if not finished:
            logger.info("SSE response closed before a terminal event")
        cancel.set()
        await events.aclose()
