# =============================================================================
# Request Logging Middleware
# =============================================================================
#
# One log line per request: method, path, status, elapsed time and caller.
#
# DESIGN DECISION: Starlette middleware (not a FastAPI dependency) because
# it wraps the whole request lifecycle, sees the final status code and
# does not need every route to opt in.
#
# For /api/ask/stream the elapsed time covers the handler up to the start
# of the response, not the life of the event stream; the orchestrator logs
# stream completion itself.
# =============================================================================

from __future__ import annotations

import logging
import time

from starlette.middleware.base import (
    BaseHTTPMiddleware,
    RequestResponseEndpoint,
)
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

# Not worth a log line each
_SKIP_PATHS = {"/docs", "/redoc", "/openapi.json", "/favicon.ico"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request after the handler returns a response."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        if request.url.path in _SKIP_PATHS:
            return await call_next(request)

        start_time = time.monotonic()
        try:
            response = await call_next(request)
        except Exception:
            elapsed_ms = int((time.monotonic() - start_time) * 1000)
            logger.exception(
                "%s %s failed after %dms", request.method, request.url.path, elapsed_ms,
            )
            raise
        elapsed_ms = int((time.monotonic() - start_time) * 1000)

        # Set by get_current_user when a valid API key was sent
        user = getattr(request.state, "user", None)
        client_ip = request.client.host if request.client else "-"

        logger.info(
            "%s %s → %d (%dms) user_id=%s ip=%s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            user.id if user else None,
            client_ip,
        )
        return response
