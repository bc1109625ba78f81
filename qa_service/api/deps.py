# =============================================================================
# API Dependencies — Caller Identity and Shared Services
# =============================================================================
#
# Identity:
#   get_current_user() — optional. Resolves `Authorization: Bearer <key>`
#                        to a User; missing or invalid keys mean anonymous
#                        (None). Never rejects a request.
#   require_user()     — for /api/user/*; 401 when the caller is anonymous.
#
# Services (built once in create_app's lifespan, kept on app.state):
#   get_settings_dep(), get_storage(), get_llm_client(), get_orchestrator()
#
# DESIGN DECISION: HTTPBearer(auto_error=False) so a missing header reaches
# the dependency as None instead of an automatic 403.
#
# DESIGN DECISION: the identity lookup uses its own short session rather
# than the request-scoped get_async_session. The streaming route keeps its
# response open for as long as the provider talks; a dependency session
# would stay checked out for all of it.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from qa_service.config import Settings
from qa_service.db.models import User
from qa_service.services.auth import find_user_by_key
from qa_service.services.llm import LLMClient
from qa_service.services.orchestrator import QueryOrchestrator
from qa_service.services.storage import QAStorage

logger = logging.getLogger(__name__)

# Shows the "Authorize" button in Swagger UI
_bearer_scheme = HTTPBearer(auto_error=False)


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_storage(request: Request) -> QAStorage:
    return request.app.state.storage


def get_llm_client(request: Request) -> LLMClient:
    return request.app.state.llm_client


def get_orchestrator(request: Request) -> QueryOrchestrator:
    return request.app.state.orchestrator


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    settings: Settings = Depends(get_settings_dep),
) -> User | None:
    """
    Resolve the caller, or None for anonymous access.

    Anonymous when auth is disabled, when no Bearer header is sent, and when
    the key is unknown or belongs to an inactive user. The resolved user is
    also stored on request.state for the request logger.
    """
    if not settings.auth_enabled or credentials is None:
        return None

    async with request.app.state.session_factory() as session:
        user = await find_user_by_key(session, credentials.credentials)

    if user is not None:
        request.state.user = user
        logger.debug("Authenticated user id=%d", user.id)
    return user


async def require_user(
    user: User | None = Depends(get_current_user),
) -> User:
    """Like get_current_user, but anonymous callers get 401."""
    if user is None:
        raise HTTPException(
            status_code=401,
            detail="Authentication required. Provide "
            "'Authorization: Bearer <key>' header.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user
