# =============================================================================
# Users API — Registration and the Caller's Own Data
# =============================================================================
#
#   POST /api/auth/register   create a user, return its API key (once)
#   GET  /api/user/profile    the authenticated caller
#   GET  /api/user/records    the authenticated caller's records
#   GET  /api/user/users      every registered user (auth required)
#
# DESIGN DECISION: the raw API key is only returned by register. After
# that, only key_prefix is visible; a lost key means a new registration.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from qa_service.api.deps import get_storage, require_user
from qa_service.db.engine import get_async_session
from qa_service.db.models import User
from qa_service.models.requests import RegisterUserRequest
from qa_service.models.responses import (
    QARecordResponse,
    RecordListResponse,
    UserCreatedResponse,
    UserListResponse,
    UserResponse,
)
from qa_service.services.auth import (
    generate_api_key,
    list_users,
    username_or_email_taken,
)
from qa_service.services.exceptions import ServiceError
from qa_service.services.storage import QAStorage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Users"])


# ---------------------------------------------------------------------------
# POST /api/auth/register — Create User
# ---------------------------------------------------------------------------


@router.post(
    "/auth/register",
    response_model=UserCreatedResponse,
    status_code=201,
    summary="Register a user",
    description=(
        "Create a user and generate its API key. The raw key is only "
        "returned in this response; store it securely."
    ),
)
async def register_user(
    request: RegisterUserRequest,
    session: AsyncSession = Depends(get_async_session),
) -> UserCreatedResponse:
    if await username_or_email_taken(session, request.username, request.email):
        raise HTTPException(
            status_code=409,
            detail="Username or email is already registered.",
        )

    raw_key, key_prefix, key_hash = generate_api_key()
    user = User(
        username=request.username,
        email=request.email,
        key_prefix=key_prefix,
        api_key_hash=key_hash,
    )
    session.add(user)
    try:
        await session.commit()
    except IntegrityError as e:
        # Lost a race with a concurrent registration
        await session.rollback()
        raise HTTPException(
            status_code=409,
            detail="Username or email is already registered.",
        ) from e
    await session.refresh(user)

    logger.info(
        "User registered: id=%d, username='%s', prefix='%s'",
        user.id, user.username, user.key_prefix,
    )

    return UserCreatedResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        key_prefix=user.key_prefix,
        is_active=user.is_active,
        created_at=user.created_at,
        api_key=raw_key,
    )


# ---------------------------------------------------------------------------
# GET /api/user/profile — Current User
# ---------------------------------------------------------------------------


@router.get(
    "/user/profile",
    response_model=UserResponse,
    summary="Get the authenticated user's profile",
)
async def get_profile(user: User = Depends(require_user)) -> UserResponse:
    return UserResponse.model_validate(user)


# ---------------------------------------------------------------------------
# GET /api/user/records — Current User's Records
# ---------------------------------------------------------------------------


@router.get(
    "/user/records",
    response_model=RecordListResponse,
    summary="List the authenticated user's records",
)
async def list_user_records(
    user: User = Depends(require_user),
    storage: QAStorage = Depends(get_storage),
) -> RecordListResponse:
    try:
        records = await storage.list_records_by_user(user.id)
    except ServiceError as e:
        logger.error("Listing records of user id=%d failed: %s", user.id, e.message)
        raise HTTPException(status_code=e.http_status, detail=e.message) from e

    return RecordListResponse(
        data=[QARecordResponse.model_validate(r) for r in records],
        total=len(records),
    )


# ---------------------------------------------------------------------------
# GET /api/user/users — All Users
# ---------------------------------------------------------------------------


@router.get(
    "/user/users",
    response_model=UserListResponse,
    summary="List registered users",
    description="Every registered user, newest first. API key hashes are never included.",
)
async def list_all_users(
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_async_session),
) -> UserListResponse:
    users = await list_users(session)
    logger.info("User list requested by id=%d (%d users)", user.id, len(users))
    return UserListResponse(
        data=[UserResponse.model_validate(u) for u in users],
        total=len(users),
    )
