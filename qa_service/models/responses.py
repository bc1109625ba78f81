# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# What leaves the API. ORM rows are converted with from_attributes=True;
# the users table's api_key_hash has no field here, so it can never be
# serialised by accident.
# =============================================================================

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ApiInfoResponse(BaseModel):
    """Response for GET / — service name, version and route map."""

    name: str
    version: str
    llm_mode: str
    endpoints: dict[str, str]


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    status: str = "ok"
    timestamp: datetime
    services: dict[str, str]
    llm_provider: dict[str, Any]


class LLMCheckResponse(BaseModel):
    """Response for GET /api/health/llm."""

    provider: str
    status: str = Field(description="'ok' or 'error'")
    detail: str | None = None


class AskResponse(BaseModel):
    """Response for GET /api/ask — the stored question and its answer."""

    id: int
    question: str
    answer: str
    user_id: int | None = None


class QARecordResponse(BaseModel):
    id: int
    question: str
    answer: str
    user_id: int | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RecordListResponse(BaseModel):
    """Response for GET /api/records and GET /api/user/records."""

    status: str = "success"
    data: list[QARecordResponse]
    total: int


class UserResponse(BaseModel):
    """A registered user; never includes the API key or its hash."""

    id: int
    username: str
    email: str
    key_prefix: str
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserCreatedResponse(UserResponse):
    """
    Response for POST /api/auth/register.

    `api_key` is only returned here. Store it: it cannot be retrieved later.
    """

    api_key: str


class UserListResponse(BaseModel):
    """Response for GET /api/user/users."""

    status: str = "success"
    data: list[UserResponse]
    total: int
