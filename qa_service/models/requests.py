# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# The question routes take their input from the `prompt` query parameter,
# so the only JSON request body in the API is user registration.
# =============================================================================

from pydantic import BaseModel, ConfigDict, Field


class RegisterUserRequest(BaseModel):
    """
    Request body for POST /api/auth/register.

    Example:
        {"username": "alice", "email": "alice@example.com"}
    """

    username: str = Field(
        ...,
        min_length=3,
        max_length=100,
        pattern=r"^[A-Za-z0-9_.-]+$",
        description="Unique login name (letters, digits, '_', '.', '-')",
        examples=["alice"],
    )
    email: str = Field(
        ...,
        max_length=255,
        pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$",
        description="Unique contact email",
        examples=["alice@example.com"],
    )

    model_config = ConfigDict(str_strip_whitespace=True)
