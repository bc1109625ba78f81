# =============================================================================
# Auth Service — User API Keys
# =============================================================================
#
# A registered user authenticates with one API key:
#
#   Authorization: Bearer sk-<64 hex chars>
#
# The raw key is shown once, at registration. The database keeps only its
# SHA-256 digest (`users.api_key_hash`) plus an 8-character prefix for logs.
#
# DESIGN DECISION: SHA-256, not bcrypt. Keys are 32 random bytes, so there
# is nothing for a slow hash to protect against, and a deterministic digest
# is what lets us look the user up with a single indexed query.
#
# No FastAPI imports here; the route dependencies live in api/deps.py.
# =============================================================================

from __future__ import annotations

import hashlib
import logging
import secrets

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from qa_service.db.models import User

logger = logging.getLogger(__name__)

KEY_PREFIX = "sk-"


def generate_api_key() -> tuple[str, str, str]:
    """
    Generate a new user API key.

    Returns:
        (raw_key, key_prefix, key_hash)
    """
    raw_key = f"{KEY_PREFIX}{secrets.token_hex(32)}"
    return raw_key, raw_key[:8], hash_api_key(raw_key)


def hash_api_key(raw_key: str) -> str:
    """SHA-256 hex digest (64 chars) of `raw_key`."""
    return hashlib.sha256(raw_key.encode()).hexdigest()


async def find_user_by_key(session: AsyncSession, raw_key: str) -> User | None:
    """
    Resolve a raw API key to an active user.

    Returns None for unknown keys and for deactivated users.
    """
    if not raw_key:
        return None

    stmt = select(User).where(User.api_key_hash == hash_api_key(raw_key))
    result = await session.execute(stmt)
    user = result.scalar_one_or_none()

    if user is None:
        logger.info("Rejected unknown API key (prefix='%s')", raw_key[:8])
        return None
    if not user.is_active:
        logger.info("Rejected API key of inactive user id=%d", user.id)
        return None
    return user


async def username_or_email_taken(
    session: AsyncSession, username: str, email: str,
) -> bool:
    stmt = select(User.id).where((User.username == username) | (User.email == email))
    result = await session.execute(stmt)
    return result.first() is not None


async def list_users(session: AsyncSession) -> list[User]:
    """All users, newest first (ties broken by id)."""
    stmt = select(User).order_by(User.created_at.desc(), User.id.desc())
    result = await session.execute(stmt)
    return list(result.scalars().all())
