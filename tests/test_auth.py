# =============================================================================
# Unit Tests — Authentication
# =============================================================================
#
# Test groups:
#   1. Key generation & hashing (pure functions)
#   2. find_user_by_key against a throwaway SQLite database
#   3. get_current_user / require_user dependencies (fakes, no app)
# =============================================================================

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import HTTPException

from qa_service.config import Settings
from qa_service.db.engine import create_engine, create_session_factory, init_models
from qa_service.db.models import User
from qa_service.services.auth import (
    find_user_by_key,
    generate_api_key,
    hash_api_key,
    username_or_email_taken,
)


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# 1. Key Generation & Hashing
# ---------------------------------------------------------------------------


class TestKeyGeneration:
    def test_key_format_has_prefix(self):
        raw_key, _, _ = generate_api_key()
        assert raw_key.startswith("sk-")

    def test_key_length(self):
        raw_key, _, _ = generate_api_key()
        assert len(raw_key) == 67  # "sk-" (3) + 64 hex chars

    def test_prefix_is_first_8_chars(self):
        raw_key, prefix, _ = generate_api_key()
        assert prefix == raw_key[:8]

    def test_hash_matches_raw_key(self):
        raw_key, _, key_hash = generate_api_key()
        assert key_hash == hash_api_key(raw_key)
        assert len(key_hash) == 64
        int(key_hash, 16)

    def test_keys_are_unique(self):
        assert generate_api_key()[0] != generate_api_key()[0]

    def test_different_keys_different_hashes(self):
        assert hash_api_key("sk-key1") != hash_api_key("sk-key2")


# ---------------------------------------------------------------------------
# 2. find_user_by_key
# ---------------------------------------------------------------------------


def _with_users(tmp_path, scenario):
    async def main():
        engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'auth.db'}")
        try:
            await init_models(engine)
            factory = create_session_factory(engine)
            async with factory() as session:
                return await scenario(session)
        finally:
            await engine.dispose()

    return _run(main())


async def _register(session, username: str, active: bool = True) -> str:
    raw_key, prefix, key_hash = generate_api_key()
    session.add(User(
        username=username,
        email=f"{username}@example.com",
        key_prefix=prefix,
        api_key_hash=key_hash,
        is_active=active,
    ))
    await session.commit()
    return raw_key


class TestFindUserByKey:
    def test_valid_key(self, tmp_path):
        async def scenario(session):
            raw_key = await _register(session, "alice")
            return await find_user_by_key(session, raw_key)

        user = _with_users(tmp_path, scenario)
        assert user is not None
        assert user.username == "alice"

    def test_unknown_key(self, tmp_path):
        async def scenario(session):
            await _register(session, "alice")
            return await find_user_by_key(session, "sk-not-a-real-key")

        assert _with_users(tmp_path, scenario) is None

    def test_inactive_user(self, tmp_path):
        async def scenario(session):
            raw_key = await _register(session, "mallory", active=False)
            return await find_user_by_key(session, raw_key)

        assert _with_users(tmp_path, scenario) is None

    def test_empty_key(self, tmp_path):
        async def scenario(session):
            return await find_user_by_key(session, "")

        assert _with_users(tmp_path, scenario) is None

    def test_username_or_email_taken(self, tmp_path):
        async def scenario(session):
            await _register(session, "alice")
            return (
                await username_or_email_taken(session, "alice", "new@example.com"),
                await username_or_email_taken(session, "new", "alice@example.com"),
                await username_or_email_taken(session, "new", "new@example.com"),
            )

        assert _with_users(tmp_path, scenario) == (True, True, False)


# ---------------------------------------------------------------------------
# 3. Dependencies
# ---------------------------------------------------------------------------


@dataclass
class FakeUser:
    id: int = 1
    username: str = "alice"


@dataclass
class FakeCredentials:
    """Stand-in for HTTPAuthorizationCredentials."""

    credentials: str = "sk-testkey"


class FakeState:
    pass


class FakeRequest:
    """Minimal Request stand-in with app.state.session_factory."""

    def __init__(self):
        @asynccontextmanager
        async def session_factory():
            yield AsyncMock()

        self.state = FakeState()
        self.app = FakeState()
        self.app.state = FakeState()
        self.app.state.session_factory = session_factory


class TestGetCurrentUser:
    def test_auth_disabled_is_anonymous(self):
        from qa_service.api.deps import get_current_user

        with patch("qa_service.api.deps.find_user_by_key", new=AsyncMock()) as lookup:
            result = _run(get_current_user(
                request=FakeRequest(),
                credentials=FakeCredentials(),
                settings=Settings(auth_enabled=False),
            ))
        assert result is None
        lookup.assert_not_called()

    def test_missing_header_is_anonymous(self):
        from qa_service.api.deps import get_current_user

        result = _run(get_current_user(
            request=FakeRequest(),
            credentials=None,
            settings=Settings(auth_enabled=True),
        ))
        assert result is None

    def test_invalid_key_is_anonymous(self):
        from qa_service.api.deps import get_current_user

        with patch(
            "qa_service.api.deps.find_user_by_key", new=AsyncMock(return_value=None),
        ):
            result = _run(get_current_user(
                request=FakeRequest(),
                credentials=FakeCredentials("sk-bogus"),
                settings=Settings(auth_enabled=True),
            ))
        assert result is None

    def test_valid_key_sets_request_state(self):
        from qa_service.api.deps import get_current_user

        user = FakeUser()
        request = FakeRequest()
        with patch(
            "qa_service.api.deps.find_user_by_key", new=AsyncMock(return_value=user),
        ) as lookup:
            result = _run(get_current_user(
                request=request,
                credentials=FakeCredentials("sk-good"),
                settings=Settings(auth_enabled=True),
            ))
        assert result is user
        assert request.state.user is user
        assert lookup.await_args.args[1] == "sk-good"


class TestRequireUser:
    def test_anonymous_rejected(self):
        from qa_service.api.deps import require_user

        with pytest.raises(HTTPException) as exc_info:
            _run(require_user(user=None))
        assert exc_info.value.status_code == 401

    def test_user_passes_through(self):
        from qa_service.api.deps import require_user

        user = FakeUser()
        assert _run(require_user(user=user)) is user
