# =============================================================================
# Unit Tests — SQLAlchemyQAStorage
# =============================================================================
#
# Runs against a throwaway SQLite file (aiosqlite) per test; no server
# database needed.
# =============================================================================

from __future__ import annotations

import asyncio

import pytest

from qa_service.db.engine import create_engine, create_session_factory, init_models
from qa_service.db.models import User
from qa_service.services.exceptions import RecordNotFoundError, StorageError
from qa_service.services.storage import QAStorage, SQLAlchemyQAStorage


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _with_storage(tmp_path, scenario):
    """Run `scenario(storage, session_factory)` against a fresh database."""

    async def main():
        engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'qa.db'}")
        try:
            await init_models(engine)
            factory = create_session_factory(engine)
            return await scenario(SQLAlchemyQAStorage(factory), factory)
        finally:
            await engine.dispose()

    return _run(main())


async def _add_user(factory, username: str = "alice") -> int:
    async with factory() as session:
        user = User(
            username=username,
            email=f"{username}@example.com",
            key_prefix="sk-test0",
            api_key_hash=username * 4,
        )
        session.add(user)
        await session.commit()
        return user.id


class TestWrites:
    def test_implements_protocol(self, tmp_path):
        async def scenario(storage, factory):
            return isinstance(storage, QAStorage)

        assert _with_storage(tmp_path, scenario)

    def test_placeholder_has_empty_answer(self, tmp_path):
        async def scenario(storage, factory):
            record_id = await storage.create_placeholder("What is 2+2?", None)
            return await storage.get_record(record_id)

        record = _with_storage(tmp_path, scenario)
        assert record.question == "What is 2+2?"
        assert record.answer == ""
        assert record.user_id is None

    def test_ids_are_distinct(self, tmp_path):
        async def scenario(storage, factory):
            return [await storage.create_placeholder(f"q{i}", None) for i in range(3)]

        ids = _with_storage(tmp_path, scenario)
        assert len(set(ids)) == 3

    def test_set_answer(self, tmp_path):
        async def scenario(storage, factory):
            record_id = await storage.create_placeholder("q", None)
            await storage.set_answer(record_id, "4")
            return await storage.get_record(record_id)

        assert _with_storage(tmp_path, scenario).answer == "4"

    def test_set_answer_unknown_id(self, tmp_path):
        async def scenario(storage, factory):
            with pytest.raises(RecordNotFoundError):
                await storage.set_answer(999, "x")

        _with_storage(tmp_path, scenario)

    def test_not_found_is_a_storage_error(self):
        assert issubclass(RecordNotFoundError, StorageError)

    def test_user_id_kept(self, tmp_path):
        async def scenario(storage, factory):
            user_id = await _add_user(factory)
            record_id = await storage.create_placeholder("q", user_id)
            return user_id, await storage.get_record(record_id)

        user_id, record = _with_storage(tmp_path, scenario)
        assert record.user_id == user_id


class TestReads:
    def test_get_unknown_record(self, tmp_path):
        async def scenario(storage, factory):
            with pytest.raises(RecordNotFoundError):
                await storage.get_record(42)

        _with_storage(tmp_path, scenario)

    def test_list_newest_first(self, tmp_path):
        async def scenario(storage, factory):
            for question in ("first", "second", "third"):
                await storage.create_placeholder(question, None)
            return [r.question for r in await storage.list_records()]

        assert _with_storage(tmp_path, scenario) == ["third", "second", "first"]

    def test_list_by_user(self, tmp_path):
        async def scenario(storage, factory):
            alice = await _add_user(factory, "alice")
            bob = await _add_user(factory, "bob")
            await storage.create_placeholder("alice-1", alice)
            await storage.create_placeholder("bob-1", bob)
            await storage.create_placeholder("anon", None)
            await storage.create_placeholder("alice-2", alice)
            return [r.question for r in await storage.list_records_by_user(alice)]

        assert _with_storage(tmp_path, scenario) == ["alice-2", "alice-1"]

    def test_list_empty(self, tmp_path):
        async def scenario(storage, factory):
            return await storage.list_records()

        assert _with_storage(tmp_path, scenario) == []
