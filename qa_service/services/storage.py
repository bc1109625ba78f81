# =============================================================================
# QA Storage — Question/Answer Record Persistence
# =============================================================================
#
# The query orchestrator only needs two writes per request:
#
#   create_placeholder(question, user_id) → record id   (answer = "")
#   set_answer(record_id, text)                          (exactly once)
#
# Read operations back the /api/records and /api/user/records routes.
#
# DESIGN DECISION: each call opens its own short session from the factory
# and commits before returning. A streaming request can last a minute; it
# must not pin a pooled connection while it waits on the provider.
#
# set_answer is a single UPDATE ... WHERE id = ? statement, so two writers
# racing on the same record can never leave a half-written row. A zero
# rowcount means the id does not exist.
# =============================================================================

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from qa_service.db.models import QARecord
from qa_service.services.exceptions import RecordNotFoundError, StorageError

logger = logging.getLogger(__name__)


@runtime_checkable
class QAStorage(Protocol):
    """Persistence contract used by the query orchestrator and routes."""

    async def create_placeholder(self, question: str, user_id: int | None) -> int:
        """Insert a record with an empty answer and return its id."""
        ...

    async def set_answer(self, record_id: int, text: str) -> None:
        """
        Replace the answer of an existing record.

        Raises:
            RecordNotFoundError: no record has this id.
            StorageError: the write failed.
        """
        ...

    async def get_record(self, record_id: int) -> QARecord:
        ...

    async def list_records(self) -> list[QARecord]:
        ...

    async def list_records_by_user(self, user_id: int) -> list[QARecord]:
        ...


class SQLAlchemyQAStorage:
    """QAStorage over an async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_placeholder(self, question: str, user_id: int | None) -> int:
        try:
            async with self._session_factory() as session:
                record = QARecord(question=question, answer="", user_id=user_id)
                session.add(record)
                await session.commit()
                record_id = record.id
        except SQLAlchemyError as e:
            logger.exception("Failed to create placeholder record")
            raise StorageError(f"Failed to create question record: {e}") from e

        logger.debug("Created placeholder record id=%d (user_id=%s)", record_id, user_id)
        return record_id

    async def set_answer(self, record_id: int, text: str) -> None:
        stmt = (
            update(QARecord)
            .where(QARecord.id == record_id)
            .values(answer=text)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            logger.exception("Failed to update answer for record id=%d", record_id)
            raise StorageError(
                f"Failed to update answer: {e}", record_id=record_id,
            ) from e

        if result.rowcount == 0:
            raise RecordNotFoundError(
                f"Record {record_id} not found", record_id=record_id,
            )
        logger.debug("Stored answer for record id=%d (%d chars)", record_id, len(text))

    async def get_record(self, record_id: int) -> QARecord:
        try:
            async with self._session_factory() as session:
                record = await session.get(QARecord, record_id)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load record: {e}", record_id=record_id) from e

        if record is None:
            raise RecordNotFoundError(
                f"Record {record_id} not found", record_id=record_id,
            )
        return record

    async def list_records(self) -> list[QARecord]:
        """All records, newest first."""
        stmt = select(QARecord).order_by(QARecord.created_at.desc(), QARecord.id.desc())
        return await self._list(stmt)

    async def list_records_by_user(self, user_id: int) -> list[QARecord]:
        """Records asked by `user_id`, newest first."""
        stmt = (
            select(QARecord)
            .where(QARecord.user_id == user_id)
            .order_by(QARecord.created_at.desc(), QARecord.id.desc())
        )
        return await self._list(stmt)

    async def _list(self, stmt) -> list[QARecord]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list records: {e}") from e
