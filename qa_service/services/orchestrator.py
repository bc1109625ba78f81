# =============================================================================
# Query Orchestrator — Per-Request Question/Answer Lifecycle
# =============================================================================
#
# One question, one record, one terminal outcome:
#
#   CREATED ──validate + placeholder──▶ PERSISTED
#      │                                   │
#      │                 ┌─────────────────┴──────────────────┐
#      │           answer()                                stream()
#      │                 ▼                                    ▼
#      │             ANSWERING                            STREAMING ◀─┐
#      │                 │                                    │ delta ─┘
#      │                 ▼                                    ▼
#      │             FINALIZING ──────────▶ COMPLETED ◀── FINALIZING
#      │
#      └──── upstream failure / client disconnect ─────▶ ABORTED
#
# The placeholder record is written before the provider is called, so every
# question is on record even if the answer never arrives. The answer column
# is then written once: the full answer, or a fixed error string. A partial
# streamed answer is never persisted.
#
# Streaming waits on three things at once (first one wins):
#   1. the next fragment from the upstream reader
#   2. an upstream error
#   3. the cancellation token (client went away)
# =============================================================================

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass

from qa_service.providers import FragmentStream
from qa_service.services.events import (
    StreamEvent,
    delta_event,
    end_event,
    error_event,
    start_event,
)
from qa_service.services.exceptions import (
    BadRequestError,
    StorageError,
    UnsupportedOperationError,
    UpstreamError,
)
from qa_service.services.llm import LLMClient
from qa_service.services.storage import QAStorage

logger = logging.getLogger(__name__)

ANSWER_ERROR_TEXT = "Sorry, the AI service is temporarily unavailable."
STREAM_ERROR_TEXT = "Sorry, the AI service encountered an error."


class QueryState(enum.Enum):
    CREATED = "created"
    PERSISTED = "persisted"
    ANSWERING = "answering"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    ABORTED = "aborted"


def _enter(record_id: int, state: QueryState) -> None:
    logger.debug("record_id=%d → %s", record_id, state.value)


@dataclass
class AnswerResult:
    """Outcome of a completed non-streaming question."""

    record_id: int
    question: str
    answer: str
    user_id: int | None


class QueryOrchestrator:
    """
    Runs questions through storage and the LLM client.

    Stateless between requests: the storage and client are shared, all
    per-request state lives in local variables.
    """

    def __init__(self, storage: QAStorage, llm_client: LLMClient) -> None:
        self._storage = storage
        self._llm = llm_client

    # -------------------------------------------------------------------------
    # Shared steps
    # -------------------------------------------------------------------------

    async def _persist_question(self, question: str, user_id: int | None) -> int:
        """CREATED → PERSISTED. Nothing is written for an empty question."""
        if not question or not question.strip():
            raise BadRequestError("Missing prompt parameter")

        record_id = await self._storage.create_placeholder(question, user_id)
        _enter(record_id, QueryState.PERSISTED)
        logger.info(
            "Question persisted: record_id=%d, user_id=%s, question='%s'",
            record_id, user_id, question[:80],
        )
        return record_id

    async def _store_error_answer(self, record_id: int, text: str) -> None:
        """Best effort: a failure here is logged, never raised."""
        try:
            await self._storage.set_answer(record_id, text)
        except StorageError as e:
            logger.error(
                "Could not store error answer for record_id=%d: %s",
                record_id, e.message,
            )

    # -------------------------------------------------------------------------
    # Request/response path
    # -------------------------------------------------------------------------

    async def answer(self, question: str, user_id: int | None = None) -> AnswerResult:
        """
        Answer `question` in one round trip.

        Raises:
            BadRequestError: question empty or blank.
            StorageError: the placeholder or the final answer could not be
                written.
            UpstreamError: the provider failed; the record then holds
                ANSWER_ERROR_TEXT.
        """
        record_id = await self._persist_question(question, user_id)

        _enter(record_id, QueryState.ANSWERING)
        try:
            text = await self._llm.ask(question)
        except UpstreamError as e:
            _enter(record_id, QueryState.ABORTED)
            logger.error(
                "LLM call failed: record_id=%d, question='%s': %s",
                record_id, question[:80], e.message,
            )
            await self._store_error_answer(record_id, ANSWER_ERROR_TEXT)
            raise

        _enter(record_id, QueryState.FINALIZING)
        await self._storage.set_answer(record_id, text)
        _enter(record_id, QueryState.COMPLETED)
        logger.info("Answer stored: record_id=%d (%d chars)", record_id, len(text))
        return AnswerResult(
            record_id=record_id, question=question, answer=text, user_id=user_id,
        )

    # -------------------------------------------------------------------------
    # Streaming path
    # -------------------------------------------------------------------------

    async def stream(
        self,
        question: str,
        user_id: int | None,
        cancel: asyncio.Event,
    ) -> AsyncIterator[StreamEvent]:
        """
        Answer `question` as a sequence of events.

        Yields `start`, then one `delta` per non-empty fragment, then a
        single `end` or `error`. If `cancel` is set, iteration stops without
        a terminal event and nothing more is written.

        Raises (before any event is yielded):
            BadRequestError, StorageError, UnsupportedOperationError.
        """
        record_id = await self._persist_question(question, user_id)

        if not self._llm.supports_streaming():
            # The record keeps its empty answer
            raise UnsupportedOperationError(
                "The configured LLM provider does not support streaming chat",
                record_id=record_id,
            )
        if cancel.is_set():
            logger.info("Client gone before streaming started: record_id=%d", record_id)
            return

        _enter(record_id, QueryState.STREAMING)
        yield start_event(record_id, question, user_id)

        upstream = self._llm.stream_chat(question, cancel)
        relay = self._relay(record_id, question, upstream, cancel)
        try:
            async for event in relay:
                yield event
        finally:
            await relay.aclose()
            await upstream.aclose()

    async def _relay(
        self,
        record_id: int,
        question: str,
        upstream: FragmentStream,
        cancel: asyncio.Event,
    ) -> AsyncIterator[StreamEvent]:
        """STREAMING loop: relay deltas until end, error or cancellation."""
        parts: list[str] = []
        reasoning_chars = 0
        fragment_wait: asyncio.Future | None = None
        error_wait: asyncio.Future | None = None
        errors_open = True
        cancel_wait = asyncio.ensure_future(cancel.wait())

        try:
            while True:
                # Pending waits survive across iterations so an item already
                # taken off a channel is never dropped.
                if fragment_wait is None:
                    fragment_wait = asyncio.ensure_future(upstream.fragments.receive())
                if error_wait is None and errors_open:
                    error_wait = asyncio.ensure_future(upstream.errors.receive())

                waiters = {
                    w for w in (fragment_wait, error_wait, cancel_wait) if w is not None
                }
                await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)

                if cancel.is_set():
                    self._log_disconnect(record_id, len(parts))
                    return

                if fragment_wait.done():
                    fragment = fragment_wait.result()
                    fragment_wait = None

                    if fragment is not None:
                        reasoning = fragment.reasoning
                        if reasoning:
                            reasoning_chars += len(reasoning)
                            logger.debug(
                                "record_id=%d reasoning delta (%d chars, not relayed)",
                                record_id, len(reasoning),
                            )
                        content = fragment.content
                        if content:
                            parts.append(content)
                            yield delta_event(content)
                        continue

                    # Fragment channel ended; settle the error channel before
                    # calling it a clean end.
                    error = await self._pending_error(upstream, error_wait, cancel_wait)
                    if error_wait is not None and error_wait.done():
                        error_wait = None
                    if cancel.is_set():
                        self._log_disconnect(record_id, len(parts))
                        return
                    if error is not None:
                        yield await self._abort(record_id, question, error)
                    else:
                        if reasoning_chars:
                            logger.info(
                                "record_id=%d model reasoning: %d chars (not stored)",
                                record_id, reasoning_chars,
                            )
                        yield await self._finalize(record_id, "".join(parts))
                    return

                if error_wait is not None and error_wait.done():
                    error = error_wait.result()
                    error_wait = None
                    if error is not None:
                        yield await self._abort(record_id, question, error)
                        return
                    # Closed without an error; keep waiting on fragments only
                    errors_open = False
        finally:
            for waiter in (fragment_wait, error_wait, cancel_wait):
                if waiter is not None and not waiter.done():
                    waiter.cancel()

    @staticmethod
    async def _pending_error(
        upstream: FragmentStream,
        error_wait: asyncio.Future | None,
        cancel_wait: asyncio.Future,
    ) -> UpstreamError | None:
        """The upstream error delivered alongside the end of fragments, if any."""
        if error_wait is None:
            return upstream.errors.try_receive()
        if not error_wait.done():
            # Both channels close together, so this wait is short
            await asyncio.wait(
                {error_wait, cancel_wait}, return_when=asyncio.FIRST_COMPLETED,
            )
        if error_wait.done():
            return error_wait.result()
        return None

    @staticmethod
    def _log_disconnect(record_id: int, delta_count: int) -> None:
        _enter(record_id, QueryState.ABORTED)
        logger.info(
            "Client disconnected: record_id=%d after %d deltas",
            record_id, delta_count,
        )

    async def _abort(
        self, record_id: int, question: str, error: UpstreamError,
    ) -> StreamEvent:
        """STREAMING → ABORTED: fixed error answer, one `error` event."""
        _enter(record_id, QueryState.ABORTED)
        logger.error(
            "Streaming failed: record_id=%d, question='%s': %s",
            record_id, question[:80], error.message,
        )
        await self._store_error_answer(record_id, STREAM_ERROR_TEXT)
        return error_event(f"Stream error: {error.message}")

    async def _finalize(self, record_id: int, answer: str) -> StreamEvent:
        """FINALIZING → COMPLETED: persist the full answer, emit `end`."""
        _enter(record_id, QueryState.FINALIZING)
        try:
            await self._storage.set_answer(record_id, answer)
        except StorageError as e:
            logger.error(
                "Failed to store streamed answer for record_id=%d: %s",
                record_id, e.message,
            )
            return error_event("Failed to save answer")

        _enter(record_id, QueryState.COMPLETED)
        logger.info("Streaming completed: record_id=%d (%d chars)", record_id, len(answer))
        return end_event(record_id, answer)
