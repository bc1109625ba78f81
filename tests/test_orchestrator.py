# =============================================================================
# Unit Tests — QueryOrchestrator
# =============================================================================
#
# Request lifecycle scenarios with an in-memory storage fake and a fake
# streaming provider. The fake feeds scripted SSE body lines through the
# real decoder (pump_fragments), so hand-off, error delivery and
# cancellation behave exactly as with a vendor stream.
#
# Test groups:
#   1. Non-streaming answer()
#   2. Streaming: happy path and content handling
#   3. Streaming: upstream failures
#   4. Streaming: cancellation and teardown
# =============================================================================

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import httpx
import pytest

from qa_service.db.models import QARecord
from qa_service.providers import (
    FragmentStream,
    MockProvider,
    OpenAIProvider,
    ProviderConfig,
)
from qa_service.providers.chat_types import (
    ChatCompletionRequest,
    ChatCompletionResponse,
)
from qa_service.providers.sse import pump_fragments
from qa_service.services.exceptions import (
    BadRequestError,
    RecordNotFoundError,
    StorageError,
    TransportError,
    UnsupportedOperationError,
    UpstreamError,
)
from qa_service.services.llm import LLMClient
from qa_service.services.orchestrator import (
    ANSWER_ERROR_TEXT,
    STREAM_ERROR_TEXT,
    QueryOrchestrator,
)


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _frame(content: str) -> str:
    return 'data: {"choices":[{"index":0,"delta":{"content":"%s"}}]}' % content


HANG = object()


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


@dataclass
class FakeStorage:
    """In-memory QAStorage recording every call in order."""

    answers: dict[int, str] = field(default_factory=dict)
    calls: list[tuple] = field(default_factory=list)
    fail_create: bool = False
    fail_set_answer: bool = False

    async def create_placeholder(self, question: str, user_id: int | None) -> int:
        self.calls.append(("create_placeholder", question, user_id))
        if self.fail_create:
            raise StorageError("disk full")
        record_id = len(self.answers) + 1
        self.answers[record_id] = ""
        return record_id

    async def set_answer(self, record_id: int, text: str) -> None:
        self.calls.append(("set_answer", record_id, text))
        if self.fail_set_answer:
            raise StorageError("disk full")
        if record_id not in self.answers:
            raise RecordNotFoundError(f"Record {record_id} not found")
        self.answers[record_id] = text

    async def get_record(self, record_id: int) -> QARecord:
        return QARecord(id=record_id, question="", answer=self.answers[record_id])

    async def list_records(self) -> list[QARecord]:
        return []

    async def list_records_by_user(self, user_id: int) -> list[QARecord]:
        return []

    @property
    def writes(self) -> list[tuple]:
        return [c for c in self.calls if c[0] == "set_answer"]


class ScriptedStreamProvider:
    """
    Streaming provider whose upstream body is a scripted list of lines.

    `HANG` in the script blocks the body forever; `error` is raised after
    the last line as a read failure.
    """

    def __init__(self, lines, error: Exception | None = None, answer: str = "ok"):
        self.lines = lines
        self.error = error
        self.answer = answer
        self.calls: list[str] = []
        self.last_stream: FragmentStream | None = None

    @property
    def name(self) -> str:
        return "Scripted"

    async def ask(self, question: str) -> str:
        self.calls.append("ask")
        return self.answer

    async def check_connection(self) -> None:
        pass

    async def chat_completion(self, request: ChatCompletionRequest) -> ChatCompletionResponse:
        raise NotImplementedError

    def chat_completion_stream(
        self, request: ChatCompletionRequest, cancel: asyncio.Event,
    ) -> FragmentStream:
        self.calls.append("stream")
        stream = FragmentStream.open(4)
        self.last_stream = stream
        return stream.start(pump_fragments(self._body(), stream, cancel))

    async def _body(self):
        for line in self.lines:
            if line is HANG:
                await asyncio.Event().wait()
            yield line
        if self.error is not None:
            raise self.error


class FailingProvider(MockProvider):
    async def ask(self, question: str) -> str:
        raise UpstreamError("provider down")


def _orchestrator(provider, storage: FakeStorage | None = None):
    storage = storage or FakeStorage()
    client = LLMClient(ProviderConfig(name="test"), provider=provider)
    return QueryOrchestrator(storage, client), storage


async def _collect(orchestrator, question="Hi", user_id=None, cancel=None):
    cancel = cancel or asyncio.Event()
    return [e.payload() async for e in orchestrator.stream(question, user_id, cancel)]


# ---------------------------------------------------------------------------
# 1. Non-streaming answer()
# ---------------------------------------------------------------------------


class TestAnswer:
    def test_success_persists_answer_verbatim(self):
        orchestrator, storage = _orchestrator(MockProvider())

        result = _run(orchestrator.answer("Hello", user_id=3))

        assert result.record_id == 1
        assert result.answer == "Hello! I'm an AI assistant. How can I help you today?"
        assert result.user_id == 3
        assert storage.answers[1] == result.answer
        assert storage.calls[0] == ("create_placeholder", "Hello", 3)

    def test_placeholder_written_before_provider_call(self):
        order: list[str] = []
        storage = FakeStorage()
        real_create = storage.create_placeholder

        async def create(question, user_id):
            order.append("placeholder")
            return await real_create(question, user_id)

        storage.create_placeholder = create
        provider = ScriptedStreamProvider([])

        async def ask(question):
            order.append("ask")
            return "answer"

        provider.ask = ask
        orchestrator, _ = _orchestrator(provider, storage)

        _run(orchestrator.answer("q"))
        assert order == ["placeholder", "ask"]

    @pytest.mark.parametrize("question", ["", "   ", "\n\t"])
    def test_blank_question_rejected_without_side_effects(self, question):
        orchestrator, storage = _orchestrator(MockProvider())

        with pytest.raises(BadRequestError):
            _run(orchestrator.answer(question))
        assert storage.calls == []

    def test_upstream_failure_stores_fixed_error_answer(self):
        orchestrator, storage = _orchestrator(FailingProvider())

        with pytest.raises(UpstreamError):
            _run(orchestrator.answer("q"))
        assert storage.answers[1] == ANSWER_ERROR_TEXT
        assert ANSWER_ERROR_TEXT == "Sorry, the AI service is temporarily unavailable."

    def test_upstream_failure_with_broken_storage_still_raises_upstream(self):
        storage = FakeStorage(fail_set_answer=True)
        orchestrator, _ = _orchestrator(FailingProvider(), storage)

        with pytest.raises(UpstreamError):
            _run(orchestrator.answer("q"))

    def test_placeholder_failure_skips_provider(self):
        provider = ScriptedStreamProvider([])
        orchestrator, _ = _orchestrator(provider, FakeStorage(fail_create=True))

        with pytest.raises(StorageError):
            _run(orchestrator.answer("q"))
        assert provider.calls == []

    def test_final_write_failure_raises_storage_error(self):
        orchestrator, _ = _orchestrator(MockProvider(), FakeStorage(fail_set_answer=True))

        with pytest.raises(StorageError):
            _run(orchestrator.answer("q"))

    def test_invalid_provider_url_stores_error_answer(self):
        provider = OpenAIProvider(ProviderConfig(name="openai", api_url="http://[::1"))
        orchestrator, storage = _orchestrator(provider)

        with pytest.raises(UpstreamError):
            _run(orchestrator.answer("Hi"))
        assert storage.writes == [("set_answer", 1, ANSWER_ERROR_TEXT)]


# ---------------------------------------------------------------------------
# 2. Streaming: happy path
# ---------------------------------------------------------------------------


class TestStreamHappyPath:
    def test_hello_in_two_fragments(self):
        provider = ScriptedStreamProvider([_frame("He"), _frame("llo"), "data: [DONE]"])
        orchestrator, storage = _orchestrator(provider)

        events = _run(_collect(orchestrator, "Say hello", user_id=9))

        assert events == [
            {"type": "start", "record_id": 1, "question": "Say hello", "user_id": 9},
            {"type": "delta", "content": "He"},
            {"type": "delta", "content": "llo"},
            {"type": "end", "record_id": 1, "answer": "Hello"},
        ]
        assert storage.answers[1] == "Hello"
        assert storage.writes == [("set_answer", 1, "Hello")]

    def test_deltas_concatenate_to_persisted_answer(self):
        parts = ["The ", "sky ", "is ", "blue", "."]
        provider = ScriptedStreamProvider([_frame(p) for p in parts] + ["data: [DONE]"])
        orchestrator, storage = _orchestrator(provider)

        events = _run(_collect(orchestrator))
        deltas = "".join(e["content"] for e in events if e["type"] == "delta")

        assert deltas == "The sky is blue."
        assert events[-1]["answer"] == deltas == storage.answers[1]

    def test_contentless_and_malformed_frames_ignored(self):
        provider = ScriptedStreamProvider([
            'data: {"choices":[{"index":0,"delta":{"role":"assistant"}}]}',
            _frame(""),
            "data: {broken",
            ": keep-alive",
            _frame("A"),
            'data: {"choices":[{"index":0,"delta":{},"finish_reason":"stop"}]}',
            "data: [DONE]",
        ])
        orchestrator, storage = _orchestrator(provider)

        events = _run(_collect(orchestrator))
        assert [e["type"] for e in events] == ["start", "delta", "end"]
        assert storage.answers[1] == "A"

    def test_body_ending_without_done_is_clean_end(self):
        provider = ScriptedStreamProvider([_frame("A")])
        orchestrator, storage = _orchestrator(provider)

        events = _run(_collect(orchestrator))
        assert events[-1] == {"type": "end", "record_id": 1, "answer": "A"}

    def test_empty_answer_still_ends(self):
        provider = ScriptedStreamProvider(["data: [DONE]"])
        orchestrator, storage = _orchestrator(provider)

        events = _run(_collect(orchestrator))
        assert [e["type"] for e in events] == ["start", "end"]
        assert storage.writes == [("set_answer", 1, "")]

    def test_anonymous_user(self):
        provider = ScriptedStreamProvider(["data: [DONE]"])
        orchestrator, storage = _orchestrator(provider)

        events = _run(_collect(orchestrator, user_id=None))
        assert events[0]["user_id"] is None
        assert storage.calls[0] == ("create_placeholder", "Hi", None)

    def test_reasoning_deltas_logged_not_relayed(self, caplog):
        provider = ScriptedStreamProvider([
            'data: {"choices":[{"index":0,"delta":{"reasoning_content":"thinking"}}]}',
            _frame("42"),
            "data: [DONE]",
        ])
        orchestrator, storage = _orchestrator(provider)

        with caplog.at_level("INFO", logger="qa_service.services.orchestrator"):
            events = _run(_collect(orchestrator))

        assert [e["type"] for e in events] == ["start", "delta", "end"]
        assert storage.answers[1] == "42"
        assert "model reasoning: 8 chars" in caplog.text


# ---------------------------------------------------------------------------
# 3. Streaming: failures
# ---------------------------------------------------------------------------


class TestStreamFailures:
    def test_read_error_after_one_fragment(self):
        provider = ScriptedStreamProvider([_frame("He")], error=ConnectionResetError("reset"))
        orchestrator, storage = _orchestrator(provider)

        events = _run(_collect(orchestrator))

        assert [e["type"] for e in events] == ["start", "delta", "error"]
        assert events[1]["content"] == "He"
        assert storage.answers[1] == STREAM_ERROR_TEXT
        # The partial answer is never written
        assert ("set_answer", 1, "He") not in storage.calls

    def test_error_before_any_fragment(self):
        provider = ScriptedStreamProvider([], error=OSError("refused"))
        orchestrator, storage = _orchestrator(provider)

        events = _run(_collect(orchestrator))
        assert [e["type"] for e in events] == ["start", "error"]
        assert storage.answers[1] == STREAM_ERROR_TEXT

    def test_nothing_after_terminal_error(self):
        provider = ScriptedStreamProvider([_frame("a")], error=OSError("x"))
        orchestrator, _ = _orchestrator(provider)

        events = _run(_collect(orchestrator))
        assert events[-1]["type"] == "error"
        assert sum(1 for e in events if e["type"] in ("end", "error")) == 1

    def test_pending_error_wins_over_channel_end(self):
        """An error queued before the fragment channel closed is not an `end`."""

        class ClosedWithError(ScriptedStreamProvider):
            def chat_completion_stream(self, request, cancel):
                stream = FragmentStream.open(4)
                stream.fail(TransportError("read failed"))
                stream.close()
                self.last_stream = stream
                return stream

        orchestrator, storage = _orchestrator(ClosedWithError([]))
        events = _run(_collect(orchestrator))

        assert [e["type"] for e in events] == ["start", "error"]
        assert storage.answers[1] == STREAM_ERROR_TEXT

    def test_unsupported_provider(self):
        orchestrator, storage = _orchestrator(MockProvider())

        with pytest.raises(UnsupportedOperationError):
            _run(_collect(orchestrator))
        # Placeholder exists and keeps its empty answer
        assert storage.answers == {1: ""}
        assert storage.writes == []

    def test_blank_question_rejected(self):
        orchestrator, storage = _orchestrator(ScriptedStreamProvider([]))

        with pytest.raises(BadRequestError):
            _run(_collect(orchestrator, question=" "))
        assert storage.calls == []

    def test_placeholder_failure(self):
        provider = ScriptedStreamProvider([])
        orchestrator, _ = _orchestrator(provider, FakeStorage(fail_create=True))

        with pytest.raises(StorageError):
            _run(_collect(orchestrator))
        assert provider.calls == []

    def test_final_write_failure_emits_error(self):
        provider = ScriptedStreamProvider([_frame("A"), "data: [DONE]"])
        orchestrator, _ = _orchestrator(provider, FakeStorage(fail_set_answer=True))

        events = _run(_collect(orchestrator))
        assert [e["type"] for e in events] == ["start", "delta", "error"]

    def test_crashed_reader_is_error_not_end(self):
        def handler(request):
            raise RuntimeError("boom")

        provider = OpenAIProvider(
            ProviderConfig(name="openai", api_key="k"),
            transport=httpx.MockTransport(handler),
        )
        orchestrator, storage = _orchestrator(provider)

        events = _run(_collect(orchestrator))

        assert [e["type"] for e in events] == ["start", "error"]
        assert "boom" in events[-1]["error"]
        assert storage.writes == [("set_answer", 1, STREAM_ERROR_TEXT)]

    def test_invalid_provider_url_is_error_not_end(self):
        provider = OpenAIProvider(ProviderConfig(name="openai", api_url="http://[::1"))
        orchestrator, storage = _orchestrator(provider)

        events = _run(_collect(orchestrator))

        assert [e["type"] for e in events] == ["start", "error"]
        assert storage.answers[1] == STREAM_ERROR_TEXT


# ---------------------------------------------------------------------------
# 4. Streaming: cancellation
# ---------------------------------------------------------------------------


class TestStreamCancellation:
    def test_disconnect_after_start(self):
        provider = ScriptedStreamProvider([HANG])
        orchestrator, storage = _orchestrator(provider)

        async def scenario():
            cancel = asyncio.Event()
            events = orchestrator.stream("Hi", None, cancel)
            first = await events.__anext__()
            cancel.set()
            rest = [e async for e in events]
            return first, rest

        first, rest = _run(scenario())
        assert first.type == "start"
        assert rest == []
        assert storage.writes == []
        assert storage.answers[1] == ""

    def test_disconnect_mid_stream(self):
        provider = ScriptedStreamProvider([_frame("He"), HANG])
        orchestrator, storage = _orchestrator(provider)

        async def scenario():
            cancel = asyncio.Event()
            events = orchestrator.stream("Hi", None, cancel)
            seen = [await events.__anext__(), await events.__anext__()]
            cancel.set()
            seen.extend([e async for e in events])
            return [e.type for e in seen]

        assert _run(scenario()) == ["start", "delta"]
        assert storage.writes == []

    def test_upstream_task_torn_down(self):
        provider = ScriptedStreamProvider([HANG])
        orchestrator, _ = _orchestrator(provider)

        async def scenario():
            cancel = asyncio.Event()
            events = orchestrator.stream("Hi", None, cancel)
            await events.__anext__()
            cancel.set()
            async for _ in events:
                pass
            return provider.last_stream

        stream = _run(scenario())
        assert stream.task.done()
        assert stream.fragments.closed

    def test_consumer_closing_generator_stops_upstream(self):
        provider = ScriptedStreamProvider([_frame("a"), HANG])
        orchestrator, storage = _orchestrator(provider)

        async def scenario():
            events = orchestrator.stream("Hi", None, asyncio.Event())
            await events.__anext__()  # start
            await events.__anext__()  # delta "a"
            await events.aclose()
            return provider.last_stream

        stream = _run(scenario())
        assert stream.task.done()
        assert storage.writes == []

    def test_cancelled_before_start(self):
        provider = ScriptedStreamProvider([_frame("a"), "data: [DONE]"])
        orchestrator, storage = _orchestrator(provider)

        async def scenario():
            cancel = asyncio.Event()
            cancel.set()
            return await _collect(orchestrator, cancel=cancel)

        assert _run(scenario()) == []
        assert provider.calls == []
        assert storage.writes == []
