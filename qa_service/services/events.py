# =============================================================================
# Outbound Events — Server-Sent Events Toward the Client
# =============================================================================
#
# Wire format: one event per chunk, nothing but a data field:
#
#   data: {"type":"start","record_id":7,"question":"Hi","user_id":null}\n\n
#   data: {"type":"delta","content":"He"}\n\n
#   data: {"type":"delta","content":"llo"}\n\n
#   data: {"type":"end","record_id":7,"answer":"Hello"}\n\n
#
# A stream carries at most one terminal event (`end` or `error`); nothing
# follows it. The response headers below disable caching and proxy
# buffering so each chunk reaches the client as soon as it is yielded.
# =============================================================================

from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import BaseModel

EventType = Literal["start", "delta", "end", "error"]

SSE_MEDIA_TYPE = "text/event-stream"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    # nginx: do not buffer the response body
    "X-Accel-Buffering": "no",
}


class StreamEvent(BaseModel):
    """One outbound event; `data` holds the type-specific fields."""

    type: EventType
    data: dict[str, Any] = {}

    @property
    def terminal(self) -> bool:
        return self.type in ("end", "error")

    def payload(self) -> dict[str, Any]:
        return {"type": self.type, **self.data}


def start_event(record_id: int, question: str, user_id: int | None) -> StreamEvent:
    return StreamEvent(
        type="start",
        data={"record_id": record_id, "question": question, "user_id": user_id},
    )


def delta_event(content: str) -> StreamEvent:
    return StreamEvent(type="delta", data={"content": content})


def end_event(record_id: int, answer: str) -> StreamEvent:
    return StreamEvent(type="end", data={"record_id": record_id, "answer": answer})


def error_event(message: str) -> StreamEvent:
    return StreamEvent(type="error", data={"error": message})


def format_sse(event: StreamEvent) -> str:
    """Serialise one event as an SSE `data:` frame."""
    body = json.dumps(event.payload(), ensure_ascii=False, separators=(",", ":"))
    return f"data: {body}\n\n"
