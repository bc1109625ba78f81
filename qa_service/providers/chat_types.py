# =============================================================================
# Chat Completion Schemas — OpenAI-Compatible Wire Format
# =============================================================================
#
# Pydantic V2 models for the chat-completions request/response shape shared
# by OpenAI-compatible vendors. Streaming providers serialise
# ChatCompletionRequest onto the wire and validate each SSE payload into a
# ChatCompletionStreamResponse (one "fragment").
#
# Unknown vendor fields are ignored (extra="ignore") so new response keys do
# not break parsing. Request models drop None fields on serialisation.
# =============================================================================

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["system", "user", "assistant", "tool"]


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ImageURL(_WireModel):
    url: str
    detail: str | None = None


class ContentPart(_WireModel):
    """One part of a multi-part message: text or an image reference."""

    type: Literal["text", "image_url"]
    text: str | None = None
    image_url: ImageURL | None = None


class FunctionCall(_WireModel):
    name: str = ""
    arguments: str = ""


class ToolCall(_WireModel):
    id: str = ""
    type: str = "function"
    function: FunctionCall = Field(default_factory=FunctionCall)
    index: int | None = None


class ChatMessage(_WireModel):
    """
    A chat message, used both in requests and as response message/delta.

    `content` is plain text, a list of parts (text + image), or None for
    deltas that only carry metadata (role, tool calls, finish markers).
    """

    role: Role | None = None
    content: str | list[ContentPart] | None = None
    reasoning_content: str | None = None
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None
    name: str | None = None

    @property
    def text(self) -> str:
        """Text content, with multi-part messages flattened to their text parts."""
        if self.content is None:
            return ""
        if isinstance(self.content, str):
            return self.content
        return "".join(part.text or "" for part in self.content if part.type == "text")


class FunctionDef(_WireModel):
    name: str
    description: str | None = None
    parameters: dict[str, Any] | None = None
    strict: bool | None = None


class Tool(_WireModel):
    type: str = "function"
    function: FunctionDef


class ChatCompletionRequest(_WireModel):
    model: str
    messages: list[ChatMessage]
    tools: list[Tool] | None = None
    tool_choice: str | dict[str, Any] | None = None
    temperature: float | None = None
    top_p: float | None = None
    n: int | None = None
    stream: bool = False
    stream_options: dict[str, Any] | None = None
    stop: str | list[str] | None = None
    max_tokens: int | None = None
    presence_penalty: float | None = None
    frequency_penalty: float | None = None
    logit_bias: dict[str, Any] | None = None
    response_format: dict[str, Any] | None = None
    seed: int | None = None
    parallel_tool_calls: bool | None = None
    user: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """JSON body for the vendor API (None fields omitted)."""
        return self.model_dump(mode="json", exclude_none=True)


class Choice(_WireModel):
    index: int = 0
    message: ChatMessage | None = None
    delta: ChatMessage | None = None
    finish_reason: str | None = None


class Usage(_WireModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatCompletionResponse(_WireModel):
    id: str = ""
    object: str = ""
    created: int = 0
    model: str = ""
    system_fingerprint: str | None = None
    choices: list[Choice] = Field(default_factory=list)
    usage: Usage | None = None


class ChatCompletionStreamResponse(ChatCompletionResponse):
    """
    One streamed fragment.

    The first choice's delta carries the incremental content; a non-null
    finish_reason marks the last fragment for that choice.
    """

    @property
    def content(self) -> str | None:
        """Content delta of the first choice, None when the event has none."""
        if not self.choices or self.choices[0].delta is None:
            return None
        delta = self.choices[0].delta
        if delta.content is None:
            return None
        return delta.text

    @property
    def reasoning(self) -> str | None:
        if not self.choices or self.choices[0].delta is None:
            return None
        return self.choices[0].delta.reasoning_content

    @property
    def finish_reason(self) -> str | None:
        if not self.choices:
            return None
        return self.choices[0].finish_reason
