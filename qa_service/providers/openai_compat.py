# =============================================================================
# OpenAI-Compatible Provider — Chat Completions over HTTP
# =============================================================================
#
# Any vendor exposing POST {api_url} with the OpenAI chat-completions body
# works here (OpenAI itself, gateways such as Bella, self-hosted servers):
#   - auth: Authorization: Bearer <api_key>
#   - non-streaming: JSON ChatCompletionResponse
#   - streaming: `stream: true` + SSE body decoded by providers/sse.py
#
# OpenAIProvider implements both the base LLMProvider contract and the
# streaming ChatCompletionProvider capability.
# =============================================================================

from __future__ import annotations

import asyncio
import logging

import httpx
from pydantic import ValidationError

from qa_service.providers.base import HTTPProvider
from qa_service.providers.chat_types import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatMessage,
    ContentPart,
    ImageURL,
    Tool,
)
from qa_service.providers.sse import pump_fragments
from qa_service.providers.stream import FragmentStream
from qa_service.services.exceptions import UpstreamError

logger = logging.getLogger(__name__)


class OpenAICompatibleProvider(HTTPProvider):
    """Chat-completions provider with streaming support."""

    DEFAULT_URL = "https://api.openai.com/v1/chat/completions"
    DEFAULT_MODEL = "gpt-3.5-turbo"
    DISPLAY_NAME = "OpenAI-compatible"

    def _headers(self, streaming: bool = False) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }
        if streaming:
            headers["Accept"] = "text/event-stream"
        return headers

    def _question_request(self, question: str) -> ChatCompletionRequest:
        return ChatCompletionRequest(
            model=self.config.model,
            messages=[
                ChatMessage(role="system", content=self.config.system_prompt),
                ChatMessage(role="user", content=question),
            ],
        )

    # ---- base contract ----

    async def ask(self, question: str) -> str:
        response = await self.chat_completion(self._question_request(question))
        if not response.choices:
            raise UpstreamError(f"{self.name} returned no choices", provider=self.name)

        message = response.choices[0].message
        if message is None or message.content is None:
            raise UpstreamError(
                f"{self.name} response has no message content", provider=self.name,
            )
        return message.text

    async def check_connection(self) -> None:
        logger.info("%s connection check passed (static)", self.name)

    # ---- streaming chat capability ----

    async def chat_completion(
        self, request: ChatCompletionRequest,
    ) -> ChatCompletionResponse:
        request = request.model_copy(update={"stream": False})
        data = await self._post_json(
            self.config.api_url, request.to_payload(), headers=self._headers(),
        )
        try:
            return ChatCompletionResponse.model_validate(data)
        except ValidationError as e:
            raise UpstreamError(
                f"{self.name} returned an unparsable completion", provider=self.name,
            ) from e

    def chat_completion_stream(
        self, request: ChatCompletionRequest, cancel: asyncio.Event,
    ) -> FragmentStream:
        request = request.model_copy(update={"stream": True})
        stream = FragmentStream.open(self.config.stream_buffer_size)
        return stream.start(self._read_stream(request, stream, cancel))

    async def _read_stream(
        self,
        request: ChatCompletionRequest,
        stream: FragmentStream,
        cancel: asyncio.Event,
    ) -> None:
        """Upstream task: open the streaming POST and pump its body."""
        logger.debug("Opening %s stream (model=%s)", self.name, request.model)
        try:
            async with self.client.stream(
                "POST",
                self.config.api_url,
                json=request.to_payload(),
                headers=self._headers(streaming=True),
                timeout=self.config.stream_timeout,
            ) as response:
                if not response.is_success:
                    body = await response.aread()
                    raise UpstreamError(
                        f"{self.name} API returned status {response.status_code}: "
                        f"{body[:500].decode('utf-8', errors='replace')}",
                        provider=self.name,
                        upstream_status=response.status_code,
                    )
                await pump_fragments(response.aiter_lines(), stream, cancel)
        except UpstreamError as e:
            stream.fail(e)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            stream.fail(UpstreamError(f"{self.name} request failed: {e}", provider=self.name))
        except Exception as e:
            # Anything unclassified still ends the stream as a failure
            logger.exception("%s stream reader crashed", self.name)
            stream.fail(UpstreamError(f"{self.name} stream failed: {e}", provider=self.name))
        finally:
            stream.close()

    # ---- request builders ----

    def create_tool_call_request(
        self,
        messages: list[ChatMessage],
        tools: list[Tool],
        tool_choice: str | dict | None = "auto",
    ) -> ChatCompletionRequest:
        """Request that offers `tools` to the model."""
        return ChatCompletionRequest(
            model=self.config.model,
            messages=messages,
            tools=tools,
            tool_choice=tool_choice,
        )

    def create_image_request(
        self, text: str, image_url: str, detail: str | None = None,
    ) -> ChatCompletionRequest:
        """Single user message combining a text prompt and an image."""
        content = [
            ContentPart(type="text", text=text),
            ContentPart(type="image_url", image_url=ImageURL(url=image_url, detail=detail)),
        ]
        return ChatCompletionRequest(
            model=self.config.model,
            messages=[ChatMessage(role="user", content=content)],
        )


class OpenAIProvider(OpenAICompatibleProvider):
    DISPLAY_NAME = "OpenAI"
