"""Alibaba DashScope (Qwen / Tongyi) text-generation provider."""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field, ValidationError

from qa_service.providers.base import HTTPProvider
from qa_service.providers.chat_types import ChatMessage
from qa_service.services.exceptions import UpstreamError

logger = logging.getLogger(__name__)


class DashScopeChoice(BaseModel):
    message: ChatMessage | None = None
    finish_reason: str | None = None


class DashScopeOutput(BaseModel):
    choices: list[DashScopeChoice] = Field(default_factory=list)


class DashScopeResponse(BaseModel):
    output: DashScopeOutput | None = None
    request_id: str | None = None


class AliProvider(HTTPProvider):
    DEFAULT_URL = (
        "https://dashscope.aliyuncs.com/api/v1/services/aigc/text-generation/generation"
    )
    DEFAULT_MODEL = "qwen-turbo"
    DISPLAY_NAME = "Alibaba Qwen"

    async def ask(self, question: str) -> str:
        payload = {
            "model": self.config.model,
            "input": {
                "messages": [
                    {"role": "system", "content": self.config.system_prompt},
                    {"role": "user", "content": question},
                ],
            },
            # "message" makes DashScope answer in the chat-style choices layout
            "parameters": {"result_format": "message"},
        }
        data = await self._post_json(
            self.config.api_url,
            payload,
            headers={
                "Authorization": f"Bearer {self.config.api_key}",
                "Content-Type": "application/json",
            },
        )

        try:
            response = DashScopeResponse.model_validate(data)
        except ValidationError as e:
            raise UpstreamError("DashScope returned an unparsable body", provider=self.name) from e

        if response.output is None or not response.output.choices:
            raise UpstreamError("DashScope response has no choices", provider=self.name)
        message = response.output.choices[0].message
        if message is None or message.content is None:
            raise UpstreamError("DashScope response has no message content", provider=self.name)
        return message.text

    async def check_connection(self) -> None:
        logger.info("Alibaba Qwen connection check passed (static)")
