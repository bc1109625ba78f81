"""Bella provider: an OpenAI-compatible gateway with a real connection probe."""

from __future__ import annotations

import logging

from qa_service.providers.chat_types import ChatCompletionRequest, ChatMessage
from qa_service.providers.openai_compat import OpenAICompatibleProvider
from qa_service.services.exceptions import UpstreamError

logger = logging.getLogger(__name__)


class BellaProvider(OpenAICompatibleProvider):
    DEFAULT_URL = "https://api.bella.com/v1/chat/completions"
    DEFAULT_MODEL = "gpt-4o"
    DISPLAY_NAME = "Bella"

    async def check_connection(self) -> None:
        # One-token completion; cheap but exercises auth and routing
        probe = ChatCompletionRequest(
            model=self.config.model,
            messages=[ChatMessage(role="user", content="Hello")],
            max_tokens=1,
        )
        try:
            await self.chat_completion(probe)
        except UpstreamError as e:
            raise UpstreamError(
                f"Bella API connection check failed: {e.message}", provider=self.name,
            ) from e
        logger.info("Bella API connection check passed")
