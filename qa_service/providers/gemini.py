# =============================================================================
# Google Gemini Provider — generateContent API
# =============================================================================
#
# POST {api_url}/models/{model}:generateContent
#   auth:    x-goog-api-key: <api_key>
#   request: {"contents": [{"parts": [{"text": "..."}]}]}
#   answer:  candidates[0].content.parts[0].text
#
# Base contract only (no streaming capability).
# =============================================================================

from __future__ import annotations

import logging

from pydantic import BaseModel, Field, ValidationError

from qa_service.providers.base import HTTPProvider
from qa_service.services.exceptions import UpstreamError

logger = logging.getLogger(__name__)


class GeminiPart(BaseModel):
    text: str = ""


class GeminiContent(BaseModel):
    parts: list[GeminiPart] = Field(default_factory=list)


class GeminiCandidate(BaseModel):
    content: GeminiContent = Field(default_factory=GeminiContent)


class GeminiResponse(BaseModel):
    candidates: list[GeminiCandidate] = Field(default_factory=list)


class GeminiProvider(HTTPProvider):
    DEFAULT_URL = "https://generativelanguage.googleapis.com/v1beta"
    DEFAULT_MODEL = "gemini-2.5-flash"
    DISPLAY_NAME = "Google Gemini"

    async def ask(self, question: str) -> str:
        url = f"{self.config.api_url.rstrip('/')}/models/{self.config.model}:generateContent"
        payload = {"contents": [{"parts": [{"text": question}]}]}
        data = await self._post_json(
            url,
            payload,
            headers={
                "Content-Type": "application/json",
                "x-goog-api-key": self.config.api_key,
            },
        )

        try:
            response = GeminiResponse.model_validate(data)
        except ValidationError as e:
            raise UpstreamError("Gemini returned an unparsable body", provider=self.name) from e

        if not response.candidates or not response.candidates[0].content.parts:
            raise UpstreamError("Gemini response has no content", provider=self.name)
        return response.candidates[0].content.parts[0].text

    async def check_connection(self) -> None:
        try:
            await self.ask("Hello")
        except UpstreamError as e:
            if e.extra.get("upstream_status") in (401, 403):
                raise UpstreamError(
                    "Gemini API authentication failed; check the API key",
                    provider=self.name,
                ) from e
            raise UpstreamError(
                f"Gemini API connection check failed: {e.message}", provider=self.name,
            ) from e
        logger.info("Gemini API connection check passed")
