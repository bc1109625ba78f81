# =============================================================================
# Provider Contracts — Pluggable LLM Backends
# =============================================================================
#
# Two Protocols describe what a vendor backend can do:
#
#   LLMProvider (base, every provider)
#   ├── name                 — display string
#   ├── ask(question)        — one question in, one answer out
#   └── check_connection()   — best-effort liveness probe
#
#   ChatCompletionProvider (optional, streaming-capable providers)
#   ├── chat_completion(request)               — single round trip
#   └── chat_completion_stream(request, cancel) — FragmentStream
#
# LLMClient checks ChatCompletionProvider once at construction
# (runtime_checkable isinstance) and remembers the answer.
#
# HTTPProvider is the shared base for vendor implementations: it owns the
# ProviderConfig (with vendor defaults filled in), one pooled httpx client
# (released by aclose) and the JSON POST helper that maps network errors,
# invalid URLs, non-2xx statuses and unparsable bodies to UpstreamError.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Protocol, runtime_checkable

import httpx

from qa_service.providers.chat_types import (
    ChatCompletionRequest,
    ChatCompletionResponse,
)
from qa_service.providers.stream import FragmentStream
from qa_service.services.exceptions import UpstreamError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderConfig:
    """Vendor selection and credentials; immutable once the client is built."""

    name: str
    api_key: str = ""
    api_url: str = ""
    model: str = ""
    timeout: float = 30.0
    stream_timeout: float = 60.0
    system_prompt: str = "You are a helpful AI assistant."
    stream_buffer_size: int = 100


# ---------------------------------------------------------------------------
# Protocol Definitions
# ---------------------------------------------------------------------------


@runtime_checkable
class LLMProvider(Protocol):
    """Base capability every provider implements."""

    @property
    def name(self) -> str:
        ...

    async def ask(self, question: str) -> str:
        """
        Answer a single question.

        Raises:
            UpstreamError: network failure, non-2xx status, or a response
                body that does not have the expected shape.
        """
        ...

    async def check_connection(self) -> None:
        """Raise UpstreamError when the provider is unreachable."""
        ...


@runtime_checkable
class ChatCompletionProvider(LLMProvider, Protocol):
    """Optional streaming chat capability."""

    async def chat_completion(
        self, request: ChatCompletionRequest,
    ) -> ChatCompletionResponse:
        ...

    def chat_completion_stream(
        self, request: ChatCompletionRequest, cancel: asyncio.Event,
    ) -> FragmentStream:
        """
        Start streaming `request` on a background task.

        Returns immediately; fragments and at most one UpstreamError arrive
        on the returned stream's channels, both closed when the upstream
        read ends.
        """
        ...


# ---------------------------------------------------------------------------
# Shared HTTP Base
# ---------------------------------------------------------------------------


class HTTPProvider:
    """
    Base class for providers backed by a vendor HTTP API.

    Subclasses set DEFAULT_URL / DEFAULT_MODEL / DISPLAY_NAME. `transport`
    lets tests plug in an httpx.MockTransport.
    """

    DEFAULT_URL: str = ""
    DEFAULT_MODEL: str = ""
    DISPLAY_NAME: str = ""

    def __init__(
        self,
        config: ProviderConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = replace(
            config,
            api_url=config.api_url or self.DEFAULT_URL,
            model=config.model or self.DEFAULT_MODEL,
        )
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    @property
    def name(self) -> str:
        return self.DISPLAY_NAME

    @property
    def client(self) -> httpx.AsyncClient:
        """Shared HTTP client, created on first use and reused across requests."""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                timeout=self.config.timeout,
                transport=self._transport,
            )
        return self._http

    async def aclose(self) -> None:
        """Close the shared HTTP client; the next request opens a new one."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None
            logger.debug("%s HTTP client closed", self.name)

    async def _post_json(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """
        POST `payload` as JSON and return the decoded JSON object.

        Raises:
            UpstreamError: request failed (including an invalid URL), status
                was not 2xx, or the body was not a JSON object.
        """
        try:
            response = await self.client.post(
                url,
                json=payload,
                headers=headers,
                params=params,
                timeout=timeout or self.config.timeout,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise UpstreamError(
                f"{self.name} request failed: {e}", provider=self.name,
            ) from e

        if not response.is_success:
            raise UpstreamError(
                f"{self.name} API returned status {response.status_code}: "
                f"{response.text[:500]}",
                provider=self.name,
                upstream_status=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError(
                f"{self.name} returned a non-JSON body", provider=self.name,
            ) from e
        if not isinstance(data, dict):
            raise UpstreamError(
                f"{self.name} returned an unexpected body", provider=self.name,
            )
        return data
