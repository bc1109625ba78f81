# =============================================================================
# LLM Client — One Entry Point Over the Selected Provider
# =============================================================================
#
# The rest of the service never talks to a vendor provider directly. It
# talks to an LLMClient, built once at startup from configuration:
#
#   LLMClient
#   ├── ask(question)              — delegates to the provider
#   ├── supports_streaming()       — resolved once at construction
#   ├── stream_chat(question, cancel) — system prompt + question, stream=True
#   ├── check_connection()         — provider liveness probe
#   └── provider_info()            — for /api/health
#
# Switching providers is a configuration change:
#   LLM_PROVIDER=openai
#   LLM_API_KEY=sk-...
#   LLM_MODEL=gpt-4o-mini          (optional, provider default otherwise)
#   LLM_API_URL=https://...        (optional, provider default otherwise)
#
# Unknown or empty provider names fall back to the mock provider with a
# warning: misconfiguration degrades to demo answers instead of failing
# startup.
#
# The client and its provider are read-only after construction and shared
# by all concurrent requests.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

import httpx

from qa_service.config import Settings
from qa_service.providers import (
    AliProvider,
    BaiduProvider,
    BellaProvider,
    ChatCompletionProvider,
    FragmentStream,
    GeminiProvider,
    LLMProvider,
    MockProvider,
    OpenAIProvider,
    ProviderConfig,
)
from qa_service.providers.chat_types import ChatCompletionRequest, ChatMessage
from qa_service.services.exceptions import UnsupportedOperationError

logger = logging.getLogger(__name__)

# Used for streaming requests when no model is configured
FALLBACK_MODEL = "gpt-3.5-turbo"

ProviderFactory = Callable[[ProviderConfig, httpx.AsyncBaseTransport | None], LLMProvider]


def _mock_factory(config: ProviderConfig, transport=None) -> LLMProvider:
    return MockProvider()


# Normalised (lower-case) vendor name → provider constructor
PROVIDER_REGISTRY: dict[str, ProviderFactory] = {
    "openai": OpenAIProvider,
    "bella": BellaProvider,
    "ali": AliProvider,
    "qwen": AliProvider,
    "tongyi": AliProvider,
    "baidu": BaiduProvider,
    "wenxin": BaiduProvider,
    "gemini": GeminiProvider,
    "google": GeminiProvider,
    "mock": _mock_factory,
}


class LLMClient:
    """
    Uniform contract over the provider selected by `config.name`.

    `transport` is forwarded to HTTP providers (tests pass an
    httpx.MockTransport). `provider` bypasses the registry entirely.
    """

    def __init__(
        self,
        config: ProviderConfig,
        transport: httpx.AsyncBaseTransport | None = None,
        provider: LLMProvider | None = None,
    ) -> None:
        self.config = config
        self._provider = provider or self._select_provider(config, transport)

        # Capability check happens once; requests only read the result
        self._chat: ChatCompletionProvider | None = (
            self._provider
            if isinstance(self._provider, ChatCompletionProvider)
            else None
        )

        logger.info(
            "Initialized LLM provider: %s (streaming=%s)",
            self._provider.name,
            self._chat is not None,
        )

    @staticmethod
    def _select_provider(
        config: ProviderConfig,
        transport: httpx.AsyncBaseTransport | None,
    ) -> LLMProvider:
        key = (config.name or "").strip().lower()
        factory = PROVIDER_REGISTRY.get(key)
        if factory is None:
            logger.warning(
                "Unknown LLM provider %r, falling back to the mock provider",
                config.name,
            )
            factory = _mock_factory
        return factory(config, transport)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> LLMClient:
        config = ProviderConfig(
            name=settings.llm_provider,
            api_key=settings.llm_api_key,
            api_url=settings.llm_api_url,
            model=settings.llm_model,
            timeout=settings.llm_timeout,
            stream_timeout=settings.llm_stream_timeout,
            system_prompt=settings.llm_system_prompt,
            stream_buffer_size=settings.stream_buffer_size,
        )
        return cls(config, transport=transport)

    @property
    def provider(self) -> LLMProvider:
        return self._provider

    async def ask(self, question: str) -> str:
        """Answer `question` with the selected provider; errors propagate."""
        logger.info("Asking %s: '%s'", self._provider.name, question[:80])
        answer = await self._provider.ask(question)
        logger.info("%s answered (%d chars)", self._provider.name, len(answer))
        return answer

    def supports_streaming(self) -> bool:
        return self._chat is not None

    def stream_chat(self, question: str, cancel: asyncio.Event) -> FragmentStream:
        """
        Start a streaming chat completion for `question`.

        Raises:
            UnsupportedOperationError: the selected provider cannot stream.
        """
        if self._chat is None:
            raise UnsupportedOperationError(
                f"Provider {self._provider.name} does not support streaming chat",
            )

        model = self.config.model or FALLBACK_MODEL
        request = ChatCompletionRequest(
            model=model,
            messages=[
                ChatMessage(role="system", content=self.config.system_prompt),
                ChatMessage(role="user", content=question),
            ],
            stream=True,
        )
        logger.info(
            "Streaming with %s (model=%s): '%s'",
            self._provider.name,
            model,
            question[:80],
        )
        return self._chat.chat_completion_stream(request, cancel)

    async def check_connection(self) -> None:
        await self._provider.check_connection()

    async def aclose(self) -> None:
        """Release provider resources, for providers that hold any."""
        close = getattr(self._provider, "aclose", None)
        if close is not None:
            await close()

    def provider_info(self) -> dict[str, str | bool]:
        return {
            "provider": self._provider.name,
            "status": "active",
            "streaming": self.supports_streaming(),
            "model": getattr(getattr(self._provider, "config", None), "model", "") or "",
        }
