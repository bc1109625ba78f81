# =============================================================================
# Providers Package — Vendor LLM Backends
# =============================================================================
#   base.py          → ProviderConfig, LLMProvider / ChatCompletionProvider
#                      protocols, HTTPProvider base
#   chat_types.py    → OpenAI-compatible request/response/fragment schemas
#   stream.py        → HandOff channels + FragmentStream
#   sse.py           → Streaming transport decoder
#   openai_compat.py → OpenAI (+ compatible) provider, streaming-capable
#   bella.py         → Bella gateway, streaming-capable
#   ali.py, baidu.py, gemini.py → non-streaming vendor providers
#   mock.py          → offline demo provider
# =============================================================================

from qa_service.providers.ali import AliProvider
from qa_service.providers.baidu import BaiduProvider
from qa_service.providers.base import (
    ChatCompletionProvider,
    HTTPProvider,
    LLMProvider,
    ProviderConfig,
)
from qa_service.providers.bella import BellaProvider
from qa_service.providers.gemini import GeminiProvider
from qa_service.providers.mock import MockProvider
from qa_service.providers.openai_compat import OpenAICompatibleProvider, OpenAIProvider
from qa_service.providers.stream import FragmentStream, HandOff

__all__ = [
    "AliProvider",
    "BaiduProvider",
    "BellaProvider",
    "ChatCompletionProvider",
    "FragmentStream",
    "GeminiProvider",
    "HTTPProvider",
    "HandOff",
    "LLMProvider",
    "MockProvider",
    "OpenAICompatibleProvider",
    "OpenAIProvider",
    "ProviderConfig",
]
