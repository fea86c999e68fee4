from typing import Dict, Optional, Type

import httpx

from pingai.core.base import LLMProvider
from .anthropic_compatible import AnthropicCompatibleProvider
from .gemini_compatible import GeminiCompatibleProvider
from .openai_compatible import OpenAICompatibleProvider

ADAPTERS: Dict[str, Type[LLMProvider]] = {
    "openai": OpenAICompatibleProvider,
    "anthropic": AnthropicCompatibleProvider,
    "gemini": GeminiCompatibleProvider,
}


def get_adapter(protocol: str, client: Optional[httpx.AsyncClient] = None, timeout: float = 30.0) -> LLMProvider:
    """Pick the adapter for a protocol id; unknown ids fall back to OpenAI-compatible."""
    adapter_cls = ADAPTERS.get((protocol or "").strip().lower(), OpenAICompatibleProvider)
    return adapter_cls(client=client, timeout=timeout)


__all__ = [
    "ADAPTERS",
    "AnthropicCompatibleProvider",
    "GeminiCompatibleProvider",
    "OpenAICompatibleProvider",
    "get_adapter",
]
