from typing import Any, Dict, List

from pingai.core.base import HttpCall, LLMProvider, normalize_base_url
from pingai.core.schema import ChatRequest, ChatResponse
from .sse import AnthropicStreamDecoder

ANTHROPIC_VERSION = "2023-06-01"
MAX_TOKENS = 256


class AnthropicCompatibleProvider(LLMProvider):
    """Messages API: `/messages`, `x-api-key` auth and a pinned `anthropic-version`."""

    protocol = "anthropic"
    decoder = AnthropicStreamDecoder()

    def _headers(self, api_key: str) -> Dict[str, str]:
        return {
            "x-api-key": (api_key or "").strip(),
            "anthropic-version": ANTHROPIC_VERSION,
        }

    def _chat_call(self, request: ChatRequest, stream: bool) -> HttpCall:
        headers = self._headers(request.api_key)
        headers["Content-Type"] = "application/json"
        payload = {
            "model": request.model,
            "messages": [{"role": m.role, "content": m.content} for m in request.messages],
            "max_tokens": MAX_TOKENS,
        }
        if stream:
            payload["stream"] = True
            headers["Accept"] = "text/event-stream"
        return f"{normalize_base_url(request.base_url)}/messages", {}, headers, payload

    def _models_call(self, base_url: str, api_key: str) -> HttpCall:
        return f"{normalize_base_url(base_url)}/models", {}, self._headers(api_key), None

    def _parse_chat(self, status_code: int, data: Dict[str, Any]) -> ChatResponse:
        content = data.get("content") or []
        if not content:
            return ChatResponse(status_code=status_code, error="empty content")

        usage = data.get("usage") or {}
        return ChatResponse(
            content=content[0].get("text") or "",
            prompt_tokens=usage.get("input_tokens") or 0,
            completion_tokens=usage.get("output_tokens") or 0,
            status_code=status_code,
        )

    def _parse_models(self, data: Dict[str, Any]) -> List[str]:
        return [m["id"] for m in data.get("data") or []]
