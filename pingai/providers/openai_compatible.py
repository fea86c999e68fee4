from typing import Any, Dict, List

from pingai.core.base import HttpCall, LLMProvider, normalize_base_url
from pingai.core.schema import ChatRequest, ChatResponse
from .sse import OpenAIStreamDecoder


class OpenAICompatibleProvider(LLMProvider):
    """`/chat/completions` + `/models` with a Bearer token; also the fallback for unknown protocols."""

    protocol = "openai"
    decoder = OpenAIStreamDecoder()

    def _headers(self, api_key: str) -> Dict[str, str]:
        # Strip whitespace to prevent "Illegal header value" errors
        return {"Authorization": f"Bearer {(api_key or '').strip()}"}

    def _chat_call(self, request: ChatRequest, stream: bool) -> HttpCall:
        headers = self._headers(request.api_key)
        headers["Content-Type"] = "application/json"
        payload = {
            "model": request.model,
            "messages": [{"role": m.role, "content": m.content} for m in request.messages],
        }
        if stream:
            payload["stream"] = True
            headers["Accept"] = "text/event-stream"
        return f"{normalize_base_url(request.base_url)}/chat/completions", {}, headers, payload

    def _models_call(self, base_url: str, api_key: str) -> HttpCall:
        return f"{normalize_base_url(base_url)}/models", {}, self._headers(api_key), None

    def _parse_chat(self, status_code: int, data: Dict[str, Any]) -> ChatResponse:
        choices = data.get("choices") or []
        if not choices:
            return ChatResponse(status_code=status_code, error="empty choices")

        message = choices[0].get("message") or {}
        usage = data.get("usage") or {}
        return ChatResponse(
            content=message.get("content") or "",
            prompt_tokens=usage.get("prompt_tokens") or 0,
            completion_tokens=usage.get("completion_tokens") or 0,
            status_code=status_code,
        )

    def _parse_models(self, data: Dict[str, Any]) -> List[str]:
        return [m["id"] for m in data.get("data") or []]
