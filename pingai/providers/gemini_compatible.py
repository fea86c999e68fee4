from typing import Any, Dict, List

from pingai.core.base import HttpCall, LLMProvider, normalize_base_url
from pingai.core.schema import ChatRequest, ChatResponse
from .sse import GeminiStreamDecoder

# Gemini calls the assistant side of a conversation "model".
ROLE_MAP = {"assistant": "model"}


class GeminiCompatibleProvider(LLMProvider):
    """Native generativelanguage API; the key travels as a `key` query parameter."""

    protocol = "gemini"
    decoder = GeminiStreamDecoder()

    def _chat_call(self, request: ChatRequest, stream: bool) -> HttpCall:
        contents = [
            {"role": ROLE_MAP.get(m.role, m.role), "parts": [{"text": m.content}]}
            for m in request.messages
        ]
        base_url = normalize_base_url(request.base_url)
        key = (request.api_key or "").strip()
        # ListModels returns "models/<id>"; the path already carries that segment.
        model = request.model
        if model.startswith("models/"):
            model = model[len("models/"):]
        headers = {"Content-Type": "application/json"}
        if stream:
            url = f"{base_url}/models/{model}:streamGenerateContent"
            params = {"alt": "sse", "key": key}
        else:
            url = f"{base_url}/models/{model}:generateContent"
            params = {"key": key}
        return url, params, headers, {"contents": contents}

    def _models_call(self, base_url: str, api_key: str) -> HttpCall:
        return f"{normalize_base_url(base_url)}/models", {"key": (api_key or "").strip()}, {}, None

    def _parse_chat(self, status_code: int, data: Dict[str, Any]) -> ChatResponse:
        candidates = data.get("candidates") or []
        parts = []
        if candidates:
            parts = (candidates[0].get("content") or {}).get("parts") or []
        if not parts:
            return ChatResponse(status_code=status_code, error="empty response")

        usage = data.get("usageMetadata") or {}
        return ChatResponse(
            content=parts[0].get("text") or "",
            prompt_tokens=usage.get("promptTokenCount") or 0,
            completion_tokens=usage.get("candidatesTokenCount") or 0,
            status_code=status_code,
        )

    def _parse_models(self, data: Dict[str, Any]) -> List[str]:
        # "models/gemini-1.5-pro" -> "gemini-1.5-pro"
        return [m["name"].rsplit("/", 1)[-1] for m in data.get("models") or []]
