import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Protocol, Tuple

import httpx

from .errors import ModelListError
from .schema import ChatRequest, ChatResponse, FullCheckResult
from .utils import is_success, truncate

logger = logging.getLogger(__name__)

# on_chunk(delta_text, is_first_chunk)
StreamCallback = Callable[[str, bool], None]

RAW_BODY_LIMIT = 300
MODELS_ERROR_LIMIT = 200

# (url, query params, headers, json payload)
HttpCall = Tuple[str, Dict[str, str], Dict[str, str], Optional[Dict[str, Any]]]


def normalize_base_url(base_url: str) -> str:
    base_url = (base_url or "").strip()
    # Auto-fix protocol if missing
    if base_url and not base_url.startswith(("http://", "https://")):
        if "localhost" in base_url or "127.0.0.1" in base_url or "0.0.0.0" in base_url:
            base_url = "http://" + base_url
        else:
            base_url = "https://" + base_url
    return base_url.rstrip("/")


class LLMProvider(ABC):
    """
    One wire protocol behind the four probe operations.

    Subclasses only describe their wire shapes (URLs, headers, payloads and
    response parsing); transport handling, soft-failure mapping and streaming
    live here so every protocol behaves the same at the boundary.
    """

    protocol: str = ""
    decoder = None  # SSE decoder instance, set by subclasses

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = 30.0):
        self._client = client
        self._timeout = timeout

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self._timeout, follow_redirects=True) as client:
            yield client

    # --- wire description, per protocol ---

    @abstractmethod
    def _chat_call(self, request: ChatRequest, stream: bool) -> HttpCall:
        pass

    @abstractmethod
    def _models_call(self, base_url: str, api_key: str) -> HttpCall:
        pass

    @abstractmethod
    def _parse_chat(self, status_code: int, data: Dict[str, Any]) -> ChatResponse:
        pass

    @abstractmethod
    def _parse_models(self, data: Dict[str, Any]) -> List[str]:
        pass

    # --- probe operations ---

    async def check_connectivity(self, base_url: str, api_key: str) -> int:
        """Cheapest authenticated GET; returns the status code, body left unread."""
        url, params, headers, _ = self._models_call(base_url, api_key)
        logger.debug("[%s] GET %s (connectivity)", self.protocol, url)
        async with self._http() as client:
            async with client.stream("GET", url, params=params or None, headers=headers) as response:
                return response.status_code

    async def chat(self, request: ChatRequest) -> ChatResponse:
        url, params, headers, payload = self._chat_call(request, stream=False)
        logger.debug("[%s] POST %s model=%s", self.protocol, url, request.model)
        async with self._http() as client:
            response = await client.post(url, params=params or None, headers=headers, json=payload)

        body = response.text
        if not is_success(response.status_code):
            return self._http_error(response.status_code, body)

        try:
            data = response.json()
        except ValueError:
            return self._parse_error(response.status_code, body)
        if not isinstance(data, dict):
            return self._parse_error(response.status_code, body)

        error = data.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else error
            return ChatResponse(status_code=response.status_code, error=str(message or "unknown provider error"))

        try:
            return self._parse_chat(response.status_code, data)
        except (AttributeError, IndexError, KeyError, TypeError, ValueError):
            return self._parse_error(response.status_code, body)

    async def chat_stream(self, request: ChatRequest, on_chunk: Optional[StreamCallback] = None) -> ChatResponse:
        url, params, headers, payload = self._chat_call(request, stream=True)
        logger.debug("[%s] POST %s model=%s (stream)", self.protocol, url, request.model)
        async with self._http() as client:
            async with client.stream("POST", url, params=params or None, headers=headers, json=payload) as response:
                if not is_success(response.status_code):
                    body = await response.aread()
                    return self._http_error(response.status_code, body.decode("utf-8", errors="replace"))
                return await self.decoder.decode(response.aiter_lines(), on_chunk, status_code=response.status_code)

    async def list_models(self, base_url: str, api_key: str) -> List[str]:
        url, params, headers, _ = self._models_call(base_url, api_key)
        logger.debug("[%s] GET %s", self.protocol, url)
        async with self._http() as client:
            response = await client.get(url, params=params or None, headers=headers)

        if not is_success(response.status_code):
            raise ModelListError(f"HTTP {response.status_code}: {truncate(response.text, MODELS_ERROR_LIMIT)}")
        return self._parse_models(response.json())

    # --- soft failures ---

    @staticmethod
    def _http_error(status_code: int, body: str) -> ChatResponse:
        return ChatResponse(
            status_code=status_code,
            error=f"HTTP {status_code}",
            raw_body=truncate(body, RAW_BODY_LIMIT),
        )

    @staticmethod
    def _parse_error(status_code: int, body: str) -> ChatResponse:
        return ChatResponse(
            status_code=status_code,
            error="JSON parse error",
            raw_body=truncate(body, RAW_BODY_LIMIT),
        )


class HistoryStore(Protocol):
    """Sink for finished runs, owned by the caller."""

    def save(self, result: FullCheckResult) -> None:
        ...
