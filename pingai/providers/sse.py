"""
Incremental server-sent-event decoders.

Each decoder walks the response line by line and hands every non-empty text
delta to the caller's callback as soon as it is parsed, so time-to-first-token
measured in the callback matches the arrival of the first delta.
"""

import json
import logging
from typing import Any, AsyncIterable, Dict, Iterable, Optional

import httpx

from pingai.core.base import StreamCallback
from pingai.core.schema import ChatResponse

logger = logging.getLogger(__name__)


class SSEDecoder:
    prefix = "data: "
    sentinel = "[DONE]"

    def extract(self, event: Dict[str, Any]) -> Iterable[str]:
        raise NotImplementedError

    async def decode(
        self,
        lines: AsyncIterable[str],
        on_chunk: Optional[StreamCallback] = None,
        status_code: int = 200,
    ) -> ChatResponse:
        parts = []
        try:
            async for raw in lines:
                line = raw.strip()
                if not line.startswith(self.prefix):
                    continue
                data = line[len(self.prefix):].strip()
                if not data or data == self.sentinel:
                    continue
                try:
                    event = json.loads(data)
                    deltas = [text for text in self.extract(event) if text and isinstance(text, str)]
                except (ValueError, AttributeError, IndexError, KeyError, TypeError):
                    continue

                for text in deltas:
                    parts.append(text)
                    if on_chunk is not None:
                        on_chunk(text, len(parts) == 1)
        except httpx.HTTPError as e:
            # Best effort: keep whatever already arrived.
            logger.warning("Stream read interrupted after %d chunks: %s", len(parts), e)

        return ChatResponse(content="".join(parts), status_code=status_code)


class OpenAIStreamDecoder(SSEDecoder):
    def extract(self, event):
        choices = event.get("choices") or []
        if not choices:
            return []
        delta = choices[0].get("delta") or {}
        return [delta.get("content") or ""]


class AnthropicStreamDecoder(SSEDecoder):
    def extract(self, event):
        delta = event.get("delta")
        if not delta or delta.get("type") != "text_delta":
            return []
        return [delta.get("text") or ""]


class GeminiStreamDecoder(SSEDecoder):
    def extract(self, event):
        candidates = event.get("candidates") or []
        if not candidates:
            return []
        content = candidates[0].get("content") or {}
        return [part.get("text") or "" for part in content.get("parts") or []]
