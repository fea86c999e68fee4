"""
Check orchestrator.

One run per provider configuration: a connectivity gate, then chat, stream,
models and multi-turn checks running concurrently, each with its own deadline
and its own failure domain. Every failure is turned into a ``CheckResult``;
nothing raised by an adapter leaves ``run_full_check``.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Callable, List, Optional, Tuple

import httpx

from pingai.config.settings import Settings, settings as default_settings
from pingai.providers import get_adapter
from .base import LLMProvider
from .errors import CheckTimeoutError
from .schema import (
    ChatMessage,
    ChatRequest,
    CheckItem,
    CheckResult,
    CheckStatus,
    FullCheckResult,
    ProviderConfig,
)
from .utils import run_with_timeout, truncate

logger = logging.getLogger(__name__)

TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
PREVIEW_LIMIT = 100
MODEL_PREVIEW_COUNT = 5

AdapterFactory = Callable[..., LLMProvider]


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _now() -> str:
    return datetime.now().strftime(TIME_FORMAT)


def _describe(error: BaseException) -> str:
    return str(error) or type(error).__name__


def classify_connectivity(status_code: Optional[int], error: Optional[BaseException] = None) -> Tuple[CheckStatus, str, str]:
    """Map a connectivity probe outcome to (status, message, detail)."""
    if error is not None:
        return CheckStatus.FAILED, "Network unreachable", _describe(error)
    if status_code in (401, 403):
        return CheckStatus.WARNING, f"Reachable, authentication failed (HTTP {status_code})", "Check the API key"
    if 200 <= status_code < 500:
        return CheckStatus.SUCCESS, f"Reachable (HTTP {status_code})", ""
    return CheckStatus.FAILED, f"Service error (HTTP {status_code})", ""


def crashed_result(config: ProviderConfig, error: BaseException, start_time: str = "", total_latency: int = 0) -> FullCheckResult:
    """A run that could not even start: one failed connectivity entry carrying the error."""
    return FullCheckResult(
        provider_id=config.provider_id,
        provider_name=config.provider_name,
        base_url=config.base_url,
        model=config.model,
        protocol=config.protocol,
        results=[
            CheckResult(
                item=CheckItem.CONNECTIVITY,
                status=CheckStatus.FAILED,
                message="Check crashed",
                detail=_describe(error),
            )
        ],
        start_time=start_time or _now(),
        end_time=_now(),
        total_latency=total_latency,
    )


class Checker:
    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        settings: Optional[Settings] = None,
        adapter_factory: AdapterFactory = get_adapter,
    ):
        self._client = client
        self._settings = settings or default_settings
        self._adapter_factory = adapter_factory

    async def run_full_check(self, config: ProviderConfig) -> FullCheckResult:
        start = time.perf_counter()
        start_time = _now()
        try:
            adapter = self._adapter_factory(config.protocol, client=self._client, timeout=self._settings.HTTP_TIMEOUT)
        except Exception as e:
            logger.exception("Could not build an adapter for protocol %r", config.protocol)
            return crashed_result(config, e, start_time, _elapsed_ms(start))
        logger.info("Checking %s (%s, %s)", config.provider_name or config.base_url, config.protocol, config.model)

        results: List[CheckResult] = []
        model_list: List[str] = []

        connectivity = await self._guard(CheckItem.CONNECTIVITY, self.check_connectivity(adapter, config))
        results.append(connectivity)

        if connectivity.status != CheckStatus.FAILED:
            chat, stream, models, multi_turn = await asyncio.gather(
                self._guard(CheckItem.CHAT, self.check_chat(adapter, config)),
                self._guard(CheckItem.STREAM, self.check_stream(adapter, config)),
                self._guard(CheckItem.MODELS, self.check_models(adapter, config)),
                self._guard(CheckItem.MULTI_TURN, self.check_multi_turn(adapter, config)),
            )
            if isinstance(models, tuple):
                models, model_list = models
            results.extend([chat, stream, models, multi_turn])
        else:
            logger.warning("%s: connectivity failed, skipping remaining checks", config.provider_name or config.base_url)

        return FullCheckResult(
            provider_id=config.provider_id,
            provider_name=config.provider_name,
            base_url=config.base_url,
            model=config.model,
            protocol=config.protocol,
            results=results,
            model_list=model_list,
            start_time=start_time,
            end_time=_now(),
            total_latency=_elapsed_ms(start),
        )

    async def _guard(self, item: CheckItem, coro):
        """Last line of isolation: anything a check lets escape becomes a failed result."""
        try:
            result = await coro
        except Exception as e:
            logger.exception("%s check crashed", item.value)
            result = CheckResult(item=item, status=CheckStatus.FAILED, message="Check crashed", detail=_describe(e))
        check = result[0] if isinstance(result, tuple) else result
        logger.info("%s -> %s: %s", item.value, check.status.value, check.message)
        return result

    def _request(self, config: ProviderConfig, messages: List[ChatMessage], stream: bool = False) -> ChatRequest:
        return ChatRequest(
            base_url=config.base_url,
            api_key=config.api_key,
            model=config.model,
            messages=messages,
            stream=stream,
        )

    async def check_connectivity(self, adapter: LLMProvider, config: ProviderConfig) -> CheckResult:
        start = time.perf_counter()
        code, error = None, None
        try:
            code = await run_with_timeout(
                adapter.check_connectivity(config.base_url, config.api_key),
                self._settings.CONNECTIVITY_TIMEOUT,
            )
        except Exception as e:
            error = e

        status, message, detail = classify_connectivity(code, error)
        return CheckResult(
            item=CheckItem.CONNECTIVITY,
            status=status,
            latency=_elapsed_ms(start),
            message=message,
            detail=detail,
        )

    async def check_chat(self, adapter: LLMProvider, config: ProviderConfig) -> CheckResult:
        start = time.perf_counter()
        request = self._request(config, [ChatMessage(role="user", content=self._settings.CHAT_PROBE)])
        try:
            resp = await run_with_timeout(adapter.chat(request), self._settings.CHAT_TIMEOUT)
        except Exception as e:
            return CheckResult(
                item=CheckItem.CHAT,
                status=CheckStatus.FAILED,
                latency=_elapsed_ms(start),
                message="Request failed",
                detail=_describe(e),
            )

        latency = _elapsed_ms(start)
        if not resp.ok:
            return CheckResult(
                item=CheckItem.CHAT, status=CheckStatus.FAILED, latency=latency, message=resp.error, detail=resp.raw_body
            )
        return CheckResult(
            item=CheckItem.CHAT,
            status=CheckStatus.SUCCESS,
            latency=latency,
            message="Chat OK",
            detail=truncate(resp.content, PREVIEW_LIMIT),
            token_in=resp.prompt_tokens,
            token_out=resp.completion_tokens,
        )

    async def check_stream(self, adapter: LLMProvider, config: ProviderConfig) -> CheckResult:
        start = time.perf_counter()
        chunk_count = 0
        ttft = 0

        def on_chunk(text: str, is_first: bool) -> None:
            nonlocal chunk_count, ttft
            chunk_count += 1
            if is_first:
                ttft = _elapsed_ms(start)

        request = self._request(config, [ChatMessage(role="user", content=self._settings.STREAM_PROBE)], stream=True)
        try:
            resp = await run_with_timeout(adapter.chat_stream(request, on_chunk), self._settings.STREAM_TIMEOUT)
        except Exception as e:
            return CheckResult(
                item=CheckItem.STREAM,
                status=CheckStatus.FAILED,
                latency=_elapsed_ms(start),
                ttft=ttft,
                message="Request failed",
                detail=_describe(e),
            )

        latency = _elapsed_ms(start)
        if not resp.ok:
            return CheckResult(
                item=CheckItem.STREAM, status=CheckStatus.FAILED, latency=latency, message=resp.error, detail=resp.raw_body
            )
        if chunk_count == 0:
            return CheckResult(
                item=CheckItem.STREAM, status=CheckStatus.FAILED, latency=latency, message="No streamed data received"
            )
        return CheckResult(
            item=CheckItem.STREAM,
            status=CheckStatus.SUCCESS,
            latency=latency,
            ttft=ttft,
            message=f"Streaming OK, {chunk_count} chunks, TTFT {ttft}ms",
            detail=truncate(resp.content, PREVIEW_LIMIT),
        )

    async def check_models(self, adapter: LLMProvider, config: ProviderConfig) -> Tuple[CheckResult, List[str]]:
        start = time.perf_counter()
        try:
            models = await run_with_timeout(
                adapter.list_models(config.base_url, config.api_key),
                self._settings.MODELS_TIMEOUT,
            )
        except Exception as e:
            # A provider without a listing endpoint is degraded, not broken.
            result = CheckResult(
                item=CheckItem.MODELS,
                status=CheckStatus.WARNING,
                latency=_elapsed_ms(start),
                message="Failed to fetch model list",
                detail=_describe(e),
            )
            return result, []

        detail = ", ".join(models[:MODEL_PREVIEW_COUNT])
        if len(models) > MODEL_PREVIEW_COUNT:
            detail += "..."
        result = CheckResult(
            item=CheckItem.MODELS,
            status=CheckStatus.SUCCESS,
            latency=_elapsed_ms(start),
            message=f"Found {len(models)} models",
            detail=detail,
        )
        return result, list(models)

    async def check_multi_turn(self, adapter: LLMProvider, config: ProviderConfig) -> CheckResult:
        start = time.perf_counter()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._settings.MULTI_TURN_TIMEOUT
        sentinel = self._settings.MEMORY_SENTINEL
        first_msg = ChatMessage(role="user", content=self._settings.MEMORY_PROBE.format(sentinel=sentinel))

        def failed(turn: str, detail: str) -> CheckResult:
            return CheckResult(
                item=CheckItem.MULTI_TURN,
                status=CheckStatus.FAILED,
                latency=_elapsed_ms(start),
                message=f"{turn} turn failed",
                detail=detail,
            )

        def describe(error: BaseException) -> str:
            # Report the configured budget, not what was left of it for this turn.
            if isinstance(error, CheckTimeoutError):
                return f"timed out after {self._settings.MULTI_TURN_TIMEOUT:g}s"
            return _describe(error)

        # Both turns share one deadline.
        try:
            resp1 = await run_with_timeout(
                adapter.chat(self._request(config, [first_msg])), max(deadline - loop.time(), 0)
            )
        except Exception as e:
            return failed("First", describe(e))
        if not resp1.ok:
            return failed("First", resp1.error)

        history = [
            first_msg,
            ChatMessage(role="assistant", content=resp1.content),
            ChatMessage(role="user", content=self._settings.RECALL_PROBE),
        ]
        try:
            resp2 = await run_with_timeout(
                adapter.chat(self._request(config, history)), max(deadline - loop.time(), 0)
            )
        except Exception as e:
            return failed("Second", describe(e))
        if not resp2.ok:
            return failed("Second", resp2.error)

        if sentinel in resp2.content:
            status, message = CheckStatus.SUCCESS, "Context retained"
        else:
            status, message = CheckStatus.WARNING, "Completed, context may be lost"
        return CheckResult(
            item=CheckItem.MULTI_TURN,
            status=status,
            latency=_elapsed_ms(start),
            message=message,
            detail=f"R1: {truncate(resp1.content, 50)} | R2: {truncate(resp2.content, 50)}",
            token_in=resp1.prompt_tokens + resp2.prompt_tokens,
            token_out=resp1.completion_tokens + resp2.completion_tokens,
        )
