import asyncio
from typing import Awaitable, TypeVar

from .errors import CheckTimeoutError

T = TypeVar("T")


def truncate(text: str, limit: int) -> str:
    """Trim whitespace and cut to ``limit`` characters, marking the cut with '...'."""
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


async def run_with_timeout(coro: Awaitable[T], timeout_seconds: float) -> T:
    try:
        return await asyncio.wait_for(coro, timeout=timeout_seconds)
    except asyncio.TimeoutError as exc:
        raise CheckTimeoutError(f"timed out after {timeout_seconds:g}s") from exc
