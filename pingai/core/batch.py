import asyncio
import logging
from typing import List, Optional, Sequence, Tuple

from .base import HistoryStore
from .checker import Checker, crashed_result
from .schema import FullCheckResult, ProviderConfig

logger = logging.getLogger(__name__)


def mask_key(key: str) -> str:
    """Keep the first 3 and last 4 characters of an API key; short keys are hidden entirely."""
    if len(key) <= 8:
        return "***"
    return key[:3] + "..." + key[-4:]


def flush_history(history: Optional[HistoryStore], results: Sequence[FullCheckResult]) -> None:
    """Hand results to the history store in order. A failing store never fails the run."""
    if history is None:
        return
    for result in results:
        try:
            history.save(result)
        except Exception:
            logger.exception("Failed to save history for %s", result.provider_name or result.base_url)


async def run_single_check(
    checker: Checker,
    config: ProviderConfig,
    history: Optional[HistoryStore] = None,
) -> FullCheckResult:
    result = await checker.run_full_check(config)
    flush_history(history, [result])
    return result


async def run_batch_check(
    checker: Checker,
    configs: Sequence[ProviderConfig],
    history: Optional[HistoryStore] = None,
    max_concurrency: Optional[int] = None,
) -> List[FullCheckResult]:
    """
    Check every configuration concurrently and return results in input order.

    Each task reports ``(index, result)``; results are slotted back by index as
    they complete, so completion order never leaks into the output. With
    ``max_concurrency`` set, at most that many runs are in flight at once.
    """
    semaphore = asyncio.Semaphore(max_concurrency) if max_concurrency else None

    async def check_one(config: ProviderConfig) -> FullCheckResult:
        # One broken item must not take its siblings down with it.
        try:
            return await checker.run_full_check(config)
        except Exception as e:
            logger.exception("Check of %s crashed", config.provider_name or config.base_url)
            return crashed_result(config, e)

    async def run_one(index: int, config: ProviderConfig) -> Tuple[int, FullCheckResult]:
        if semaphore is None:
            return index, await check_one(config)
        async with semaphore:
            return index, await check_one(config)

    results: List[Optional[FullCheckResult]] = [None] * len(configs)
    tasks = [asyncio.create_task(run_one(i, config)) for i, config in enumerate(configs)]
    for finished in asyncio.as_completed(tasks):
        index, result = await finished
        results[index] = result

    flush_history(history, results)
    return results


async def run_batch_key_check(
    checker: Checker,
    config: ProviderConfig,
    api_keys: Sequence[str],
    history: Optional[HistoryStore] = None,
    max_concurrency: Optional[int] = None,
) -> List[FullCheckResult]:
    """Check one provider configuration once per API key."""
    configs = [
        config.model_copy(update={
            "api_key": key,
            "provider_name": f"{config.provider_name} ({mask_key(key)})",
        })
        for key in api_keys
    ]
    return await run_batch_check(checker, configs, history=history, max_concurrency=max_concurrency)
