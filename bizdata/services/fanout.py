"""
Bounded fan-out for dependent fetches.

Aggregates fetch a driving set, then one dependent query per driving row.
fan_out() runs those dependent queries concurrently under a semaphore and
applies the partial-result policy:

- a dependent that raises BackendError (timeouts included) is logged,
  counted, and left out of the results, so it contributes zero
- once the cancel event is set, no new dependent fetch starts; whatever
  finished is returned with cancelled=True

Anything other than BackendError is a bug: the remaining fetches are
cancelled and the error propagates.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from bizdata.config import settings
from bizdata.errors import BackendError

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")


@dataclass
class FanOutResult(Generic[K, V]):
    results: dict[K, V] = field(default_factory=dict)
    warnings: int = 0
    skipped: int = 0

    @property
    def cancelled(self) -> bool:
        return self.skipped > 0


async def fan_out(
    keys: Iterable[K],
    fetch: Callable[[K], Awaitable[V]],
    *,
    label: str,
    concurrency: int | None = None,
    cancel: asyncio.Event | None = None,
) -> FanOutResult[K, V]:
    """
    Run fetch(key) for every distinct key, at most `concurrency` at a time.

    Args:
        keys: driving-row keys; duplicates are fetched once
        fetch: the dependent query for one key
        label: what is being fetched, for log messages
        concurrency: max in-flight fetches (default AGGREGATION_CONCURRENCY)
        cancel: stops new fetches once set

    Returns:
        FanOutResult with results for the keys that succeeded
    """
    unique_keys = list(dict.fromkeys(keys))
    outcome: FanOutResult[K, V] = FanOutResult()
    semaphore = asyncio.Semaphore(concurrency or settings.AGGREGATION_CONCURRENCY)

    async def run(key: K) -> None:
        async with semaphore:
            if cancel is not None and cancel.is_set():
                outcome.skipped += 1
                return
            try:
                outcome.results[key] = await fetch(key)
            except BackendError as e:
                outcome.warnings += 1
                logger.warning("analytics: %s fetch for %s failed, counting as zero: %s", label, key, e)

    try:
        async with asyncio.TaskGroup() as group:
            for key in unique_keys:
                group.create_task(run(key))
    except ExceptionGroup as failures:
        # siblings are cancelled by now; surface the first bug as itself
        raise failures.exceptions[0] from None

    if outcome.skipped:
        logger.info(
            "analytics: %s fan-out cancelled, %s of %s fetches skipped",
            label,
            outcome.skipped,
            len(unique_keys),
        )
    return outcome
