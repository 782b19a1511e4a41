"""Throttled batch execution for calls against the rate-limited Liveblocks API.

Every remote fan-out in the migration (rooms, threads, comments, reactions)
goes through :class:`ThrottledBatchRunner`. Items are split into sequential
batches of at most ``width``; each batch runs concurrently, is awaited as a
whole, and is followed by ``delay`` seconds of backpressure before the next
batch starts.

Nested runners multiply: a room runner of width 5 whose operation runs a
comment runner of width 10 can have 50 requests in flight.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterator, List, Optional, Sequence, TypeVar

from cord_migrator.constants import DEFAULT_BATCH_DELAY_MS, DEFAULT_BATCH_WIDTH
from cord_migrator.utils.logging import log_with_context

T = TypeVar("T")
R = TypeVar("R")


def iter_batches(items: Sequence[T], width: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of ``items`` of at most ``width`` elements."""
    if width < 1:
        raise ValueError(f"Batch width must be at least 1, got {width}")
    for start in range(0, len(items), width):
        yield items[start : start + width]


class ThrottledBatchRunner:
    """Runs an async operation over items with bounded concurrency."""

    def __init__(
        self,
        width: int = DEFAULT_BATCH_WIDTH,
        delay: float = DEFAULT_BATCH_DELAY_MS / 1000,
        name: str = "batch",
    ) -> None:
        if width < 1:
            raise ValueError(f"Batch width must be at least 1, got {width}")
        if delay < 0:
            raise ValueError(f"Batch delay must be non-negative, got {delay}")
        self.width = width
        self.delay = delay
        self.name = name

    async def run(
        self,
        items: Sequence[T],
        operation: Callable[[T], Awaitable[Optional[R]]],
        progress: Optional[Any] = None,
    ) -> List[Optional[R]]:
        """Run ``operation`` over ``items`` and return results in item order.

        An operation signals a handled failure by returning ``None``; that
        slot stays ``None`` and its siblings are unaffected. An exception
        escaping an operation lets the rest of its batch finish, then
        propagates and no further batches are started.

        Args:
            items: Items to process.
            operation: Async callable applied to each item.
            progress: Optional tqdm bar, advanced once per settled batch.

        Returns:
            One entry per item, ``None`` where the operation failed.
        """
        results: List[Optional[R]] = []
        batches = list(iter_batches(items, self.width))

        for index, batch in enumerate(batches):
            log_with_context(
                logging.DEBUG,
                f"Running {self.name} batch {index + 1}/{len(batches)} ({len(batch)} items)",
                batch=self.name,
            )
            outcomes = await asyncio.gather(
                *(operation(item) for item in batch), return_exceptions=True
            )

            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    log_with_context(
                        logging.ERROR,
                        f"Unhandled error in {self.name} batch {index + 1}, aborting: {outcome!r}",
                        batch=self.name,
                    )
                    raise outcome
            results.extend(outcomes)

            if progress is not None:
                progress.update(len(batch))

            if index < len(batches) - 1 and self.delay:
                await asyncio.sleep(self.delay)

        return results


async def run_throttled(
    items: Sequence[T],
    operation: Callable[[T], Awaitable[Optional[R]]],
    width: int = DEFAULT_BATCH_WIDTH,
    delay: float = DEFAULT_BATCH_DELAY_MS / 1000,
) -> List[Optional[R]]:
    """Functional shorthand for a one-off :class:`ThrottledBatchRunner` run."""
    return await ThrottledBatchRunner(width, delay).run(items, operation)
