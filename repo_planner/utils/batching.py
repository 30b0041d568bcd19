"""
Batch operations with inter-batch delays.

Items are processed concurrently within a batch and batches run one after the
other with a pause in between, keeping request bursts under the platform's
and the AI service's rate limits. A failing item never aborts its batch or
the batches after it; its exception is captured in the outcome instead.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

import structlog

log = structlog.get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class BatchOutcome(Generic[T, R]):
    """Result of processing one item."""

    item: T
    result: R | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BatchProcessor:
    """Process items in batches with rate limiting."""

    def __init__(self, batch_size: int = 3, delay_between_batches: float = 1.0) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.batch_size = batch_size
        self.delay_between_batches = delay_between_batches

    async def process(
        self,
        items: list[T],
        processor: Callable[[T], Awaitable[R]],
        name: str = "batch",
    ) -> list[BatchOutcome[T, R]]:
        """
        Process items in batches, isolating per-item failures.

        Args:
            items: Items to process
            processor: Async function called once per item
            name: Label used in log events

        Returns:
            One outcome per item, in input order
        """
        outcomes: list[BatchOutcome[T, R]] = []
        total_batches = (len(items) + self.batch_size - 1) // self.batch_size

        log.info(
            "batch_processing_started",
            operation=name,
            total_items=len(items),
            batch_size=self.batch_size,
            total_batches=total_batches,
        )

        for i in range(0, len(items), self.batch_size):
            batch_num = i // self.batch_size + 1
            batch = items[i : i + self.batch_size]

            log.debug("processing_batch", operation=name, batch_num=batch_num, batch_size=len(batch))

            results = await asyncio.gather(*(processor(item) for item in batch), return_exceptions=True)
            for item, result in zip(batch, results, strict=True):
                if isinstance(result, Exception):
                    log.warning("batch_item_failed", operation=name, batch_num=batch_num, error=str(result))
                    outcomes.append(BatchOutcome(item=item, error=result))
                elif isinstance(result, BaseException):
                    raise result
                else:
                    outcomes.append(BatchOutcome(item=item, result=result))

            # Rate limiting: wait between batches (except for last batch)
            if i + self.batch_size < len(items):
                await asyncio.sleep(self.delay_between_batches)

        failed = sum(1 for outcome in outcomes if not outcome.ok)
        log.info("batch_processing_complete", operation=name, succeeded=len(outcomes) - failed, failed=failed)
        return outcomes
