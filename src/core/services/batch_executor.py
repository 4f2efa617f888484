"""Bounded parallel execution of work items in batches.

Model:
- Items are split into contiguous batches; each batch runs in its own task and
  processes its items sequentially.
- Every task returns its own `BatchResult`; the caller folds them together
  after the join, so there is no shared mutable counter.
- A failed item is never retried and never stops its batch or sibling batches.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Per-request limit of the API for purge payloads and bulk KV deletions.
PURGE_BATCH_LIMIT = 30


@dataclass(frozen=True)
class WorkOutcome:
    """Result of one unit of work."""

    ok: bool
    warning: str | None = None

    @classmethod
    def succeeded(cls) -> "WorkOutcome":
        return cls(ok=True)

    @classmethod
    def failed(cls, warning: str) -> "WorkOutcome":
        return cls(ok=False, warning=warning)


@dataclass
class BatchResult:
    """Success/failure counters plus the ordered per-item warnings."""

    success_count: int = 0
    failure_count: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.success_count + self.failure_count

    def record(self, outcome: WorkOutcome) -> None:
        if outcome.ok:
            self.success_count += 1
        else:
            self.failure_count += 1
        if outcome.warning:
            self.warnings.append(outcome.warning)

    def merge(self, other: "BatchResult") -> None:
        self.success_count += other.success_count
        self.failure_count += other.failure_count
        self.warnings.extend(other.warnings)


Worker = Callable[[T], Awaitable[WorkOutcome]]


def chunked(items: Sequence[T], size: int) -> list[list[T]]:
    """Split `items` into contiguous lists of at most `size` elements."""

    if size <= 0:
        raise ValueError("batch size must be positive")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


async def _run_group(
    number: int,
    group: Sequence[T],
    worker: Worker[T],
    *,
    semaphore: asyncio.Semaphore | None,
    timeout: float | None,
) -> BatchResult:
    result = BatchResult()

    async def process() -> None:
        for item in group:
            try:
                outcome = await worker(item)
            except Exception as exc:
                logger.exception("Unexpected error in batch %d while processing %r", number, item)
                outcome = WorkOutcome.failed(f"{item!r}: {exc}")
            result.record(outcome)

    async def run_with_deadline() -> None:
        if timeout is None:
            await process()
            return
        try:
            await asyncio.wait_for(process(), timeout=timeout)
        except asyncio.TimeoutError:
            unfinished = len(group) - result.total
            logger.warning(
                "Batch %d timed out after %ss; %d item(s) not completed", number, timeout, unfinished
            )
            result.failure_count += unfinished
            result.warnings.append(
                f"batch {number} timed out after {timeout}s with {unfinished} item(s) unfinished"
            )

    # The deadline starts once the batch holds a slot, not while it queues.
    if semaphore is None:
        await run_with_deadline()
    else:
        async with semaphore:
            await run_with_deadline()

    logger.debug(
        "Batch %d done: %d ok, %d failed", number, result.success_count, result.failure_count
    )
    return result


async def run_groups(
    groups: Iterable[Sequence[T]],
    worker: Worker[T],
    *,
    max_concurrency: int | None = None,
    timeout: float | None = None,
) -> BatchResult:
    """Run each group in its own task and wait for all of them.

    - `max_concurrency` caps how many groups run at once.
    - `timeout` is a deadline per group; items it leaves unfinished count as
      failures.
    """

    batches = [list(group) for group in groups if group]
    total = BatchResult()
    if not batches:
        return total

    semaphore = asyncio.Semaphore(max(1, max_concurrency)) if max_concurrency else None
    logger.debug("Dispatching %d batch(es)", len(batches))
    results = await asyncio.gather(
        *(
            _run_group(number, batch, worker, semaphore=semaphore, timeout=timeout)
            for number, batch in enumerate(batches, start=1)
        )
    )
    for result in results:
        total.merge(result)
    return total


async def run_batches(
    items: Sequence[T],
    batch_size: int,
    worker: Worker[T],
    *,
    max_concurrency: int | None = None,
    timeout: float | None = None,
) -> BatchResult:
    """Split `items` into batches of `batch_size` and run them in parallel."""

    return await run_groups(
        chunked(items, batch_size),
        worker,
        max_concurrency=max_concurrency,
        timeout=timeout,
    )
