"""Batch deletion of resources with one retry."""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from ..executor import CommandExecutor
from ..pool import RemainderRegistry, ResourcePool
from ..stats import StatSeries
from .template import ActionTemplate

logger = logging.getLogger("cloudprobe.batch")


class BatchDeleter:
    """Drains pools LIFO."""

    def __init__(
        self,
        executor: CommandExecutor,
        remainders: RemainderRegistry,
        retry_backoff: float = 2.0,
        retry_margin: float = 8.0,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.executor = executor
        self.remainders = remainders
        self.retry_backoff = retry_backoff
        self.retry_margin = retry_margin
        self.clock = clock
        self.sleep = sleep

    async def delete(
        self,
        stat_series: Optional[StatSeries],
        pool: ResourcePool,
        tracker: Optional[ResourcePool],
        timeout: float,
        template: ActionTemplate,
    ) -> int:
        """
        Delete every item of `pool`, last created first.

        Each item leaves the pool before its delete call, whatever the outcome.
        A failed delete is retried once after a short backoff with a longer
        timeout; if the retry fails as well the id goes to the remainder list
        of the pool's kind.

        Args:
            stat_series: Receives the duration of each first attempt
            pool: Pool to drain
            tracker: Receives deleted ids with their deletion start time
            timeout: Watchdog timeout of the first attempt
            template: Delete action; the id is available as $id

        Returns:
            Number of items whose first delete attempt failed
        """
        errors = 0
        deleted = []
        index = 0
        while pool:
            handle = pool.pop()
            started_at = self.clock()
            if tracker is not None:
                tracker.append(handle.id, started_at)
            action = template.resolve({"id": handle.id, "no": index, "i": index})
            index += 1

            record = await self.executor.run(action, timeout, stat_series=stat_series)
            deleted.append(handle.id)
            if record.ok:
                continue

            errors += 1
            logger.warning(f"Error deleting {pool.kind} {handle.id}; retry and continue")
            await self.sleep(self.retry_backoff)
            retry = await self.executor.run(action, timeout + self.retry_margin)
            if not retry.ok:
                self.remainders[pool.kind].add(handle.id)

        if deleted:
            logger.info(f"Del {pool.kind}: {' '.join(deleted)}")
        failed = self.remainders[pool.kind]
        if errors and len(failed):
            logger.warning(f"Stored failed {pool.kind} deletions for later cleanup: {failed.ids}")
        return errors
