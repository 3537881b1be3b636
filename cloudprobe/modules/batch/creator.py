"""Batch creation of resources, fail-fast."""

import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from ..executor import CommandExecutor, OperationRecord
from ..pool import ResourcePool
from ..stats import StatSeries
from .template import ActionTemplate, item_context

logger = logging.getLogger("cloudprobe.batch")


@dataclass
class BatchResult:
    """Outcome of one create batch. A partial batch is not an exception."""

    requested: int
    created: int
    failure: Optional[OperationRecord] = None
    failed_index: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.failed_index is None and self.created == self.requested

    def __bool__(self) -> bool:
        return self.ok


class BatchCreator:
    """Creates N resources one after another."""

    def __init__(
        self,
        executor: CommandExecutor,
        zones: Sequence[str],
        clock: Callable[[], float] = time.time,
    ):
        self.executor = executor
        self.zones = list(zones)
        self.clock = clock

    async def create(
        self,
        quantity: int,
        stat_series: Optional[StatSeries],
        target_pool: Optional[ResourcePool],
        dependent_pools: Sequence[ResourcePool],
        id_field: Optional[str],
        timeout: float,
        template: ActionTemplate,
    ) -> BatchResult:
        """
        Create `quantity` resources, stopping at the first failure.

        Args:
            quantity: Number of items
            stat_series: Receives one duration per executed call
            target_pool: Receives the created ids (None for attach-style actions)
            dependent_pools: Pools whose i-th id is available as $val, $mval, $val<k>
            id_field: Result field holding the new id
            timeout: Watchdog timeout per call
            template: Action with per-item placeholders

        Returns:
            BatchResult; items created before a failure stay in target_pool
        """
        created = 0
        new_ids: List[str] = []
        kind = target_pool.kind if target_pool is not None else "items"

        for i in range(quantity):
            action = template.resolve(item_context(i, self.zones, dependent_pools))
            started_at = self.clock()
            record = await self.executor.run(action, timeout, id_field, stat_series)

            if not record.ok:
                logger.error(f"Creating {kind} #{i} failed: {record.returncode}")
                self._log_new(kind, new_ids)
                return BatchResult(quantity, created, record, i)

            if target_pool is not None and id_field:
                if not record.extracted:
                    logger.error(f"Creating {kind} #{i}: no '{id_field}' in result")
                    self._log_new(kind, new_ids)
                    return BatchResult(quantity, created, record, i)
                target_pool.append(record.extracted, started_at)
                new_ids.append(record.extracted)
            created += 1

        self._log_new(kind, new_ids)
        return BatchResult(quantity, created)

    @staticmethod
    def _log_new(kind: str, ids: List[str]) -> None:
        if ids:
            logger.info(f"New {kind}: {' '.join(ids)}")
