"""
Prefix sweep: best effort removal of everything a probe may have left behind.

Resources are found by listing each kind and matching the probe's prefix,
and by the remainder lists of earlier failed deletions. Alarms are suppressed
during the sweep since most of its failures are expected.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional

from ...config.provider import PollingConfig, ProbeConfig
from ..batch import BatchDeleter
from ..executor import CommandExecutor
from ..poller import DELETED, WAIT_THROUGH_ERRORS, BulkListPoller
from ..pool import RemainderRegistry, ResourcePool
from ..storage import RemainderStore
from .catalog import Catalog

logger = logging.getLogger("cloudprobe.sweeper")

# Servers first so that volumes and ports are released
SWEEP_ORDER = (
    "servers",
    "volumes",
    "floating_ips",
    "ports",
    "keypairs",
    "security_groups",
    "subnets",
    "networks",
    "routers",
)


@dataclass
class SweepResult:
    """Ids found per kind and ids still failing afterwards."""

    found: Dict[str, List[str]] = field(default_factory=dict)
    remaining: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(len(ids) for ids in self.found.values())


class Sweeper:
    """Deletes resources by name prefix."""

    def __init__(
        self,
        config: ProbeConfig,
        polling: PollingConfig,
        catalog: Catalog,
        executor: CommandExecutor,
        remainders: RemainderRegistry,
        store: Optional[RemainderStore] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self.catalog = catalog
        self.executor = executor
        self.remainders = remainders
        self.store = store
        self.clock = clock
        self.deleter = BatchDeleter(
            executor,
            remainders,
            config.delete_retry_backoff,
            config.delete_retry_margin,
            clock,
            sleep,
        )
        self.poller = BulkListPoller(
            executor,
            polling.bulk_rounds,
            polling.bulk_interval,
            polling.bulk_failure_backoff,
            polling.bulk_max_failures,
            polling.bulk_max_failures_deleted,
            clock=clock,
            sleep=sleep,
        )

    async def find(self, kind: str) -> List[str]:
        """List ids of `kind` owned by this probe."""
        rk = self.catalog[kind]
        if rk.list is None:
            return []
        record = await self.executor.run(rk.list.resolve({}), self.catalog.timeout(rk))
        if not record.ok:
            logger.warning(f"Cannot list {kind}: {record.returncode}")
            return []
        ids = []
        for row in record.result.rows:
            if rk.owns(row):
                value = row.get(rk.id_column)
                if value:
                    ids.append(str(value))
        return ids

    async def sweep(self) -> SweepResult:
        """Delete leftovers of this probe's prefix, retrying stored remainders."""
        result = SweepResult()
        prefix = self.config.prefix
        pending = self.remainders.snapshot()
        if self.store is not None:
            for kind, ids in (await self.store.load(prefix)).items():
                pending.setdefault(kind, [])
                pending[kind].extend(i for i in ids if i not in pending[kind])
        self.remainders.clear()

        with self.executor.quiet():
            for kind in SWEEP_ORDER:
                ids = await self.find(kind)
                ids.extend(i for i in pending.get(kind, []) if i not in ids)
                if not ids:
                    continue
                result.found[kind] = ids
                logger.info(f"Sweeping {len(ids)} {kind}: {' '.join(ids)}")
                await self._sweep_kind(kind, ids, pending)

        result.remaining = self.remainders.snapshot()
        if self.store is not None:
            for kind, ids in pending.items():
                done = [i for i in ids if i not in result.remaining.get(kind, [])]
                await self.store.discard(prefix, kind, done)
            await self.store.save(prefix, result.remaining)
        if result.remaining:
            logger.warning(f"Sweep left {result.remaining}")
        return result

    async def _sweep_kind(self, kind: str, ids: List[str], pending: Dict[str, List[str]]) -> None:
        rk = self.catalog[kind]
        pool = ResourcePool(kind)
        now = self.clock()
        for resource_id in ids:
            pool.append(resource_id, now)

        if kind == "subnets":
            routers = await self.find("routers")
            routers.extend(i for i in pending.get("routers", []) if i not in routers)
            for router in routers:
                await self._action("router_remove_subnet", pool.ids, router=router)
        if kind == "routers":
            for router in pool.ids:
                await self._action("router_unset_gateway", [""], router=router)

        tracker = ResourcePool(kind) if kind == "servers" else None
        await self.deleter.delete(None, pool, tracker, self.catalog.timeout(rk), rk.delete)
        if tracker:
            await self.poller.wait_for(
                None,
                tracker,
                None,
                DELETED,
                WAIT_THROUGH_ERRORS,
                rk.status_column,
                self.catalog.timeout(rk),
                rk.list,
                rk.id_column,
            )

    async def _action(self, action: str, targets: List[str], **bind) -> None:
        template = self.catalog.actions[action].bind(**bind)
        for target in targets:
            await self.executor.run(
                template.resolve({"val": target}), self.catalog.timeouts.network
            )
