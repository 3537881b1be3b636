"""
Convergence pollers.

Both strategies watch the members of a pool until each one reaches a target
status or an error status. The pool's handle start times are the reference
for the completion latency of each item.

PerItemPoller issues one status query per pending item per round.
BulkListPoller issues one listing per round and reads every item's status
from it, which keeps the number of calls per round constant.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Union

from ..batch import ActionTemplate
from ..executor import CommandExecutor, lookup
from ..pool import ResourcePool
from ..stats import StatSeries

logger = logging.getLogger("cloudprobe.poller")
progress = logging.getLogger("cloudprobe.progress")

# Target: resource must be gone. In a listing, absence counts as success.
DELETED = "<deleted>"
# Alternative target: items in error state keep being waited for.
WAIT_THROUGH_ERRORS = "<wait-through-errors>"
# Target: any non-empty status other than "null" counts as success.
NON_NULL = "<non-null>"


class Resolution(str, Enum):
    PENDING = "pending"
    RESOLVED_OK = "ok"
    RESOLVED_ERROR = "error"


def classify(status: Optional[str], target: str, alt: Optional[str] = None) -> Resolution:
    """
    Classify one observed status.

    Args:
        status: Observed status text (None or "" if unknown)
        target: Wanted status or marker
        alt: Alternative wanted status or WAIT_THROUGH_ERRORS
    """
    status = status or ""
    if target == NON_NULL:
        if status and status != "null":
            return Resolution.RESOLVED_OK
        return Resolution.PENDING
    if status and (status == target or (alt is not None and status == alt)):
        return Resolution.RESOLVED_OK
    if status.lower().startswith("error") and alt != WAIT_THROUGH_ERRORS:
        return Resolution.RESOLVED_ERROR
    return Resolution.PENDING


def glyph(status: Optional[str], target: str, alt: Optional[str] = None) -> str:
    """One character progress glyph for a status."""
    if target == NON_NULL and classify(status, target, alt) == Resolution.RESOLVED_OK:
        return "*"
    if status == DELETED:
        return "x"
    if status:
        return status[0]
    return "?"


class ConvergencePoller:
    """Shared bookkeeping of the two polling strategies."""

    def __init__(
        self,
        executor: CommandExecutor,
        rounds: int,
        interval: float,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.executor = executor
        self.rounds = rounds
        self.interval = interval
        self.clock = clock
        self.sleep = sleep

    def _resolve(
        self,
        pool: ResourcePool,
        index: int,
        status: str,
        resolution: Resolution,
        completion_series: Optional[StatSeries],
    ) -> None:
        handle = pool[index]
        elapsed = self.clock() - handle.created_at
        if completion_series is not None:
            completion_series.append(elapsed)
        if resolution == Resolution.RESOLVED_ERROR:
            logger.error(f"{pool.kind} {handle.id} status {status}")

    def _show(self, pool: ResourcePool, statuses: Dict[int, str], pending, target, alt) -> str:
        line = "".join(glyph(statuses.get(i), target, alt) for i in range(len(pool)))
        progress.info(f"Wait {pool.kind}[{len(pending)}/{len(pool)}]: {line} ")
        return line

    def _finish(self, pool: ResourcePool, pending, line: str, errors: int) -> int:
        if pending:
            left = [pool[i].id for i in sorted(pending)]
            logger.error(f"Wait {pool.kind}: round budget exhausted, left: {' '.join(left)}")
            return errors + 1
        logger.info(f"Wait {pool.kind}: {line}")
        return errors


class PerItemPoller(ConvergencePoller):
    """One status query per pending item and round."""

    def __init__(self, executor: CommandExecutor, rounds: int = 320, interval: float = 2.0, **kwargs):
        super().__init__(executor, rounds, interval, **kwargs)

    async def wait_for(
        self,
        stat_series: Optional[StatSeries],
        pool: ResourcePool,
        completion_series: Optional[StatSeries],
        target: str,
        alt: Optional[str],
        status_field: str,
        timeout: float,
        template: ActionTemplate,
    ) -> int:
        """
        Wait until every item of `pool` resolved.

        Args:
            stat_series: Receives the duration of each query
            pool: Items to watch, with their start times
            completion_series: Receives one latency per resolved item
            target: Wanted status or marker
            alt: Alternative status or marker
            status_field: Result field holding the status
            timeout: Watchdog timeout per query
            template: Status query; the id is available as $id

        Returns:
            Number of items resolved in error, plus one if a query failed or
            the round budget ran out
        """
        pending = set(range(len(pool)))
        statuses: Dict[int, str] = {}
        errors = 0
        line = ""
        rounds = 0

        while pending and rounds < self.rounds:
            for i in sorted(pending):
                action = template.resolve({"id": pool[i].id, "no": i, "i": i})
                if target == DELETED:
                    with self.executor.quiet():
                        record = await self.executor.run(action, timeout, status_field, stat_series)
                    status = (record.extracted or "") if record.ok else DELETED
                else:
                    record = await self.executor.run(action, timeout, status_field, stat_series)
                    if not record.ok:
                        logger.error(f"Querying {pool.kind} {pool[i].id} failed")
                        return errors + 1
                    status = record.extracted or ""
                statuses[i] = status

                resolution = classify(status, target, alt)
                if resolution != Resolution.PENDING:
                    if resolution == Resolution.RESOLVED_ERROR:
                        errors += 1
                    self._resolve(pool, i, status, resolution, completion_series)
                    pending.discard(i)
                line = self._show(pool, statuses, pending, target, alt)

            if not pending:
                break
            rounds += 1
            await self.sleep(self.interval)

        return self._finish(pool, pending, line, errors)


class BulkListPoller(ConvergencePoller):
    """One listing per round; statuses are read from the listing rows."""

    def __init__(
        self,
        executor: CommandExecutor,
        rounds: int = 240,
        interval: float = 3.0,
        failure_backoff: float = 10.0,
        max_failures: int = 4,
        max_failures_deleted: int = 20,
        **kwargs,
    ):
        super().__init__(executor, rounds, interval, **kwargs)
        self.failure_backoff = failure_backoff
        self.max_failures = max_failures
        self.max_failures_deleted = max_failures_deleted

    async def wait_for(
        self,
        stat_series: Optional[StatSeries],
        pool: ResourcePool,
        completion_series: Optional[StatSeries],
        target: str,
        alt: Optional[str],
        status_column: Union[str, int],
        timeout: float,
        template: ActionTemplate,
        id_column: Union[str, int] = "ID",
    ) -> int:
        """
        Wait until every item of `pool` resolved, using one listing per round.

        Args:
            stat_series: Receives the duration of each listing call
            pool: Items to watch, with their start times
            completion_series: Receives one latency per resolved item
            target: Wanted status or DELETED
            alt: Alternative status or WAIT_THROUGH_ERRORS
            status_column: Column name or index holding the status
            timeout: Watchdog timeout per listing
            template: Listing action
            id_column: Column name or index holding the id

        Returns:
            Number of items resolved in error, plus one if the listing failed
            too often or the round budget ran out
        """
        pending = set(range(len(pool)))
        statuses: Dict[int, str] = {}
        errors = 0
        failures = 0
        line = ""
        rounds = 0
        limit = self.max_failures_deleted if target == DELETED else self.max_failures
        action = template.resolve({})

        while pending and rounds < self.rounds:
            record = await self.executor.run(action, timeout, stat_series=stat_series)
            if not record.ok:
                failures += 1
                logger.warning(f"Listing {pool.kind} failed ({failures}/{limit})")
                if failures >= limit:
                    logger.error(f"Wait {pool.kind}: giving up after {failures} failed listings")
                    return errors + 1
                rounds += 1
                await self.sleep(self.failure_backoff)
                continue

            listed = self._index(record.result.rows, id_column, status_column)
            for i in sorted(pending):
                resource_id = pool[i].id
                if resource_id in listed:
                    status = listed[resource_id]
                elif target == DELETED:
                    status = DELETED
                else:
                    status = ""
                statuses[i] = status

                resolution = classify(status, target, alt)
                if resolution == Resolution.RESOLVED_ERROR:
                    errors += 1
                if resolution != Resolution.PENDING:
                    self._resolve(pool, i, status, resolution, completion_series)
                    pending.discard(i)

            line = self._show(pool, statuses, pending, target, alt)
            if not pending:
                break
            rounds += 1
            await self.sleep(self.interval)

        return self._finish(pool, pending, line, errors)

    @staticmethod
    def _index(rows: List[dict], id_column, status_column) -> Dict[str, str]:
        listed: Dict[str, str] = {}
        for row in rows:
            resource_id = lookup(row, id_column)
            if resource_id is None:
                continue
            status = lookup(row, status_column)
            listed[str(resource_id)] = "" if status is None else str(status)
        return listed
