"""Main probe loop: deploy, report, sweep, repeat."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from ...config.provider import Settings
from ..alarm import AlarmDispatcher, Severity
from ..executor import CommandExecutor
from ..pool import RemainderRegistry
from ..report import Reporter
from ..saga import InterruptController
from ..stats import MetricsCollector
from ..storage import MemoryRemainderStore, RemainderStore
from .catalog import Catalog
from .deployment import Deployment, DeploymentResult, Probe
from .sweeper import Sweeper

logger = logging.getLogger("cloudprobe.runner")


@dataclass
class LoopSummary:
    runs: int = 0
    successful_runs: int = 0
    interrupted: bool = False

    @property
    def ok(self) -> bool:
        return not self.interrupted and self.runs == self.successful_runs


class ProbeRunner:
    """Repeats the deployment cycle and owns the per-process state."""

    def __init__(
        self,
        settings: Settings,
        catalog: Catalog,
        executor: CommandExecutor,
        metrics: MetricsCollector,
        reporter: Reporter,
        alarms: Optional[AlarmDispatcher] = None,
        store: Optional[RemainderStore] = None,
        probe: Optional[Probe] = None,
        interrupts: Optional[InterruptController] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings
        self.config = settings.probe
        self.catalog = catalog
        self.executor = executor
        self.metrics = metrics
        self.reporter = reporter
        self.alarms = alarms
        self.store = store or MemoryRemainderStore()
        self.probe = probe
        self.interrupts = interrupts or InterruptController(self.config.prefix)
        self.clock = clock
        self.sleep = sleep
        self.remainders = RemainderRegistry()
        self.sweeper = Sweeper(
            self.config,
            settings.polling,
            catalog,
            executor,
            self.remainders,
            self.store,
            clock,
            sleep,
        )

    def deployment(self) -> Deployment:
        return Deployment(
            self.config,
            self.settings.polling,
            self.catalog,
            self.executor,
            self.metrics,
            self.remainders,
            self.alarms,
            self.probe,
            self.interrupts,
            self.clock,
            self.sleep,
        )

    async def run_once(self) -> DeploymentResult:
        """One deployment cycle including slow run detection."""
        self.metrics.begin_run()
        started = self.clock()
        result = await self.deployment().run()
        duration = self.clock() - started
        self.metrics["total"].append(duration)

        threshold = self.config.slow_run_threshold
        if result.clean and duration > threshold and self.alarms is not None:
            await self.alarms.notify(
                Severity.ALARM, "SLOW PERFORMANCE", f"Cycle time: {duration:.0f}", threshold, 1
            )

        run = self.metrics.run
        logger.info(
            f"This run: Overall {result.vms} / {self.config.vms} VMs, "
            f"{run.api_calls} API calls: {duration:.0f}s, "
            f"{run.vm_errors} VM errors, {run.wait_errors} VM timeouts, "
            f"{run.api_errors} API errors (of which {run.api_timeouts} API timeouts)"
        )
        self.metrics.end_run(result.success, self.config.vms)
        return result

    async def run(self) -> LoopSummary:
        """
        Run `iterations` cycles (forever when negative).

        After every cycle the statistics window is checked for a reporting
        boundary, remainders are persisted and a prefix sweep removes leftovers.
        """
        summary = LoopSummary()
        iterations = self.config.iterations
        loop = 0
        installed = self.interrupts.install()
        try:
            while iterations < 0 or loop < iterations:
                result = await self.run_once()
                summary.runs += 1
                if result.success:
                    summary.successful_runs += 1

                interrupted = self.interrupts.requested
                final = interrupted or (iterations >= 0 and loop + 1 >= iterations)
                await self.reporter.maybe_report(final)
                await self.store.save(self.config.prefix, self.remainders.snapshot())

                if result.outcome.abandoned:
                    logger.warning(f"Leftovers remain, run '{self.interrupts.recovery_command}'")
                else:
                    await self.sweeper.sweep()

                if interrupted:
                    summary.interrupted = True
                    break
                loop += 1
        finally:
            if installed:
                self.interrupts.uninstall()
        return summary

    async def cleanup(self) -> int:
        """Sweep once; returns the number of ids still failing."""
        result = await self.sweeper.sweep()
        return sum(len(ids) for ids in result.remaining.values())
