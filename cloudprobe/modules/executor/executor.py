"""
Command executor: one action under a watchdog.

The watchdog is a timer task racing the worker. When the timeout expires it
escalates SIGQUIT, SIGHUP, SIGKILL with a pause between each step. The worker
sets an event as soon as the action has been reaped; the watchdog checks that
event before every signal, so a finished action is never signalled and only
the worker reports the exit status.
"""

import asyncio
import logging
import shlex
import signal
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Iterator, Optional, Sequence

from ..alarm import AlarmDispatcher, Severity
from ..stats import MetricsCollector, StatSeries
from .runner import ActionProcess, ActionResult, ActionRunner

logger = logging.getLogger("cloudprobe.executor")
execlog = logging.getLogger("cloudprobe.execlog")

ESCALATION = (signal.SIGQUIT, signal.SIGHUP, signal.SIGKILL)


class ExitClass(str, Enum):
    """Classification of an action's return code."""

    SUCCESS = "success"
    APPLICATION_ERROR = "application_error"
    TIMEOUT = "timeout"

    @classmethod
    def from_returncode(cls, returncode: int) -> "ExitClass":
        if returncode == 0:
            return cls.SUCCESS
        if returncode > 128:
            return cls.TIMEOUT
        return cls.APPLICATION_ERROR


@dataclass
class OperationRecord:
    """Outcome and timing of one executed action."""

    description: str
    started_at: float
    ended_at: float
    returncode: int
    exit_class: ExitClass
    result: ActionResult = field(repr=False)
    extracted: Optional[str] = None

    @property
    def duration(self) -> float:
        return round(self.ended_at - self.started_at, 2)

    @property
    def output(self) -> str:
        return self.result.output

    @property
    def ok(self) -> bool:
        return self.exit_class == ExitClass.SUCCESS


async def _ask_operator(prompt: str) -> None:
    await asyncio.to_thread(input, prompt)


class CommandExecutor:
    """Runs actions, classifies them and reports failures."""

    def __init__(
        self,
        runner: ActionRunner,
        metrics: Optional[MetricsCollector] = None,
        alarms: Optional[AlarmDispatcher] = None,
        error_wait: float = 1.0,
        escalation_interval: float = 1.0,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        acknowledge: Callable[[str], Awaitable[None]] = _ask_operator,
    ):
        """
        Initialize executor.

        Args:
            runner: Starts the actual actions
            metrics: Receives call, error and timeout counts
            alarms: Receives one event per failed action
            error_wait: Pause after a failure; negative waits for the operator
            escalation_interval: Seconds between watchdog signals
            clock: Wall clock used for timestamps
            sleep: Coroutine used for error waits
            acknowledge: Coroutine blocking until the operator confirms
        """
        self.runner = runner
        self.metrics = metrics or MetricsCollector()
        self.alarms = alarms
        self.error_wait = error_wait
        self.escalation_interval = escalation_interval
        self.clock = clock
        self.sleep = sleep
        self.acknowledge = acknowledge
        self._quiet = 0

    @contextmanager
    def quiet(self) -> Iterator[None]:
        """Suppress alarms, error counting and error waits (cleanup sweeps)."""
        self._quiet += 1
        try:
            yield
        finally:
            self._quiet -= 1

    @property
    def is_quiet(self) -> bool:
        return self._quiet > 0

    async def run(
        self,
        action: Sequence[str],
        timeout: float,
        id_field: Optional[str] = None,
        stat_series: Optional[StatSeries] = None,
    ) -> OperationRecord:
        """
        Execute one action.

        Args:
            action: Resolved action (argument vector)
            timeout: Seconds before the watchdog escalates (0 = unbounded)
            id_field: Field of the result to extract into the record
            stat_series: Series receiving the call duration

        Returns:
            OperationRecord; action failures never raise
        """
        description = shlex.join(action)
        self.metrics.count_call()
        started_at = self.clock()
        result = await self._execute(action, timeout)
        ended_at = self.clock()

        exit_class = ExitClass.from_returncode(result.returncode)
        record = OperationRecord(
            description=description,
            started_at=started_at,
            ended_at=ended_at,
            returncode=result.returncode,
            exit_class=exit_class,
            result=result,
            extracted=result.get(id_field) if id_field else None,
        )
        if stat_series is not None:
            stat_series.append(record.duration)

        execlog.info(
            f"{started_at:.3f}/{ended_at:.3f}/{record.extracted or ''}: "
            f"{description} => {result.returncode} {result.output.strip()}"
        )

        if not record.ok:
            logger.warning(f"{description} => {result.returncode} {result.output.strip()}")
            if not self.is_quiet:
                self.metrics.count_failure(exit_class == ExitClass.TIMEOUT)
                await self._report_failure(record, timeout)
                await self.pause(self.error_wait)
        return record

    async def _execute(self, action: Sequence[str], timeout: float) -> ActionResult:
        process = await self.runner.start(action)
        if not timeout:
            return await process.wait()

        done = asyncio.Event()
        watchdog = asyncio.create_task(self._watchdog(process, timeout, done))
        try:
            result = await process.wait()
        finally:
            done.set()
            watchdog.cancel()
            try:
                await watchdog
            except asyncio.CancelledError:
                pass
        return result

    async def _watchdog(self, process: ActionProcess, timeout: float, done: asyncio.Event) -> None:
        try:
            await asyncio.wait_for(done.wait(), timeout)
            return
        except asyncio.TimeoutError:
            pass
        for sig in ESCALATION:
            if done.is_set():
                return
            logger.debug(f"Watchdog sending {sig.name} after {timeout}s")
            process.send_signal(sig)
            if sig == signal.SIGKILL:
                return
            try:
                await asyncio.wait_for(done.wait(), self.escalation_interval)
                return
            except asyncio.TimeoutError:
                continue

    async def _report_failure(self, record: OperationRecord, timeout: float) -> None:
        if self.alarms is None:
            return
        severity = Severity.TIMEOUT if record.exit_class == ExitClass.TIMEOUT else Severity.ALARM
        try:
            await self.alarms.notify(
                severity, record.description, record.output, timeout, record.returncode
            )
        except Exception as e:
            logger.error(f"Alarm dispatch failed: {e}")

    async def pause(self, wait: float) -> None:
        """Error wait: sleep, or block until acknowledged when negative."""
        if wait < 0:
            try:
                await self.acknowledge("ERROR: Hit Enter to continue: ")
            except EOFError:
                logger.warning("No operator input available, continuing")
        elif wait > 0:
            await self.sleep(wait)
