"""Reporting boundary: summarize, persist and reset the statistics window."""

import logging
import os
from datetime import datetime
from typing import Callable, Optional

from ..alarm import AlarmDispatcher, Severity
from ..stats import MetricsCollector
from .models import ProbeIdentity, WindowReport

logger = logging.getLogger("cloudprobe.report")


class Reporter:
    """
    Emits a WindowReport whenever a reporting boundary is crossed.

    A boundary is a change of calendar day, the expiry of report_interval
    (when set) or the final iteration of the main loop.
    """

    def __init__(
        self,
        metrics: MetricsCollector,
        identity: ProbeIdentity,
        alarms: Optional[AlarmDispatcher] = None,
        send_stats: bool = False,
        report_dir: str = ".",
        report_interval: Optional[float] = None,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.metrics = metrics
        self.identity = identity
        self.alarms = alarms
        self.send_stats = send_stats
        self.report_dir = report_dir
        self.report_interval = report_interval
        self.now = now
        self.window_started = now()

    def is_boundary(self, now: datetime, final: bool = False) -> bool:
        if final:
            return True
        if now.date() != self.window_started.date():
            return True
        if self.report_interval is not None:
            return (now - self.window_started).total_seconds() >= self.report_interval
        return False

    def build(self, ended_at: datetime) -> WindowReport:
        window = self.metrics.window
        return WindowReport(
            identity=self.identity,
            started_at=self.window_started,
            ended_at=ended_at,
            runs=window.runs,
            successful_runs=window.successful_runs,
            vms=window.vms,
            expected_vms=window.expected_vms,
            api_calls=window.api_calls,
            api_errors=window.api_errors,
            api_timeouts=window.api_timeouts,
            vm_errors=window.vm_errors,
            wait_errors=window.wait_errors,
            series=self.metrics.summaries(),
        )

    async def maybe_report(self, final: bool = False) -> Optional[WindowReport]:
        """
        Report and reset the window if a boundary was crossed.

        Returns:
            The emitted report, or None if the window continues
        """
        now = self.now()
        if not self.is_boundary(now, final):
            return None

        report = self.build(now)
        logger.info(f"{report.title}\n{report.to_text()}")
        self._write(report)

        if self.send_stats and self.alarms is not None:
            try:
                await self.alarms.notify(
                    Severity.NOTE, report.title, f"{report.to_text()}\n\n{report.to_machine()}"
                )
            except Exception as e:
                logger.error(f"Failed to send statistics: {e}")

        self.metrics.reset_window()
        self.window_started = now
        return report

    def _write(self, report: WindowReport) -> Optional[str]:
        path = os.path.join(self.report_dir, report.filename)
        try:
            with open(path, "w", encoding="utf-8") as f:
                f.write(report.to_machine())
        except OSError as e:
            logger.error(f"Cannot write {path}: {e}")
            return None
        logger.info(f"Statistics written to {path}")
        return path
