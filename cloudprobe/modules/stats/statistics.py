"""
Latency statistics and run counters.

Every API call and every resource convergence contributes one duration to a
named series. Series live for one measurement window (normally a day) and are
emptied when the window is reported. Counters are kept per run and folded into
the window totals at the end of each run.
"""

import logging
import math
from dataclasses import dataclass, fields
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from pydantic import BaseModel, Field

logger = logging.getLogger("cloudprobe.stats")


class StatSummary(BaseModel):
    """Summary of one latency series."""

    name: str = Field(default="", description="Series name")
    label: str = Field(default="", description="Human readable series label")
    count: int = Field(default=0, ge=0)
    min: Optional[float] = None
    median: Optional[float] = None
    average: Optional[float] = None
    p95: Optional[float] = None
    max: Optional[float] = None

    @property
    def empty(self) -> bool:
        return self.count == 0

    def to_text(self) -> str:
        """Render as a single human readable line."""
        return (
            f"{self.label or self.name}: Num {self.count} Min {self.min} "
            f"Med {self.median} Avg {self.average} 95% {self.p95} Max {self.max}"
        )

    def to_machine(self) -> str:
        """Render as a pipe separated record."""
        return (
            f"#{self.name}: {self.count}|{self.min}|{self.median}|"
            f"{self.average}|{self.p95}|{self.max}"
        )


def _round(value: float, digits: int) -> float:
    if digits <= 0:
        return float(round(value))
    return round(value, digits)


def summarize(values: Iterable[float], digits: int = 2, name: str = "", label: str = "") -> StatSummary:
    """
    Compute count, min, median, average, 95% quantile and max.

    Args:
        values: Recorded durations
        digits: Decimal places for the derived values
        name: Series name copied into the summary
        label: Display label copied into the summary

    Returns:
        StatSummary (count 0 and no values for an empty series)

    The 95% quantile interpolates between the two samples around
    rank (count-1)*0.95; a single sample is its own quantile.
    """
    ordered = sorted(float(v) for v in values)
    count = len(ordered)
    if count == 0:
        return StatSummary(name=name, label=label)

    mid = count // 2
    if count % 2:
        median = ordered[mid]
    else:
        median = (ordered[mid - 1] + ordered[mid]) / 2

    rank = (count - 1) * 0.95
    lo = math.floor(rank)
    hi = lo + 1
    frac = rank - lo
    if hi >= count:
        p95 = ordered[lo]
    else:
        p95 = ordered[lo] * (1 - frac) + ordered[hi] * frac

    return StatSummary(
        name=name,
        label=label,
        count=count,
        min=_round(ordered[0], digits),
        median=_round(median, digits),
        average=_round(sum(ordered) / count, digits),
        p95=_round(p95, digits),
        max=_round(ordered[-1], digits),
    )


class StatSeries:
    """Append-only sequence of durations for one operation category."""

    def __init__(self, name: str, label: Optional[str] = None, digits: int = 2):
        self.name = name
        self.label = label or name
        self.digits = digits
        self._values: List[float] = []

    def append(self, value: float) -> None:
        self._values.append(float(value))

    def extend(self, values: Iterable[float]) -> None:
        for value in values:
            self.append(value)

    def reset(self) -> None:
        self._values = []

    @property
    def values(self) -> List[float]:
        return list(self._values)

    def summarize(self) -> StatSummary:
        return summarize(self._values, self.digits, name=self.name, label=self.label)

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[float]:
        return iter(list(self._values))

    def __repr__(self) -> str:
        return f"StatSeries({self.name!r}, n={len(self._values)})"


# Series recorded by the probe: name -> (label, digits)
DEFAULT_SERIES: Dict[str, Tuple[str, int]] = {
    "net": ("Network API Stats", 2),
    "fip": ("Floating IP Stats", 2),
    "compute": ("Compute API Stats", 2),
    "boot": ("Compute Boot Stats", 2),
    "vm_create": ("VM Creation Stats", 0),
    "vm_delete": ("VM Deletion Stats", 0),
    "volume": ("Volume API Stats", 2),
    "vol_create": ("Vol Creation Stats", 0),
    "wait": ("Wait for VM Stats", 0),
    "total": ("Total setup Stats", 0),
}


@dataclass
class RunCounters:
    """Counters that are accumulated over one deployment run."""

    api_calls: int = 0
    api_errors: int = 0
    api_timeouts: int = 0
    vm_errors: int = 0
    wait_errors: int = 0
    vms: int = 0

    def add(self, other: "RunCounters") -> None:
        for f in fields(other):
            setattr(self, f.name, getattr(self, f.name) + getattr(other, f.name))


@dataclass
class WindowCounters(RunCounters):
    """Cumulative counters for one reporting window."""

    runs: int = 0
    successful_runs: int = 0
    expected_vms: int = 0


class MetricsCollector:
    """
    Owner of all latency series and counters of a probe process.

    Replaces free-floating global tallies: the executor counts API calls
    here, the batch routines and pollers append durations, and the reporter
    reads and resets the window.
    """

    def __init__(self, series: Optional[Dict[str, Tuple[str, int]]] = None):
        layout = DEFAULT_SERIES if series is None else series
        self._series: Dict[str, StatSeries] = {
            name: StatSeries(name, label, digits) for name, (label, digits) in layout.items()
        }
        self.run = RunCounters()
        self.window = WindowCounters()

    def series(self, name: str) -> StatSeries:
        """Get a series, creating it on first use."""
        if name not in self._series:
            self._series[name] = StatSeries(name)
        return self._series[name]

    def __getitem__(self, name: str) -> StatSeries:
        return self.series(name)

    @property
    def all_series(self) -> List[StatSeries]:
        return list(self._series.values())

    # Counters fed by the executor

    def count_call(self) -> None:
        self.run.api_calls += 1

    def count_failure(self, timeout: bool) -> None:
        self.run.api_errors += 1
        if timeout:
            self.run.api_timeouts += 1

    # Run / window lifecycle

    def begin_run(self) -> None:
        """Start counting a new deployment run."""
        self.run = RunCounters()

    def end_run(self, success: bool, expected_vms: int = 0) -> RunCounters:
        """
        Fold the current run's counters into the window.

        Returns:
            The counters of the run that just ended
        """
        finished = self.run
        self.window.add(finished)
        self.window.runs += 1
        self.window.expected_vms += expected_vms
        if success:
            self.window.successful_runs += 1
        self.run = RunCounters()
        return finished

    def summaries(self) -> List[StatSummary]:
        return [s.summarize() for s in self._series.values()]

    def reset_window(self) -> None:
        """Empty all series and cumulative counters at a reporting boundary."""
        for s in self._series.values():
            s.reset()
        self.window = WindowCounters()
        logger.debug("Statistics window reset")
