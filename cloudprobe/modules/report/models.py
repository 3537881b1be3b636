"""
Report data models.

Shared data structures of the reporting boundary output.
"""

from datetime import datetime
from typing import List

from pydantic import BaseModel, Field

from ..stats import StatSummary


class ProbeIdentity(BaseModel):
    """Identification of the probe instance and its target."""

    cloud: str = Field(default="", description="Cloud or region under test")
    version: str = Field(default="", description="Probe version")
    prefix: str = Field(..., description="Resource name prefix of this probe")
    host: str = Field(default="", description="Host running the probe")
    project: str = Field(default="", description="Project the resources live in")

    def to_machine(self) -> str:
        return f"#TEST: {self.cloud}|{self.version}|{self.prefix}|{self.host}|{self.project}"


class WindowReport(BaseModel):
    """Statistics of one reporting window."""

    identity: ProbeIdentity
    started_at: datetime
    ended_at: datetime
    runs: int = Field(default=0, ge=0)
    successful_runs: int = Field(default=0, ge=0)
    vms: int = Field(default=0, ge=0, description="VMs actually deployed")
    expected_vms: int = Field(default=0, ge=0, description="VMs requested")
    api_calls: int = Field(default=0, ge=0)
    api_errors: int = Field(default=0, ge=0)
    api_timeouts: int = Field(default=0, ge=0)
    vm_errors: int = Field(default=0, ge=0)
    wait_errors: int = Field(default=0, ge=0)
    series: List[StatSummary] = Field(default_factory=list)

    @property
    def title(self) -> str:
        return (
            f"Statistics for {self.started_at:%Y-%m-%d %H:%M:%S} - "
            f"{self.ended_at:%Y-%m-%d %H:%M:%S}"
        )

    @property
    def filename(self) -> str:
        return (
            f"Stats.{self.started_at:%Y-%m-%d.%H:%M:%S}."
            f"{self.ended_at:%Y-%m-%d.%H:%M:%S}.psv"
        )

    def to_machine(self) -> str:
        """Pipe separated record, one line per section and non-empty series."""
        lines = [
            self.identity.to_machine(),
            f"#STAT: {self.started_at:%Y-%m-%d|%H:%M:%S}|{self.ended_at:%Y-%m-%d|%H:%M:%S}",
            f"#RUN: {self.runs}|{self.successful_runs}|{self.vms}|"
            f"{self.expected_vms}|{self.api_calls}",
            f"#ERRORS: {self.vm_errors}|{self.wait_errors}|{self.api_errors}|{self.api_timeouts}",
        ]
        lines.extend(s.to_machine() for s in self.series if not s.empty)
        return "\n".join(lines) + "\n"

    def to_text(self) -> str:
        """Human readable summary."""
        lines = [
            f"{self.identity.prefix} {self.identity.version} on {self.identity.host} "
            f"testing {self.identity.cloud}/{self.identity.project}:",
            "",
            f"{self.runs} deployments ({self.successful_runs} successful, "
            f"{self.vms}/{self.expected_vms} VMs, {self.api_calls} API calls)",
            f"{self.vm_errors} VM ERRORS",
            f"{self.wait_errors} VM TIMEOUT ERRORS",
            f"{self.api_errors} API ERRORS",
            f"{self.api_timeouts} API TIMEOUTS",
            "",
        ]
        lines.extend(s.to_text() for s in self.series if not s.empty)
        return "\n".join(lines)
