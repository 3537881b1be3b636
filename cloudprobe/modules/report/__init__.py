"""
Report Module - Black Box Interface

Purpose: Periodic statistics output at reporting boundaries
Interface: Reporter.maybe_report(final) -> Optional[WindowReport]
Hidden: Boundary detection, file naming, machine readable format

Can be replaced with a push to any metrics store.
"""

from .models import ProbeIdentity, WindowReport
from .reporter import Reporter

__all__ = ["Reporter", "ProbeIdentity", "WindowReport"]
