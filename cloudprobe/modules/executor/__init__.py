"""
Executor Module - Black Box Interface

Purpose: Run one external action under a hard timeout with signal escalation
Interface: CommandExecutor.run(action, timeout, id_field, stat_series) -> OperationRecord
Hidden: Watchdog task, process groups, output parsing, execution log format

Can be replaced with different execution mechanisms (SDK calls, remote agents).
"""

from .executor import ESCALATION, CommandExecutor, ExitClass, OperationRecord
from .runner import (
    NOT_STARTED,
    ActionProcess,
    ActionResult,
    ActionRunner,
    CallableRunner,
    SubprocessRunner,
    lookup,
)

__all__ = [
    "ESCALATION",
    "NOT_STARTED",
    "ActionProcess",
    "ActionResult",
    "ActionRunner",
    "CallableRunner",
    "CommandExecutor",
    "ExitClass",
    "OperationRecord",
    "SubprocessRunner",
    "lookup",
]
