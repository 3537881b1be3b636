"""
Action runners.

A runner starts one resolved action and hands back a process-like handle that
can be awaited for its ActionResult and sent signals by the watchdog.
"""

import asyncio
import json
import logging
import os
import shlex
import signal
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Sequence, Tuple, Union

logger = logging.getLogger("cloudprobe.executor")

# Return code of an action that could not be started at all
NOT_STARTED = 127


@dataclass
class ActionResult:
    """
    Structured outcome of one action.

    fields holds single-object output (e.g. 'openstack network create -f json'),
    rows holds listing output (e.g. 'openstack server list -f json').
    """

    returncode: int
    output: str = ""
    fields: Dict[str, Any] = field(default_factory=dict)
    rows: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_output(cls, returncode: int, output: str) -> "ActionResult":
        """Parse JSON output into fields or rows; other text is kept as is."""
        result = cls(returncode=returncode, output=output)
        text = output.strip()
        if not text or text[0] not in "[{":
            return result
        try:
            data = json.loads(text)
        except ValueError:
            return result
        if isinstance(data, dict):
            result.fields = data
        elif isinstance(data, list):
            result.rows = [row for row in data if isinstance(row, dict)]
        return result

    def get(self, name: str) -> Optional[str]:
        """Look up a field by name (case-insensitive fallback)."""
        value = lookup(self.fields, name)
        return None if value is None else str(value)


def lookup(mapping: Dict[str, Any], key: Union[str, int]) -> Optional[Any]:
    """Read a value by column name, or by column position for an int key."""
    if isinstance(key, int):
        values = list(mapping.values())
        return values[key] if -len(values) <= key < len(values) else None
    if key in mapping:
        return mapping[key]
    lowered = key.lower()
    for name, value in mapping.items():
        if name.lower() == lowered:
            return value
    return None


class ActionProcess(Protocol):
    """Handle of a running action."""

    async def wait(self) -> ActionResult:
        ...

    def send_signal(self, sig: int) -> None:
        ...


class ActionRunner(Protocol):
    """Starts actions."""

    async def start(self, action: Sequence[str]) -> ActionProcess:
        ...


def _normalize(returncode: Optional[int]) -> int:
    """Map a signal death (negative code) to 128 + signal number."""
    if returncode is None:
        return NOT_STARTED
    if returncode < 0:
        return 128 - returncode
    return returncode


class FailedProcess:
    """Handle for an action that never started."""

    def __init__(self, returncode: int, output: str):
        self._result = ActionResult(returncode=returncode, output=output)

    async def wait(self) -> ActionResult:
        return self._result

    def send_signal(self, sig: int) -> None:
        pass


class SubprocessProcess:
    """Running external command in its own process group."""

    def __init__(self, process: asyncio.subprocess.Process):
        self.process = process

    async def wait(self) -> ActionResult:
        stdout, _ = await self.process.communicate()
        output = stdout.decode("utf-8", errors="replace") if stdout else ""
        return ActionResult.from_output(_normalize(self.process.returncode), output)

    def send_signal(self, sig: int) -> None:
        if self.process.returncode is not None:
            return
        try:
            os.killpg(self.process.pid, sig)
        except ProcessLookupError:
            pass


class SubprocessRunner:
    """
    Runs actions as external commands.

    stdout and stderr are merged. The command gets its own session so that
    signals reach its children too.
    """

    def __init__(self, env: Optional[Dict[str, str]] = None):
        self.env = env

    async def start(self, action: Sequence[str]) -> ActionProcess:
        cmd = list(action)
        logger.debug(f"Running: {shlex.join(cmd)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                start_new_session=True,
                env=self.env,
            )
        except (FileNotFoundError, PermissionError) as e:
            logger.error(f"Cannot start {cmd[0] if cmd else '<empty>'}: {e}")
            return FailedProcess(NOT_STARTED, str(e))
        return SubprocessProcess(process)


ActionCallable = Callable[[List[str]], Awaitable[Union[ActionResult, Tuple[int, str]]]]


class CallableProcess:
    """In-process action running as a task. Any signal cancels it."""

    def __init__(self, task: "asyncio.Task"):
        self.task = task
        self.signal: Optional[int] = None

    async def wait(self) -> ActionResult:
        try:
            outcome = await self.task
        except asyncio.CancelledError:
            if self.signal is None:
                raise
            name = signal.Signals(self.signal).name
            return ActionResult(returncode=128 + self.signal, output=f"terminated by {name}")
        except Exception as e:
            logger.exception(f"Action raised: {e}")
            return ActionResult(returncode=1, output=str(e))
        if isinstance(outcome, ActionResult):
            return outcome
        returncode, output = outcome
        return ActionResult.from_output(returncode, output)

    def send_signal(self, sig: int) -> None:
        if self.task.done():
            return
        if self.signal is None:
            self.signal = sig
        self.task.cancel()


class CallableRunner:
    """Runs actions through an async Python callable."""

    def __init__(self, func: ActionCallable):
        self.func = func

    async def start(self, action: Sequence[str]) -> ActionProcess:
        return CallableProcess(asyncio.ensure_future(self.func(list(action))))
