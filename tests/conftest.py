"""
Shared pytest fixtures for cloudprobe tests.

This module provides common fixtures including:
- ActionMocker: Pattern-matched fake action runner with canned responses
- FakeProcess / FakeRunner: Processes that ignore signals, for watchdog tests
- FakeClock: Deterministic clock and sleep for polling tests
- RecordingDispatcher: Alarm dispatcher that remembers every event
- Redis mocks for remainder storage tests
"""

import asyncio
import fnmatch
import os
import signal
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Pattern, Sequence, Union
from unittest.mock import AsyncMock

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from cloudprobe.modules.executor import ActionResult, CallableRunner, CommandExecutor
from cloudprobe.modules.stats import MetricsCollector


# =============================================================================
# Action Mocking Infrastructure
# =============================================================================

@dataclass
class ActionResponse:
    """Represents a mocked action response."""
    returncode: int = 0
    output: str = ""
    fields: Dict[str, Any] = field(default_factory=dict)
    rows: List[Dict[str, Any]] = field(default_factory=list)
    delay: float = 0.0

    def to_result(self) -> ActionResult:
        """Convert to the structured result returned by a runner."""
        return ActionResult(
            returncode=self.returncode,
            output=self.output,
            fields=dict(self.fields),
            rows=[dict(r) for r in self.rows],
        )


@dataclass
class ActionCall:
    """Record of an action executed during testing."""
    command: List[str]
    full_command_str: str
    matched_pattern: Optional[str] = None
    response: Optional[ActionResponse] = None


ResponseEntry = Union[ActionResponse, Sequence[ActionResponse], Callable[[List[str]], ActionResponse]]


class ActionMocker:
    """
    Fake action runner with pattern-matched responses.

    A registered response may be a single ActionResponse, a list of
    responses consumed one per call (the last one repeats), or a callable
    receiving the argument vector.

    Usage:
        def test_create(action_mocker, executor):
            action_mocker.register("network create", ActionResponse(fields={"id": "n1"}))

            record = await executor.run(["openstack", "network", "create", "x"], 10, "id")

            assert record.extracted == "n1"
            assert action_mocker.was_called_with("network create")
    """

    def __init__(self):
        self._responses: List[tuple] = []
        self._sequences: Dict[int, int] = {}
        self._call_history: List[ActionCall] = []
        self._default_response = ActionResponse(
            returncode=1,
            output="Error: mock not configured for this action",
        )

    def register(
        self,
        pattern: Union[str, Pattern],
        response: ResponseEntry,
        priority: int = 0
    ) -> "ActionMocker":
        """
        Register a response for actions matching the pattern.

        Args:
            pattern: String (substring match) or regex pattern
            response: Response, response sequence or callable
            priority: Higher priority patterns are checked first

        Returns:
            self for chaining
        """
        self._responses.append((pattern, response, priority))
        self._responses.sort(key=lambda x: x[2], reverse=True)
        return self

    def set_default_response(self, response: ActionResponse) -> "ActionMocker":
        """Set the default response for unmatched actions."""
        self._default_response = response
        return self

    def _pick(self, entry: ResponseEntry, argv: List[str]) -> ActionResponse:
        if isinstance(entry, ActionResponse):
            return entry
        if callable(entry):
            return entry(argv)
        position = self._sequences.get(id(entry), 0)
        self._sequences[id(entry)] = position + 1
        return entry[min(position, len(entry) - 1)]

    async def run(self, argv: List[str]) -> ActionResult:
        """Action callable used with CallableRunner."""
        cmd_str = " ".join(argv)
        matched_pattern = None
        response = self._default_response

        for pattern, entry, _ in self._responses:
            if isinstance(pattern, str):
                if pattern in cmd_str:
                    matched_pattern = pattern
                    response = self._pick(entry, argv)
                    break
            else:  # Compiled regex
                if pattern.search(cmd_str):
                    matched_pattern = pattern.pattern
                    response = self._pick(entry, argv)
                    break

        self._call_history.append(ActionCall(
            command=list(argv),
            full_command_str=cmd_str,
            matched_pattern=matched_pattern,
            response=response,
        ))
        if response.delay:
            await asyncio.sleep(response.delay)
        return response.to_result()

    @property
    def runner(self) -> CallableRunner:
        return CallableRunner(self.run)

    @property
    def calls(self) -> List[ActionCall]:
        """Get all actions executed during the test."""
        return self._call_history

    @property
    def call_count(self) -> int:
        return len(self._call_history)

    def was_called_with(self, pattern: str) -> bool:
        """Check if any call contained the given pattern."""
        return any(pattern in call.full_command_str for call in self._call_history)

    def get_calls_matching(self, pattern: str) -> List[ActionCall]:
        """Get all calls containing the given pattern."""
        return [c for c in self._call_history if pattern in c.full_command_str]

    def reset(self):
        """Clear call history (but keep registered responses)."""
        self._call_history = []


@pytest.fixture
def action_mocker():
    """Fixture that provides an ActionMocker."""
    return ActionMocker()


# =============================================================================
# Processes for watchdog tests
# =============================================================================

class FakeProcess:
    """
    Process that only dies from signals it does not ignore.

    Records each received signal with the event loop time.
    """

    def __init__(self, ignore=(signal.SIGQUIT, signal.SIGHUP), finish_after: Optional[float] = None):
        self.ignore = set(ignore)
        self.finish_after = finish_after
        self.signals: List[tuple] = []
        self.started_at = asyncio.get_running_loop().time()
        self._done = asyncio.get_running_loop().create_future()
        if finish_after is not None:
            asyncio.get_running_loop().call_later(finish_after, self._exit, 0)

    def _exit(self, returncode: int) -> None:
        if not self._done.done():
            self._done.set_result(returncode)

    async def wait(self) -> ActionResult:
        returncode = await self._done
        return ActionResult(returncode=returncode, output="fake output")

    def send_signal(self, sig: int) -> None:
        self.signals.append((sig, asyncio.get_running_loop().time() - self.started_at))
        if self._done.done():
            return
        if sig not in self.ignore:
            self._exit(128 + sig)


class FakeRunner:
    """Runner handing out FakeProcess instances."""

    def __init__(self, **process_kwargs):
        self.process_kwargs = process_kwargs
        self.processes: List[FakeProcess] = []

    async def start(self, action):
        process = FakeProcess(**self.process_kwargs)
        self.processes.append(process)
        return process


# =============================================================================
# Clock and alarms
# =============================================================================

class FakeClock:
    """Wall clock advanced only by sleep()."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


class RecordingDispatcher:
    """Alarm dispatcher remembering every event."""

    def __init__(self):
        self.events: List[Dict[str, Any]] = []

    async def notify(self, severity, title, body="", timeout=0, code=0) -> None:
        self.events.append({
            "severity": severity,
            "title": title,
            "body": body,
            "timeout": timeout,
            "code": code,
        })

    def of(self, severity) -> List[Dict[str, Any]]:
        return [e for e in self.events if e["severity"] == severity]


@pytest.fixture
def alarms():
    return RecordingDispatcher()


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def executor(action_mocker, metrics, alarms):
    """Executor on the ActionMocker, no error wait, fast escalation."""
    return CommandExecutor(
        action_mocker.runner,
        metrics,
        alarms,
        error_wait=0,
        escalation_interval=0.05,
    )


# =============================================================================
# Redis Mocking Infrastructure
# =============================================================================

@pytest.fixture
def mock_redis():
    """Create a mock Redis client for async operations."""
    redis = AsyncMock()

    redis.keys = AsyncMock(return_value=[])
    redis.expire = AsyncMock()
    redis.delete = AsyncMock(return_value=1)

    # Set operations
    redis.sadd = AsyncMock()
    redis.srem = AsyncMock()
    redis.smembers = AsyncMock(return_value=set())

    return redis


@pytest.fixture
def mock_redis_with_data():
    """
    Redis mock with in-memory set storage for more realistic tests.

    This allows testing code that reads back what it writes.
    """
    storage: Dict[str, set] = {}

    redis = AsyncMock()

    async def mock_sadd(key, *members):
        before = len(storage.get(key, set()))
        storage.setdefault(key, set()).update(members)
        return len(storage[key]) - before

    async def mock_srem(key, *members):
        existing = storage.get(key, set())
        removed = len(existing & set(members))
        existing.difference_update(members)
        if key in storage and not storage[key]:
            del storage[key]
        return removed

    async def mock_smembers(key):
        return set(storage.get(key, set()))

    async def mock_keys(pattern):
        return [k for k in storage.keys() if fnmatch.fnmatch(k, pattern)]

    async def mock_expire(key, ttl):
        return key in storage

    redis.sadd = mock_sadd
    redis.srem = mock_srem
    redis.smembers = mock_smembers
    redis.keys = mock_keys
    redis.expire = mock_expire
    redis._storage = storage  # Expose for test assertions

    return redis


# =============================================================================
# Test Markers Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "action_mock: Tests using the pattern-matched fake action runner"
    )
    config.addinivalue_line(
        "markers", "subprocess: Tests that start real local processes"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take a long time to run"
    )
