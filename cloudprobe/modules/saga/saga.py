"""
Deployment saga: ordered create stages with reverse-order teardown.

Stages run forward while each one succeeds. Afterwards every stage whose
action succeeded is torn down, last first. Stages never reached, and the
stage that failed, are not torn down; a failing stage releases whatever it
created itself before reporting failure.
"""

import asyncio
import logging
import signal
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Sequence

logger = logging.getLogger("cloudprobe.saga")

StageAction = Callable[[], Awaitable[bool]]
StageTeardown = Callable[[], Awaitable[None]]


@dataclass
class SagaStage:
    """One create step paired with its teardown."""

    name: str
    action: StageAction
    teardown: Optional[StageTeardown] = None


@dataclass
class SagaOutcome:
    """What a saga run did."""

    completed: List[str] = field(default_factory=list)
    failed_stage: Optional[str] = None
    unwound: List[str] = field(default_factory=list)
    teardown_failed: List[str] = field(default_factory=list)
    interrupted: bool = False
    abandoned: bool = False

    @property
    def ok(self) -> bool:
        return self.failed_stage is None and not self.interrupted


class InterruptController:
    """
    Counts operator interrupts (SIGINT).

    The first interrupt lets the current stage finish and starts the unwind.
    The second one abandons the unwind; the leftovers can then be removed by
    a prefix sweep.
    """

    def __init__(self, prefix: str = ""):
        self.prefix = prefix
        self.count = 0
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def requested(self) -> bool:
        return self.count >= 1

    @property
    def abandon(self) -> bool:
        return self.count >= 2

    @property
    def recovery_command(self) -> str:
        return f"cloudprobe cleanup {self.prefix}"

    def request(self) -> None:
        self.count += 1
        if self.count == 1:
            logger.warning("Interrupt received: finishing current stage, then cleaning up")
        else:
            logger.warning(
                f"Second interrupt: cleanup abandoned, run '{self.recovery_command}' later"
            )

    def reset(self) -> None:
        self.count = 0

    def install(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> bool:
        """Route SIGINT to request(). Returns False where unsupported."""
        loop = loop or asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, self.request)
        except (NotImplementedError, RuntimeError) as e:
            logger.warning(f"Cannot install SIGINT handler: {e}")
            return False
        self._loop = loop
        return True

    def uninstall(self) -> None:
        if self._loop is not None:
            self._loop.remove_signal_handler(signal.SIGINT)
            self._loop = None


class DeploymentSaga:
    """Runs a fixed list of stages."""

    def __init__(self, stages: Sequence[SagaStage], interrupts: Optional[InterruptController] = None):
        self.stages = list(stages)
        self.interrupts = interrupts or InterruptController()

    async def run(self) -> SagaOutcome:
        """
        Execute stages forward, then unwind the successful ones in reverse.

        Returns:
            SagaOutcome describing how far the run got
        """
        outcome = SagaOutcome()
        succeeded: List[SagaStage] = []

        for stage in self.stages:
            if self.interrupts.requested:
                outcome.interrupted = True
                break
            logger.debug(f"Stage {stage.name}")
            try:
                ok = await stage.action()
            except Exception as e:
                logger.exception(f"Stage {stage.name} raised: {e}")
                ok = False
            if not ok:
                logger.error(f"Stage {stage.name} failed")
                outcome.failed_stage = stage.name
                break
            succeeded.append(stage)
            outcome.completed.append(stage.name)

        if self.interrupts.requested:
            outcome.interrupted = True

        for stage in reversed(succeeded):
            if self.interrupts.abandon:
                outcome.abandoned = True
                logger.warning(f"Cleanup skipped, run '{self.interrupts.recovery_command}'")
                break
            if stage.teardown is None:
                continue
            try:
                await stage.teardown()
            except Exception as e:
                logger.exception(f"Teardown of {stage.name} raised: {e}")
                outcome.teardown_failed.append(stage.name)
                continue
            outcome.unwound.append(stage.name)

        return outcome
