"""
Saga Module - Black Box Interface

Purpose: Sequence create stages and guarantee reverse-order teardown
Interface: DeploymentSaga(stages, interrupts).run() -> SagaOutcome
Hidden: Unwind stack, interrupt handling

Ordering of cleanup is encoded by stage position only.
"""

from .saga import DeploymentSaga, InterruptController, SagaOutcome, SagaStage

__all__ = ["DeploymentSaga", "InterruptController", "SagaOutcome", "SagaStage"]
