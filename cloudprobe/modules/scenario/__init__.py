"""
Scenario Module - Black Box Interface

Purpose: The concrete deployment exercised by the probe
Interface: default_catalog(), Deployment.run(), Sweeper.sweep(), ProbeRunner.run()
Hidden: Command syntax of the control plane, stage order, sweep order

Can be replaced with a catalog for another control plane without touching
the engine modules.
"""

from .catalog import Catalog, ResourceKind, default_catalog
from .deployment import KINDS, Deployment, DeploymentResult, NoopProbe, Probe, spread
from .runner import LoopSummary, ProbeRunner
from .sweeper import SWEEP_ORDER, SweepResult, Sweeper

__all__ = [
    "KINDS",
    "SWEEP_ORDER",
    "Catalog",
    "Deployment",
    "DeploymentResult",
    "LoopSummary",
    "NoopProbe",
    "Probe",
    "ProbeRunner",
    "ResourceKind",
    "SweepResult",
    "Sweeper",
    "default_catalog",
    "spread",
]
