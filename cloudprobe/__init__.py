"""
Cloudprobe - Cloud Control Plane Reliability Probe

Repeatedly deploys a graph of cloud resources, waits for them to become
usable, tears them down again and reports latencies and failures.

Architecture:
- Each module is self-contained with clear interfaces
- Modules are completely replaceable
- No module knows the internals of another
- All communication through defined interfaces

Modules:
- executor: Running one external action under a watchdog
- stats: Latency series and run counters
- pool: Ownership of created resource handles
- batch: Creating and deleting resources in batches
- poller: Waiting for resources to converge
- saga: Ordered create/teardown stage chain
- alarm: Notification of failures and reports
- report: Periodic statistics output
- storage: Persistence of deletion leftovers
- scenario: The concrete deployment driven by the probe
"""

__version__ = "1.34.0"
