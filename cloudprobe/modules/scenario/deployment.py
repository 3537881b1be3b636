"""
The probe deployment: router, networks, subnets, security group, key pair,
volumes, ports, servers and floating IPs, built as a saga.

Each stage creates one kind (plus its attachments). A stage that fails
releases whatever it created before reporting failure, so the saga only has
to unwind the stages that completed.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Protocol, Sequence

from ...config.provider import PollingConfig, ProbeConfig
from ..alarm import AlarmDispatcher, Severity
from ..batch import BatchCreator, BatchDeleter
from ..executor import CommandExecutor
from ..poller import DELETED, WAIT_THROUGH_ERRORS, BulkListPoller, PerItemPoller
from ..pool import RemainderRegistry, ResourceLedger, ResourcePool
from ..saga import DeploymentSaga, InterruptController, SagaOutcome, SagaStage
from ..stats import MetricsCollector
from .catalog import Catalog, ResourceKind

logger = logging.getLogger("cloudprobe.scenario")

KINDS = (
    "routers",
    "networks",
    "subnets",
    "security_groups",
    "keypairs",
    "volumes",
    "ports",
    "servers",
    "floating_ips",
)


class Probe(Protocol):
    """Functional check of the booted servers."""

    async def check(self, servers: ResourcePool, floating_ips: ResourcePool) -> int:
        """Returns the number of servers that failed the check."""
        ...


class NoopProbe:
    """Probe that accepts every deployment."""

    async def check(self, servers: ResourcePool, floating_ips: ResourcePool) -> int:
        return 0


@dataclass
class DeploymentResult:
    """Outcome of one deployment run."""

    outcome: SagaOutcome
    vms: int = 0
    vm_errors: int = 0
    wait_errors: int = 0

    @property
    def success(self) -> bool:
        return self.outcome.ok

    @property
    def clean(self) -> bool:
        """Successful and without probe or convergence errors."""
        return self.success and self.vm_errors == 0 and self.wait_errors == 0


def spread(pool: ResourcePool, count: int, kind: Optional[str] = None) -> ResourcePool:
    """Pool of `count` entries cycling through `pool` (e.g. network per port)."""
    spread_pool = ResourcePool(kind or f"{pool.kind}_spread")
    for i in range(count if len(pool) else 0):
        handle = pool[i % len(pool)]
        spread_pool.append(handle.id, handle.created_at)
    return spread_pool


class Deployment:
    """One deploy/verify/teardown cycle."""

    def __init__(
        self,
        config: ProbeConfig,
        polling: PollingConfig,
        catalog: Catalog,
        executor: CommandExecutor,
        metrics: MetricsCollector,
        remainders: RemainderRegistry,
        alarms: Optional[AlarmDispatcher] = None,
        probe: Optional[Probe] = None,
        interrupts: Optional[InterruptController] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self.polling = polling
        self.catalog = catalog
        self.executor = executor
        self.metrics = metrics
        self.alarms = alarms
        self.probe = probe or NoopProbe()
        self.interrupts = interrupts or InterruptController(config.prefix)
        self.clock = clock

        self.creator = BatchCreator(executor, config.zones, clock)
        self.deleter = BatchDeleter(
            executor,
            remainders,
            config.delete_retry_backoff,
            config.delete_retry_margin,
            clock,
            sleep,
        )
        self.per_item = PerItemPoller(
            executor, polling.per_item_rounds, polling.per_item_interval, clock=clock, sleep=sleep
        )
        self.bulk = BulkListPoller(
            executor,
            polling.bulk_rounds,
            polling.bulk_interval,
            polling.bulk_failure_backoff,
            polling.bulk_max_failures,
            polling.bulk_max_failures_deleted,
            clock=clock,
            sleep=sleep,
        )
        self.ledger = ResourceLedger()
        self.pools: Dict[str, ResourcePool] = {k: ResourcePool(k, self.ledger) for k in KINDS}
        self.attached_subnets = 0
        self.gateway_set = False
        self.result: Optional[DeploymentResult] = None

    @property
    def zone_count(self) -> int:
        return len(self.config.zones)

    def _first(self, kind: str) -> str:
        return self.pools[kind][0].id

    # Building blocks

    async def _create(
        self,
        kind: str,
        quantity: int,
        dependent: Sequence[ResourcePool] = (),
        cleanup: Optional[Callable[[], Awaitable[None]]] = None,
        **bind,
    ) -> bool:
        rk = self.catalog[kind]
        template = rk.create.bind(**bind) if bind else rk.create
        result = await self.creator.create(
            quantity,
            self.metrics[rk.series],
            self.pools[kind],
            dependent,
            rk.id_field,
            self.catalog.timeout(rk),
            template,
        )
        if not result.ok:
            if cleanup is not None:
                await cleanup()
            else:
                await self._delete(kind)
        return result.ok

    async def _delete(self, kind: str, tracker: Optional[ResourcePool] = None) -> int:
        rk = self.catalog[kind]
        return await self.deleter.delete(
            self.metrics[rk.series],
            self.pools[kind],
            tracker,
            self.catalog.timeout(rk),
            rk.delete,
        )

    async def _attach(
        self, action: str, count: int, dependent: Sequence[ResourcePool], series: str, timeout: float, **bind
    ) -> int:
        """Run an attach style action for `count` items; returns how many succeeded."""
        template = self.catalog.actions[action].bind(**bind)
        result = await self.creator.create(
            count, self.metrics[series], None, dependent, None, timeout, template
        )
        return result.created

    async def _wait(
        self,
        kind: str,
        pool: ResourcePool,
        completion: Optional[str],
        target: str,
        alt: Optional[str] = None,
    ) -> int:
        rk: ResourceKind = self.catalog[kind]
        completion_series = self.metrics[completion] if completion else None
        timeout = self.catalog.timeout(rk)
        if self.polling.use_bulk and rk.list is not None:
            return await self.bulk.wait_for(
                self.metrics[rk.series],
                pool,
                completion_series,
                target,
                alt,
                rk.status_column,
                timeout,
                rk.list,
                rk.id_column,
            )
        return await self.per_item.wait_for(
            self.metrics[rk.series],
            pool,
            completion_series,
            target,
            alt,
            rk.status_field,
            timeout,
            rk.show,
        )

    # Stages

    async def create_router(self) -> bool:
        return await self._create("routers", 1)

    async def delete_router(self) -> None:
        await self._delete("routers")

    async def create_networks(self) -> bool:
        return await self._create("networks", self.zone_count)

    async def delete_networks(self) -> None:
        await self._delete("networks")

    async def create_subnets(self) -> bool:
        if not await self._create("subnets", self.zone_count, [self.pools["networks"]]):
            return False
        subnets = self.pools["subnets"]
        self.attached_subnets = await self._attach(
            "router_add_subnet",
            len(subnets),
            [subnets],
            "net",
            self.catalog.timeouts.network,
            router=self._first("routers"),
        )
        if self.attached_subnets < len(subnets):
            await self.delete_subnets()
            return False
        return True

    async def delete_subnets(self) -> None:
        if self.attached_subnets:
            await self._attach(
                "router_remove_subnet",
                self.attached_subnets,
                [self.pools["subnets"]],
                "net",
                self.catalog.timeouts.network,
                router=self._first("routers"),
            )
            self.attached_subnets = 0
        await self._delete("subnets")

    async def create_security_groups(self) -> bool:
        if not await self._create("security_groups", 1):
            return False
        groups = self.pools["security_groups"]
        for rule in ("sg_rule_ssh", "sg_rule_icmp"):
            done = await self._attach(rule, 1, [groups], "net", self.catalog.timeouts.network)
            if done < 1:
                await self._delete("security_groups")
                return False
        return True

    async def delete_security_groups(self) -> None:
        await self._delete("security_groups")

    async def create_keypairs(self) -> bool:
        return await self._create("keypairs", 1)

    async def delete_keypairs(self) -> None:
        await self._delete("keypairs")

    async def create_volumes(self) -> bool:
        if not await self._create("volumes", self.config.vms):
            return False
        errors = await self._wait("volumes", self.pools["volumes"], "vol_create", "available")
        if errors:
            self.metrics.run.wait_errors += errors
            await self._delete("volumes")
            return False
        return True

    async def delete_volumes(self) -> None:
        await self._delete("volumes")

    async def create_ports(self) -> bool:
        networks = spread(self.pools["networks"], self.config.vms)
        return await self._create(
            "ports", self.config.vms, [networks], sg=self._first("security_groups")
        )

    async def delete_ports(self) -> None:
        await self._delete("ports")

    async def create_servers(self) -> bool:
        if not await self._create(
            "servers",
            self.config.vms,
            [self.pools["ports"], self.pools["volumes"]],
            cleanup=self.delete_servers,
            keypair=self._first("keypairs"),
        ):
            return False
        errors = await self._wait("servers", self.pools["servers"], "vm_create", "ACTIVE")
        if errors:
            self.metrics.run.wait_errors += errors
            await self.delete_servers()
            return False
        self.metrics.run.vms += len(self.pools["servers"])
        return True

    async def delete_servers(self) -> None:
        gone = ResourcePool("servers")
        await self._delete("servers", tracker=gone)
        if gone:
            errors = await self._wait("servers", gone, "vm_delete", DELETED, WAIT_THROUGH_ERRORS)
            if errors:
                logger.error(f"{errors} servers did not disappear")

    async def create_floating_ips(self) -> bool:
        router = self._first("routers")
        timeout = self.catalog.timeouts.floating_ip
        if await self._attach("router_set_gateway", 1, [], "fip", timeout, router=router) < 1:
            return False
        self.gateway_set = True
        count = min(self.zone_count, self.config.vms)
        if not await self._create("floating_ips", count, [self.pools["ports"]]):
            await self._unset_gateway()
            return False
        return True

    async def delete_floating_ips(self) -> None:
        await self._delete("floating_ips")
        await self._unset_gateway()

    async def _unset_gateway(self) -> None:
        if not self.gateway_set:
            return
        await self._attach(
            "router_unset_gateway",
            1,
            [],
            "fip",
            self.catalog.timeouts.floating_ip,
            router=self._first("routers"),
        )
        self.gateway_set = False

    async def run_probe(self) -> bool:
        started = self.clock()
        try:
            errors = await self.probe.check(self.pools["servers"], self.pools["floating_ips"])
        except Exception as e:
            logger.exception(f"Probe raised: {e}")
            errors = len(self.pools["servers"]) or 1
        self.metrics["wait"].append(self.clock() - started)
        if errors:
            self.metrics.run.vm_errors += errors
            if self.alarms is not None:
                await self.alarms.notify(
                    Severity.ALARM, f"{errors} servers failed the probe", "", 0, errors
                )
            await self.executor.pause(self.config.vm_error_wait)
        return True

    def stages(self) -> List[SagaStage]:
        return [
            SagaStage("router", self.create_router, self.delete_router),
            SagaStage("networks", self.create_networks, self.delete_networks),
            SagaStage("subnets", self.create_subnets, self.delete_subnets),
            SagaStage("security_groups", self.create_security_groups, self.delete_security_groups),
            SagaStage("keypairs", self.create_keypairs, self.delete_keypairs),
            SagaStage("volumes", self.create_volumes, self.delete_volumes),
            SagaStage("ports", self.create_ports, self.delete_ports),
            SagaStage("servers", self.create_servers, self.delete_servers),
            SagaStage("floating_ips", self.create_floating_ips, self.delete_floating_ips),
            SagaStage("probe", self.run_probe),
        ]

    async def run(self) -> DeploymentResult:
        """Deploy, probe and tear down once."""
        errors_before = (self.metrics.run.vm_errors, self.metrics.run.wait_errors)
        outcome = await DeploymentSaga(self.stages(), self.interrupts).run()
        self.result = DeploymentResult(
            outcome=outcome,
            vms=self.metrics.run.vms,
            vm_errors=self.metrics.run.vm_errors - errors_before[0],
            wait_errors=self.metrics.run.wait_errors - errors_before[1],
        )
        leftover = {k: p.ids for k, p in self.pools.items() if len(p)}
        if leftover:
            logger.warning(f"Resources still owned after teardown: {leftover}")
        return self.result
