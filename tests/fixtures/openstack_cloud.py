"""
In-memory stand-in for the openstack unified CLI.

FakeCloud understands the subset of 'openstack' commands issued by the default
catalog and keeps the created resources in dictionaries, so deployments,
teardowns and sweeps can be exercised end to end without a cloud.

Usage:
    async def test_deploy(executor_factory):
        cloud = FakeCloud()
        cloud.fail_on("server create")
        executor = executor_factory(cloud)
        ...
        assert cloud.empty
"""

import itertools
import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set

# Ensure tests directory is in path for imports
TESTS_DIR = Path(__file__).parent.parent
if str(TESTS_DIR) not in sys.path:
    sys.path.insert(0, str(TESTS_DIR))

from cloudprobe.modules.executor import ActionResult

NOUNS = {
    "router": "routers",
    "network": "networks",
    "subnet": "subnets",
    "keypair": "keypairs",
    "volume": "volumes",
    "port": "ports",
    "server": "servers",
}

# Status a resource reports right after creation
INITIAL_STATUS = {
    "volumes": "available",
    "servers": "ACTIVE",
    "ports": "DOWN",
    "networks": "ACTIVE",
    "routers": "ACTIVE",
}


@dataclass
class FailureRule:
    """Makes matching commands fail."""
    pattern: str
    times: Optional[int] = None
    after: int = 0
    returncode: int = 1
    output: str = "Internal Server Error (HTTP 500)"
    seen: int = 0

    def hit(self, command: str) -> bool:
        if self.pattern not in command:
            return False
        self.seen += 1
        if self.seen <= self.after:
            return False
        if self.times is not None and self.seen > self.after + self.times:
            return False
        return True


def _error(message: str, returncode: int = 1) -> ActionResult:
    return ActionResult(returncode=returncode, output=message)


def _fields(data: Dict) -> ActionResult:
    return ActionResult(returncode=0, output=json.dumps(data), fields=dict(data))


def _rows(rows: List[Dict]) -> ActionResult:
    return ActionResult(returncode=0, output=json.dumps(rows), rows=[dict(r) for r in rows])


class FakeCloud:
    """Resource state and command interpreter."""

    def __init__(self, cidr_base: str = "10.250"):
        self.cidr_base = cidr_base
        self.resources: Dict[str, Dict[str, Dict]] = {kind: {} for kind in NOUNS.values()}
        self.resources["security_groups"] = {}
        self.resources["floating_ips"] = {}
        self.rules: Dict[str, int] = {}
        self.router_subnets: Dict[str, Set[str]] = {}
        self.gateways: Set[str] = set()
        self.commands: List[str] = []
        self.hooks: List[tuple] = []
        self._failures: List[FailureRule] = []
        self._ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def fail_on(self, pattern: str, times: Optional[int] = None, after: int = 0,
                returncode: int = 1) -> FailureRule:
        """Fail commands containing `pattern` (`times` times, after `after` successes)."""
        rule = FailureRule(pattern, times, after, returncode)
        self._failures.append(rule)
        return rule

    def on(self, pattern: str, callback: Callable[[List[str]], None]) -> None:
        """Call `callback` after each successful command containing `pattern`."""
        self.hooks.append((pattern, callback))

    def add(self, kind: str, name: str, status: str = "ACTIVE", **extra) -> str:
        """Pre-populate a resource, e.g. leftovers of an earlier run."""
        resource_id = name if kind == "keypairs" else f"{kind}-{next(self._ids):04d}"
        self.resources[kind][resource_id] = {"id": resource_id, "name": name, "status": status, **extra}
        return resource_id

    def ids(self, kind: str) -> List[str]:
        return list(self.resources[kind])

    def names(self, kind: str) -> List[str]:
        return [r["name"] for r in self.resources[kind].values()]

    @property
    def empty(self) -> bool:
        return not any(self.resources.values())

    def called(self, pattern: str) -> List[str]:
        return [c for c in self.commands if pattern in c]

    def index(self, pattern: str) -> int:
        """Position of the first command containing `pattern`."""
        for i, command in enumerate(self.commands):
            if pattern in command:
                return i
        raise AssertionError(f"'{pattern}' was never called")

    # ------------------------------------------------------------------
    # Interpreter
    # ------------------------------------------------------------------

    async def run(self, argv: List[str]) -> ActionResult:
        """Action callable for CallableRunner."""
        command = " ".join(argv)
        self.commands.append(command)
        for rule in self._failures:
            if rule.hit(command):
                return _error(rule.output, rule.returncode)

        tokens = [t for t in argv[1:] if t not in ("-f", "json")]
        result = self._dispatch(tokens)
        if result.returncode == 0:
            for pattern, callback in self.hooks:
                if pattern in command:
                    callback(argv)
        return result

    def _dispatch(self, tokens: List[str]) -> ActionResult:
        if tokens[:3] == ["security", "group", "rule"]:
            return self._rule(tokens[4:])
        if tokens[:2] == ["security", "group"]:
            return self._generic("security_groups", tokens[2], tokens[3:])
        if tokens[:2] == ["floating", "ip"]:
            return self._floating_ip(tokens[2], tokens[3:])
        if tokens[0] == "router" and tokens[1] in ("add", "remove", "set", "unset"):
            return self._router(tokens[1], tokens[2:])
        kind = NOUNS.get(tokens[0])
        if kind is None:
            return _error(f"openstack: '{tokens[0]}' is not an openstack command", 2)
        return self._generic(kind, tokens[1], tokens[2:])

    def _generic(self, kind: str, verb: str, rest: List[str]) -> ActionResult:
        store = self.resources[kind]
        if verb == "create":
            name = rest[0]
            resource_id = name if kind == "keypairs" else f"{kind}-{next(self._ids):04d}"
            if resource_id in store:
                return _error(f"Keypair {name} already exists (HTTP 409)")
            resource = {"id": resource_id, "name": name, "status": INITIAL_STATUS.get(kind, "")}
            store[resource_id] = resource
            return _fields(resource)

        if verb == "delete":
            resource_id = rest[0]
            if resource_id not in store:
                return _error(f"No {kind[:-1]} found for {resource_id}")
            if kind == "subnets" and any(resource_id in s for s in self.router_subnets.values()):
                return _error(f"Unable to delete subnet {resource_id}: in use (HTTP 409)")
            if kind == "routers" and (self.router_subnets.get(resource_id) or resource_id in self.gateways):
                return _error(f"Router {resource_id} still has ports (HTTP 409)")
            del store[resource_id]
            return ActionResult(returncode=0)

        if verb == "show":
            resource = store.get(rest[0])
            if resource is None:
                return _error(f"No {kind[:-1]} found for {rest[0]}")
            return _fields(resource)

        if verb == "list":
            name_filter = None
            if "--name" in rest:
                name_filter = rest[rest.index("--name") + 1].lstrip("^")
            rows = []
            for r in store.values():
                if name_filter and not r["name"].startswith(name_filter):
                    continue
                if kind == "keypairs":
                    rows.append({"Name": r["name"], "Fingerprint": "aa:bb"})
                else:
                    rows.append({"ID": r["id"], "Name": r["name"], "Status": r["status"]})
            return _rows(rows)

        return _error(f"Unknown verb {verb}", 2)

    def _rule(self, rest: List[str]) -> ActionResult:
        group = rest[-1]
        if group not in self.resources["security_groups"]:
            return _error(f"No security group found for {group}")
        self.rules[group] = self.rules.get(group, 0) + 1
        return _fields({"id": f"rule-{next(self._ids):04d}", "security_group_id": group})

    def _router(self, verb: str, rest: List[str]) -> ActionResult:
        routers = self.resources["routers"]
        if verb in ("add", "remove"):
            router, subnet = rest[1], rest[2]
            if router not in routers:
                return _error(f"No router found for {router}")
            attached = self.router_subnets.setdefault(router, set())
            if verb == "add":
                attached.add(subnet)
            elif subnet in attached:
                attached.discard(subnet)
            else:
                return _error(f"Router {router} has no interface on subnet {subnet}")
            return ActionResult(returncode=0)

        router = rest[-1]
        if router not in routers:
            return _error(f"No router found for {router}")
        if verb == "set":
            self.gateways.add(router)
        else:
            self.gateways.discard(router)
        return ActionResult(returncode=0)

    def _floating_ip(self, verb: str, rest: List[str]) -> ActionResult:
        store = self.resources["floating_ips"]
        if verb == "create":
            port = rest[rest.index("--port") + 1]
            if port not in self.resources["ports"]:
                return _error(f"No port found for {port}")
            n = next(self._ids)
            resource_id = f"floating_ips-{n:04d}"
            store[resource_id] = {
                "id": resource_id,
                "name": "",
                "floating_ip_address": f"192.0.2.{n % 250}",
                "fixed_ip_address": f"{self.cidr_base}.0.{n % 250}",
                "port_id": port,
                "status": "ACTIVE",
            }
            return _fields(store[resource_id])
        if verb == "delete":
            if rest[0] not in store:
                return _error(f"No floating ip found for {rest[0]}")
            del store[rest[0]]
            return ActionResult(returncode=0)
        if verb == "list":
            return _rows([
                {
                    "ID": f["id"],
                    "Floating IP Address": f["floating_ip_address"],
                    "Fixed IP Address": f["fixed_ip_address"],
                    "Port": f["port_id"],
                }
                for f in store.values()
            ])
        if verb == "show":
            resource = store.get(rest[0])
            return _fields(resource) if resource else _error(f"No floating ip found for {rest[0]}")
        return _error(f"Unknown verb {verb}", 2)
