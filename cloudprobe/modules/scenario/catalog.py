"""
Command catalog for the openstack unified CLI.

Every resource kind of the deployment is described by its create, delete and
list actions, the field holding the new id, and the columns used to read its
status from a listing or to recognise it during a prefix sweep.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

from ...config.provider import ProbeConfig, TimeoutConfig
from ..batch import ActionTemplate

OPENSTACK = "openstack"


@dataclass
class ResourceKind:
    """Actions and columns of one resource kind."""

    name: str
    create: Optional[ActionTemplate]
    delete: ActionTemplate
    list: Optional[ActionTemplate] = None
    show: Optional[ActionTemplate] = None
    id_field: str = "id"
    status_field: str = "status"
    status_column: str = "Status"
    id_column: str = "ID"
    owner_column: str = "Name"
    owner_prefix: str = ""
    timeout: str = "network"
    series: str = "net"

    def owns(self, row: Dict[str, object]) -> bool:
        """True if a listing row belongs to this probe."""
        value = row.get(self.owner_column)
        return isinstance(value, str) and bool(self.owner_prefix) and value.startswith(self.owner_prefix)


@dataclass
class Catalog:
    """Resource kinds plus the attach style actions between them."""

    kinds: Dict[str, ResourceKind]
    actions: Dict[str, ActionTemplate] = field(default_factory=dict)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)

    def __getitem__(self, name: str) -> ResourceKind:
        return self.kinds[name]

    def timeout(self, kind: ResourceKind) -> float:
        return getattr(self.timeouts, kind.timeout, self.timeouts.default)


def _os(*args: str) -> ActionTemplate:
    return ActionTemplate([OPENSTACK, *args])


def default_catalog(config: ProbeConfig, timeouts: Optional[TimeoutConfig] = None) -> Catalog:
    """Build the openstack CLI catalog for a probe configuration."""
    p = config.prefix
    json_out = ["-f", "json"]

    kinds = {
        "routers": ResourceKind(
            name="routers",
            create=_os("router", "create", f"{p}Router", *json_out),
            delete=_os("router", "delete", "$id"),
            list=_os("router", "list", *json_out),
            show=_os("router", "show", "$id", *json_out),
            owner_prefix=p,
        ),
        "networks": ResourceKind(
            name="networks",
            create=_os("network", "create", f"{p}Net_$azn", *json_out),
            delete=_os("network", "delete", "$id"),
            list=_os("network", "list", *json_out),
            show=_os("network", "show", "$id", *json_out),
            owner_prefix=p,
        ),
        "subnets": ResourceKind(
            name="subnets",
            create=_os(
                "subnet", "create", f"{p}Subnet_$no",
                "--network", "$val",
                "--subnet-range", f"{config.cidr_base}.$no.0/24",
                *json_out,
            ),
            delete=_os("subnet", "delete", "$id"),
            list=_os("subnet", "list", *json_out),
            show=_os("subnet", "show", "$id", *json_out),
            owner_prefix=p,
        ),
        "security_groups": ResourceKind(
            name="security_groups",
            create=_os("security", "group", "create", f"{p}SG_$no", *json_out),
            delete=_os("security", "group", "delete", "$id"),
            list=_os("security", "group", "list", *json_out),
            owner_prefix=p,
        ),
        "keypairs": ResourceKind(
            name="keypairs",
            create=_os("keypair", "create", f"{p}Keypair_$no", *json_out),
            delete=_os("keypair", "delete", "$id"),
            list=_os("keypair", "list", *json_out),
            id_field="name",
            id_column="Name",
            owner_prefix=p,
            timeout="compute",
            series="compute",
        ),
        "volumes": ResourceKind(
            name="volumes",
            create=_os(
                "volume", "create", f"{p}Vol_$no",
                "--size", str(config.volume_size),
                "--image", config.image,
                "--availability-zone", "$az",
                *json_out,
            ),
            delete=_os("volume", "delete", "$id"),
            list=_os("volume", "list", *json_out),
            show=_os("volume", "show", "$id", *json_out),
            owner_prefix=p,
            timeout="volume",
            series="volume",
        ),
        "ports": ResourceKind(
            name="ports",
            create=_os(
                "port", "create", f"{p}Port_$no",
                "--network", "$val",
                "--security-group", "$sg",
                *json_out,
            ),
            delete=_os("port", "delete", "$id"),
            list=_os("port", "list", *json_out),
            show=_os("port", "show", "$id", *json_out),
            owner_prefix=p,
        ),
        "servers": ResourceKind(
            name="servers",
            create=_os(
                "server", "create", f"{p}VM_$no",
                "--flavor", config.flavor,
                "--volume", "$mval",
                "--nic", "port-id=$val",
                "--key-name", "$keypair",
                "--availability-zone", "$az",
                *json_out,
            ),
            delete=_os("server", "delete", "$id"),
            list=_os("server", "list", "--name", f"^{p}", *json_out),
            show=_os("server", "show", "$id", *json_out),
            owner_prefix=p,
            timeout="compute",
            series="compute",
        ),
        "floating_ips": ResourceKind(
            name="floating_ips",
            create=_os(
                "floating", "ip", "create", config.external_network,
                "--port", "$val",
                *json_out,
            ),
            delete=_os("floating", "ip", "delete", "$id"),
            list=_os("floating", "ip", "list", *json_out),
            show=_os("floating", "ip", "show", "$id", *json_out),
            owner_column="Fixed IP Address",
            owner_prefix=f"{config.cidr_base}.",
            timeout="floating_ip",
            series="fip",
        ),
    }

    actions = {
        "router_add_subnet": _os("router", "add", "subnet", "$router", "$val"),
        "router_remove_subnet": _os("router", "remove", "subnet", "$router", "$val"),
        "router_set_gateway": _os(
            "router", "set", "--external-gateway", config.external_network, "$router"
        ),
        "router_unset_gateway": _os("router", "unset", "--external-gateway", "$router"),
        "sg_rule_ssh": _os(
            "security", "group", "rule", "create",
            "--ingress", "--protocol", "tcp", "--dst-port", "22", "$val",
            *json_out,
        ),
        "sg_rule_icmp": _os(
            "security", "group", "rule", "create",
            "--ingress", "--protocol", "icmp", "$val",
            *json_out,
        ),
    }

    return Catalog(kinds=kinds, actions=actions, timeouts=timeouts or TimeoutConfig())
