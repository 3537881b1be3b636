"""Configuration provider following Black Box Design principles."""
import os
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, List, Optional, Protocol

import yaml


@dataclass
class TimeoutConfig:
    """Per service family action timeouts in seconds (0 = unbounded)."""
    network: float = 16
    floating_ip: float = 32
    compute: float = 24
    boot: float = 48
    volume: float = 20
    image: float = 32
    default: float = 16


@dataclass
class PollingConfig:
    """Convergence polling budgets."""
    per_item_rounds: int = 320
    per_item_interval: float = 2.0
    bulk_rounds: int = 240
    bulk_interval: float = 3.0
    bulk_failure_backoff: float = 10.0
    bulk_max_failures: int = 4
    bulk_max_failures_deleted: int = 20
    use_bulk: bool = True


@dataclass
class ProbeConfig:
    """Deployment and main loop configuration."""
    prefix: str = "APIMon"
    vms: int = 12
    zones: List[str] = field(default_factory=lambda: ["nova"])
    iterations: int = -1
    error_wait: float = 1.0
    vm_error_wait: float = 2.0
    send_stats: bool = False
    report_interval: Optional[float] = None
    execution_log: Optional[str] = None
    escalation_interval: float = 1.0
    delete_retry_backoff: float = 2.0
    delete_retry_margin: float = 8.0
    image: str = "Ubuntu 22.04"
    flavor: str = "m1.small"
    external_network: str = "public"
    volume_size: int = 1
    cidr_base: str = "10.250"
    report_dir: str = "."

    @property
    def slow_run_threshold(self) -> float:
        """Run duration above which a clean run is reported as slow."""
        return 484 + 32 * self.vms

    def validate(self) -> None:
        """Raise ValueError on inconsistent settings."""
        if not self.prefix:
            raise ValueError("prefix must not be empty")
        if self.vms < 0:
            raise ValueError(f"vms must be >= 0, got {self.vms}")
        if not self.zones:
            raise ValueError("at least one availability zone is required")
        if self.report_interval is not None and self.report_interval <= 0:
            raise ValueError("report_interval must be positive")


@dataclass
class AlarmConfig:
    """Notification receivers."""
    note_webhooks: List[str] = field(default_factory=list)
    alarm_webhooks: List[str] = field(default_factory=list)
    request_timeout: float = 10.0

    @property
    def is_configured(self) -> bool:
        """Check if any webhook receiver is configured."""
        return bool(self.note_webhooks or self.alarm_webhooks)


@dataclass
class StorageConfig:
    """Remainder persistence configuration."""
    redis_url: Optional[str] = None
    key_ttl: int = 7 * 24 * 3600

    @property
    def is_configured(self) -> bool:
        return bool(self.redis_url)


@dataclass
class Settings:
    """All configuration sections of one probe process."""
    probe: ProbeConfig
    timeouts: TimeoutConfig
    polling: PollingConfig
    alarm: AlarmConfig
    storage: StorageConfig


class ConfigProvider(Protocol):
    """Protocol for configuration providers."""

    def get_probe_config(self) -> ProbeConfig:
        """Get deployment configuration."""
        ...

    def get_timeout_config(self) -> TimeoutConfig:
        """Get action timeouts."""
        ...

    def get_polling_config(self) -> PollingConfig:
        """Get polling budgets."""
        ...

    def get_alarm_config(self) -> AlarmConfig:
        """Get notification configuration."""
        ...

    def get_storage_config(self) -> StorageConfig:
        """Get storage configuration."""
        ...


def _env_number(name: str, default, cast=float):
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.lower() in ("1", "true", "yes", "on")


def _env_numbered(name: str) -> List[str]:
    """Collect NAME, NAME_1, NAME_2, ... until the first gap."""
    values = []
    base = os.getenv(name)
    if base:
        values.append(base)
    n = 1
    while os.getenv(f"{name}_{n}"):
        values.append(os.getenv(f"{name}_{n}"))
        n += 1
    return values


class EnvConfigProvider:
    """Environment-based configuration provider (CLOUDPROBE_* variables)."""

    def get_probe_config(self) -> ProbeConfig:
        """Get deployment configuration from environment variables."""
        defaults = ProbeConfig()
        zones = os.getenv("CLOUDPROBE_ZONES")
        report_interval = os.getenv("CLOUDPROBE_REPORT_INTERVAL")

        config = ProbeConfig(
            prefix=os.getenv("CLOUDPROBE_PREFIX", defaults.prefix),
            vms=_env_number("CLOUDPROBE_VMS", defaults.vms, int),
            zones=[z.strip() for z in zones.split(",") if z.strip()] if zones else defaults.zones,
            iterations=_env_number("CLOUDPROBE_ITERATIONS", defaults.iterations, int),
            error_wait=_env_number("CLOUDPROBE_ERROR_WAIT", defaults.error_wait),
            vm_error_wait=_env_number("CLOUDPROBE_VM_ERROR_WAIT", defaults.vm_error_wait),
            send_stats=_env_bool("CLOUDPROBE_SEND_STATS", defaults.send_stats),
            report_interval=float(report_interval) if report_interval else None,
            execution_log=os.getenv("CLOUDPROBE_EXECUTION_LOG") or None,
            escalation_interval=_env_number(
                "CLOUDPROBE_ESCALATION_INTERVAL", defaults.escalation_interval
            ),
            delete_retry_backoff=_env_number(
                "CLOUDPROBE_DELETE_RETRY_BACKOFF", defaults.delete_retry_backoff
            ),
            delete_retry_margin=_env_number(
                "CLOUDPROBE_DELETE_RETRY_MARGIN", defaults.delete_retry_margin
            ),
            image=os.getenv("CLOUDPROBE_IMAGE", defaults.image),
            flavor=os.getenv("CLOUDPROBE_FLAVOR", defaults.flavor),
            external_network=os.getenv("CLOUDPROBE_EXTERNAL_NETWORK", defaults.external_network),
            volume_size=_env_number("CLOUDPROBE_VOLUME_SIZE", defaults.volume_size, int),
            cidr_base=os.getenv("CLOUDPROBE_CIDR_BASE", defaults.cidr_base),
            report_dir=os.getenv("CLOUDPROBE_REPORT_DIR", defaults.report_dir),
        )
        config.validate()
        return config

    def get_timeout_config(self) -> TimeoutConfig:
        """Get timeouts from CLOUDPROBE_TIMEOUT_<FAMILY> variables."""
        defaults = TimeoutConfig()
        return TimeoutConfig(
            **{
                f.name: _env_number(
                    f"CLOUDPROBE_TIMEOUT_{f.name.upper()}", getattr(defaults, f.name)
                )
                for f in fields(TimeoutConfig)
            }
        )

    def get_polling_config(self) -> PollingConfig:
        """Get polling budgets from CLOUDPROBE_POLL_* variables."""
        d = PollingConfig()
        return PollingConfig(
            per_item_rounds=_env_number("CLOUDPROBE_POLL_PER_ITEM_ROUNDS", d.per_item_rounds, int),
            per_item_interval=_env_number("CLOUDPROBE_POLL_PER_ITEM_INTERVAL", d.per_item_interval),
            bulk_rounds=_env_number("CLOUDPROBE_POLL_BULK_ROUNDS", d.bulk_rounds, int),
            bulk_interval=_env_number("CLOUDPROBE_POLL_BULK_INTERVAL", d.bulk_interval),
            bulk_failure_backoff=_env_number(
                "CLOUDPROBE_POLL_BULK_FAILURE_BACKOFF", d.bulk_failure_backoff
            ),
            bulk_max_failures=_env_number(
                "CLOUDPROBE_POLL_BULK_MAX_FAILURES", d.bulk_max_failures, int
            ),
            bulk_max_failures_deleted=_env_number(
                "CLOUDPROBE_POLL_BULK_MAX_FAILURES_DELETED", d.bulk_max_failures_deleted, int
            ),
            use_bulk=_env_bool("CLOUDPROBE_POLL_USE_BULK", d.use_bulk),
        )

    def get_alarm_config(self) -> AlarmConfig:
        """Get webhook receivers from environment variables."""
        return AlarmConfig(
            note_webhooks=_env_numbered("CLOUDPROBE_NOTE_WEBHOOK"),
            alarm_webhooks=_env_numbered("CLOUDPROBE_ALARM_WEBHOOK"),
            request_timeout=_env_number("CLOUDPROBE_WEBHOOK_TIMEOUT", 10.0),
        )

    def get_storage_config(self) -> StorageConfig:
        """Get storage configuration from environment variables."""
        return StorageConfig(
            redis_url=os.getenv("CLOUDPROBE_REDIS_URL") or None,
            key_ttl=_env_number("CLOUDPROBE_REMAINDER_TTL", StorageConfig().key_ttl, int),
        )


class YamlConfigProvider:
    """
    YAML file overlaid on another provider.

    The file holds one mapping per section (probe, timeouts, polling, alarm,
    storage); keys not present fall back to the base provider.
    """

    SECTIONS = ("probe", "timeouts", "polling", "alarm", "storage")

    def __init__(self, path: str, base: Optional[ConfigProvider] = None):
        self.path = path
        self.base = base or EnvConfigProvider()
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path}: top level must be a mapping")
        unknown = set(data) - set(self.SECTIONS)
        if unknown:
            raise ValueError(f"{path}: unknown sections {sorted(unknown)}")
        self._data: Dict[str, Dict[str, Any]] = data

    def _overlay(self, section: str, base_value):
        values = self._data.get(section) or {}
        if not isinstance(values, dict):
            raise ValueError(f"{self.path}: section '{section}' must be a mapping")
        known = {f.name for f in fields(base_value)}
        unknown = set(values) - known
        if unknown:
            raise ValueError(f"{self.path}: unknown keys in '{section}': {sorted(unknown)}")
        return replace(base_value, **values)

    def get_probe_config(self) -> ProbeConfig:
        config = self._overlay("probe", self.base.get_probe_config())
        config.validate()
        return config

    def get_timeout_config(self) -> TimeoutConfig:
        return self._overlay("timeouts", self.base.get_timeout_config())

    def get_polling_config(self) -> PollingConfig:
        return self._overlay("polling", self.base.get_polling_config())

    def get_alarm_config(self) -> AlarmConfig:
        return self._overlay("alarm", self.base.get_alarm_config())

    def get_storage_config(self) -> StorageConfig:
        return self._overlay("storage", self.base.get_storage_config())


def load_settings(provider: Optional[ConfigProvider] = None) -> Settings:
    """Collect all configuration sections from a provider."""
    provider = provider or EnvConfigProvider()
    return Settings(
        probe=provider.get_probe_config(),
        timeouts=provider.get_timeout_config(),
        polling=provider.get_polling_config(),
        alarm=provider.get_alarm_config(),
        storage=provider.get_storage_config(),
    )
