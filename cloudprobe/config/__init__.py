from .provider import (
    AlarmConfig,
    ConfigProvider,
    EnvConfigProvider,
    PollingConfig,
    ProbeConfig,
    Settings,
    StorageConfig,
    TimeoutConfig,
    YamlConfigProvider,
    load_settings,
)

__all__ = [
    "AlarmConfig",
    "ConfigProvider",
    "EnvConfigProvider",
    "PollingConfig",
    "ProbeConfig",
    "Settings",
    "StorageConfig",
    "TimeoutConfig",
    "YamlConfigProvider",
    "load_settings",
]
