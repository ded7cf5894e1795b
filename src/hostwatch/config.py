"""Configuration loading and validation for hostwatch."""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from .errors import ConfigError

DEFAULT_STORE_LOCATION = "hostwatch.db"


@dataclass(frozen=True)
class MonitorConfig:
    """Collection settings. Replaced as a whole, never mutated in place."""

    interval: int = 60000
    store_location: str = DEFAULT_STORE_LOCATION
    enable_memory: bool = True
    enable_cpu: bool = True
    enable_disk: bool = True
    enable_processmanager: bool = True
    max_records: int | None = 10000
    disk_paths: tuple[str, ...] = ("/",)

    def __post_init__(self) -> None:
        if isinstance(self.disk_paths, str):
            object.__setattr__(self, "disk_paths", (self.disk_paths,))
        elif not isinstance(self.disk_paths, tuple):
            object.__setattr__(self, "disk_paths", tuple(self.disk_paths))
        if isinstance(self.interval, bool) or not isinstance(self.interval, int):
            raise ConfigError(f"interval must be an integer number of milliseconds, got {self.interval!r}")
        if self.interval < 1:
            raise ConfigError(f"interval must be >= 1 ms, got {self.interval}")
        if self.max_records is not None and self.max_records < 0:
            raise ConfigError(f"max_records must be >= 0, got {self.max_records}")
        if not self.disk_paths:
            raise ConfigError("disk_paths must contain at least one path")

    @property
    def interval_seconds(self) -> float:
        return self.interval / 1000.0

    def merged(self, changes: Mapping[str, Any]) -> MonitorConfig:
        """Return a new config with *changes* applied. Unknown keys are rejected."""
        unknown = set(changes) - set(MonitorConfig.__dataclass_fields__)
        if unknown:
            raise ConfigError(f"Unknown monitor option(s): {', '.join(sorted(unknown))}")
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        data = dataclasses.asdict(self)
        data["disk_paths"] = list(self.disk_paths)
        return data


@dataclass
class LoggingConfig:
    """Logging settings applied by the command line front end."""

    level: str = "INFO"
    format: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


@dataclass
class HostwatchConfig:
    """Top-level hostwatch configuration."""

    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply environment variable overrides using HOSTWATCH_ prefix."""
    env_map = {
        "HOSTWATCH_INTERVAL": ("monitor", "interval"),
        "HOSTWATCH_STORE_LOCATION": ("monitor", "store_location"),
        "HOSTWATCH_MAX_RECORDS": ("monitor", "max_records"),
        "HOSTWATCH_DISK_PATHS": ("monitor", "disk_paths"),
        "HOSTWATCH_LOG_LEVEL": ("logging", "level"),
    }
    for env_key, path in env_map.items():
        value = os.environ.get(env_key)
        if value is None:
            continue
        obj = data
        for part in path[:-1]:
            obj = obj.setdefault(part, {})
        final_key = path[-1]
        # coerce numeric and list values
        if final_key in ("interval", "max_records"):
            try:
                obj[final_key] = int(value)
            except ValueError as exc:
                raise ConfigError(f"{env_key} must be an integer, got {value!r}") from exc
        elif final_key == "disk_paths":
            obj[final_key] = [p.strip() for p in value.split(",") if p.strip()]
        else:
            obj[final_key] = value
    return data


def _dict_to_config(data: dict[str, Any]) -> HostwatchConfig:
    """Convert a raw dictionary to a HostwatchConfig dataclass."""
    monitor_data = data.get("monitor") or {}
    logging_data = data.get("logging") or {}

    return HostwatchConfig(
        monitor=MonitorConfig(**{
            k: v for k, v in monitor_data.items()
            if k in MonitorConfig.__dataclass_fields__
        }),
        logging=LoggingConfig(**{
            k: v for k, v in logging_data.items()
            if k in LoggingConfig.__dataclass_fields__
        }),
    )


def load_config(path: str | Path | None = None) -> HostwatchConfig:
    """Load configuration from a YAML file with environment overrides.

    Looks for ``hostwatch.yaml`` in the current directory if *path* is None.
    A missing file yields the defaults.
    """
    data: dict[str, Any] = {}
    if path is None:
        path = Path("hostwatch.yaml")
    else:
        path = Path(path)

    if path.exists():
        with open(path, encoding="utf-8") as fh:
            loaded = yaml.safe_load(fh)
            if isinstance(loaded, dict):
                data = loaded

    data = _apply_env_overrides(data)
    return _dict_to_config(data)
