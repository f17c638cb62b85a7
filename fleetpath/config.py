"""Server configuration.

Loads from config.yaml if present, with environment variable overrides.
Environment variables use the pattern: FLEETPATH_<SECTION>_<KEY> (uppercase).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8000
    env: str = "dev"  # "dev" or "prod"


@dataclass
class StorageConfig:
    base_dir: str = "data/telemetry"


@dataclass
class LimitsConfig:
    max_records_per_request: int = 5_000
    max_vehicles_per_query: int = 200
    default_max_points: int = 1_000
    query_timeout_seconds: float = 30.0
    active_window_seconds: float = 300.0


@dataclass
class LoggingConfig:
    level: str = "info"
    format: str = "console"  # "console" or "json"
    file: str = ""


@dataclass
class AppConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


_SECTIONS = ("server", "storage", "limits", "logging")


def _apply_env_overrides(config: AppConfig) -> None:
    """Override config values from environment variables."""
    mapping = {
        "FLEETPATH_SERVER_HOST": lambda v: setattr(config.server, "host", v),
        "FLEETPATH_SERVER_PORT": lambda v: setattr(config.server, "port", int(v)),
        "FLEETPATH_SERVER_ENV": lambda v: setattr(config.server, "env", v),
        "FLEETPATH_STORAGE_BASE_DIR": lambda v: setattr(config.storage, "base_dir", v),
        "FLEETPATH_LIMITS_MAX_RECORDS": lambda v: setattr(config.limits, "max_records_per_request", int(v)),
        "FLEETPATH_LIMITS_MAX_VEHICLES": lambda v: setattr(config.limits, "max_vehicles_per_query", int(v)),
        "FLEETPATH_LIMITS_MAX_POINTS": lambda v: setattr(config.limits, "default_max_points", int(v)),
        "FLEETPATH_LIMITS_QUERY_TIMEOUT": lambda v: setattr(config.limits, "query_timeout_seconds", float(v)),
        "FLEETPATH_LIMITS_ACTIVE_WINDOW": lambda v: setattr(config.limits, "active_window_seconds", float(v)),
        "FLEETPATH_LOG_LEVEL": lambda v: setattr(config.logging, "level", v),
        "FLEETPATH_LOG_FORMAT": lambda v: setattr(config.logging, "format", v),
        "FLEETPATH_LOG_FILE": lambda v: setattr(config.logging, "file", v),
    }
    for env_key, setter in mapping.items():
        val = os.environ.get(env_key)
        if val is not None:
            setter(val)


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load configuration from YAML file + environment overrides."""
    config = AppConfig()

    if config_path is None:
        config_path = Path(os.environ.get("FLEETPATH_CONFIG", "config.yaml"))
    else:
        config_path = Path(config_path)

    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}

        for section in _SECTIONS:
            target = getattr(config, section)
            for k, v in (raw.get(section) or {}).items():
                if hasattr(target, k):
                    setattr(target, k, v)

    # Environment overrides always win
    _apply_env_overrides(config)
    return config
