"""Server configuration.

Loads from config.yaml if present, with environment variable overrides.
Environment variables use the pattern: XRAY_<SECTION>_<KEY> (uppercase).
RABBITMQ_URL and MONGODB_URI are also honoured.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 3000
    env: str = "dev"  # "dev", "test" or "prod"


@dataclass
class BrokerConfig:
    backend: str = "amqp"  # "amqp" or "memory"
    url: str = "amqp://localhost:5672"
    exchange: str = "x-ray-exchange"
    queue: str = "x-ray-queue"
    prefetch: int = 1


@dataclass
class StorageConfig:
    backend: str = "mongo"  # "mongo" or "memory"
    mongo_uri: str = "mongodb://localhost:27017/iot-xray"
    database: str = ""  # empty: take it from the URI path
    collection: str = "signals"


@dataclass
class SimulatorConfig:
    data_file: str = "x-ray.json"
    load_data_file: bool = True
    pacing_ms: int = 100
    default_interval_ms: int = 5000


@dataclass
class LimitsConfig:
    active_window_seconds: float = 120.0


@dataclass
class LoggingConfig:
    level: str = "info"
    format: str = "console"  # "console" or "json"


@dataclass
class AppConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    broker: BrokerConfig = field(default_factory=BrokerConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    simulator: SimulatorConfig = field(default_factory=SimulatorConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _apply_env_overrides(config: AppConfig) -> None:
    """Override config values from environment variables."""
    mapping = {
        "RABBITMQ_URL": lambda v: setattr(config.broker, "url", v),
        "MONGODB_URI": lambda v: setattr(config.storage, "mongo_uri", v),
        "XRAY_SERVER_HOST": lambda v: setattr(config.server, "host", v),
        "XRAY_SERVER_PORT": lambda v: setattr(config.server, "port", int(v)),
        "XRAY_SERVER_ENV": lambda v: setattr(config.server, "env", v),
        "XRAY_BROKER_BACKEND": lambda v: setattr(config.broker, "backend", v),
        "XRAY_BROKER_URL": lambda v: setattr(config.broker, "url", v),
        "XRAY_BROKER_EXCHANGE": lambda v: setattr(config.broker, "exchange", v),
        "XRAY_BROKER_QUEUE": lambda v: setattr(config.broker, "queue", v),
        "XRAY_BROKER_PREFETCH": lambda v: setattr(config.broker, "prefetch", int(v)),
        "XRAY_STORAGE_BACKEND": lambda v: setattr(config.storage, "backend", v),
        "XRAY_STORAGE_MONGO_URI": lambda v: setattr(config.storage, "mongo_uri", v),
        "XRAY_STORAGE_DATABASE": lambda v: setattr(config.storage, "database", v),
        "XRAY_STORAGE_COLLECTION": lambda v: setattr(config.storage, "collection", v),
        "XRAY_SIMULATOR_DATA_FILE": lambda v: setattr(config.simulator, "data_file", v),
        "XRAY_SIMULATOR_LOAD_DATA_FILE": lambda v: setattr(config.simulator, "load_data_file", _as_bool(v)),
        "XRAY_SIMULATOR_PACING_MS": lambda v: setattr(config.simulator, "pacing_ms", int(v)),
        "XRAY_SIMULATOR_DEFAULT_INTERVAL_MS": lambda v: setattr(config.simulator, "default_interval_ms", int(v)),
        "XRAY_LIMITS_ACTIVE_WINDOW": lambda v: setattr(config.limits, "active_window_seconds", float(v)),
        "XRAY_LOG_LEVEL": lambda v: setattr(config.logging, "level", v),
        "XRAY_LOG_FORMAT": lambda v: setattr(config.logging, "format", v),
    }
    for env_key, setter in mapping.items():
        val = os.environ.get(env_key)
        if val is not None:
            setter(val)


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load configuration from YAML file + environment overrides."""
    config = AppConfig()

    if config_path is None:
        config_path = Path(os.environ.get("XRAY_CONFIG", "config.yaml"))
    else:
        config_path = Path(config_path)

    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}

        for section_name in ("server", "broker", "storage", "simulator", "limits", "logging"):
            section = getattr(config, section_name)
            for k, v in (raw.get(section_name) or {}).items():
                if hasattr(section, k):
                    setattr(section, k, v)

    # Environment overrides always win
    _apply_env_overrides(config)
    return config
