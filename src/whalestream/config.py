"""
Application configuration.

A YAML file describes the streams, delivery sinks and process settings. Secrets never
live in the file: sinks read them from environment variables.

Example:
    log_level: INFO
    metrics_port: 9090
    streams:
      - purpose: whale-monitor
        endpoints: ["wss://xrplcluster.com/", "wss://s1.ripple.com/"]
        min_threshold: 100000
        max_threshold: 50000000
    delivery:
      sinks:
        discord: {enabled: true}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from whalestream.connectors.types import StreamConfig
from whalestream.delivery.config import (
    DeliveryConfig,
    DiscordSinkConfig,
    SinkConfig,
    TelegramSinkConfig,
    WebhookSinkConfig,
)
from whalestream.errors import ConfigError

logger = logging.getLogger(__name__)

LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


@dataclass
class AppConfig:
    """
    Top-level process configuration.

    Attributes:
        streams: One StreamConfig per purpose.
        delivery: Alert delivery settings.
        metrics_port: Port for /metrics, /healthz, /readyz (0 disables the server).
        log_level: Root log level.
        log_json: Emit JSON log lines.
        shutdown_grace_s: Time stop_all() waits for streams to stop.
    """

    streams: list[StreamConfig] = field(default_factory=lambda: [StreamConfig()])
    delivery: DeliveryConfig = field(default_factory=DeliveryConfig)
    metrics_port: int = 9090
    log_level: str = "INFO"
    log_json: bool = True
    shutdown_grace_s: float = 30.0

    def __post_init__(self) -> None:
        if not self.streams:
            raise ConfigError("at least one stream must be configured")
        purposes = [s.purpose for s in self.streams]
        duplicates = sorted({p for p in purposes if purposes.count(p) > 1})
        if duplicates:
            raise ConfigError(f"duplicate stream purposes: {duplicates}")
        if not 0 <= self.metrics_port <= 65535:
            raise ConfigError(f"metrics_port must be in [0, 65535], got {self.metrics_port}")
        self.log_level = self.log_level.upper()
        if self.log_level not in LOG_LEVELS:
            raise ConfigError(f"log_level must be one of {sorted(LOG_LEVELS)}, got {self.log_level!r}")
        if self.shutdown_grace_s <= 0:
            raise ConfigError(f"shutdown_grace_s must be > 0, got {self.shutdown_grace_s}")


def _build(cls: type, section: str, data: Any) -> Any:
    """Instantiate a config dataclass, reporting unknown keys as ConfigError."""
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"{section} must be a mapping, got {type(data).__name__}")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"{section}: unknown keys {unknown}")
    try:
        return cls(**data)
    except TypeError as e:
        raise ConfigError(f"{section}: {e}") from e


def _delivery_from_dict(data: Any) -> DeliveryConfig:
    if data is None:
        return DeliveryConfig()
    if not isinstance(data, dict):
        raise ConfigError("delivery must be a mapping")
    data = dict(data)
    sinks = data.pop("sinks", None) or {}
    if not isinstance(sinks, dict):
        raise ConfigError("delivery.sinks must be a mapping")
    unknown = sorted(set(sinks) - {"telegram", "discord", "webhook"})
    if unknown:
        raise ConfigError(f"delivery.sinks: unknown sinks {unknown}")
    sink_config = SinkConfig(
        telegram=_build(TelegramSinkConfig, "delivery.sinks.telegram", sinks.get("telegram")),
        discord=_build(DiscordSinkConfig, "delivery.sinks.discord", sinks.get("discord")),
        webhook=_build(WebhookSinkConfig, "delivery.sinks.webhook", sinks.get("webhook")),
    )
    delivery: DeliveryConfig = _build(DeliveryConfig, "delivery", data)
    delivery.sinks = sink_config
    return delivery


def config_from_dict(data: dict[str, Any]) -> AppConfig:
    """Build an AppConfig from parsed YAML."""
    if not isinstance(data, dict):
        raise ConfigError("config root must be a mapping")
    data = dict(data)

    raw_streams = data.pop("streams", None)
    if raw_streams is None:
        streams = [StreamConfig()]
    elif isinstance(raw_streams, list):
        streams = [_build(StreamConfig, f"streams[{i}]", s) for i, s in enumerate(raw_streams)]
    else:
        raise ConfigError("streams must be a list")

    delivery = _delivery_from_dict(data.pop("delivery", None))
    app: AppConfig = _build(AppConfig, "config", {**data, "streams": streams, "delivery": delivery})
    return app


def load_config(path: str | Path) -> AppConfig:
    """
    Load and validate a YAML config file.

    Raises:
        ConfigError: If the file is missing, malformed or invalid.
    """
    path = Path(path)
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"cannot read config {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e

    config = config_from_dict(data or {})
    logger.info(
        "Loaded config",
        extra={"path": str(path), "streams": [s.purpose for s in config.streams]},
    )
    return config
