"""
Typed configuration models matching the YAML config structure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

# Time interval stored per bucket in the timeseries table (15 minutes)
DEFAULT_TIMESERIES_INTERVAL_MS = 15 * 60 * 1000


@dataclass
class StorageConfig:
    """Counter store configuration."""
    local_database_path: str = "data/traffic.sqlite"
    timeseries_interval_ms: int = DEFAULT_TIMESERIES_INTERVAL_MS
    busy_timeout_seconds: float = 5.0

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "StorageConfig":
        return cls(
            local_database_path=d.get("local_database_path", "data/traffic.sqlite"),
            timeseries_interval_ms=d.get("timeseries_interval_ms", DEFAULT_TIMESERIES_INTERVAL_MS),
            busy_timeout_seconds=d.get("busy_timeout_seconds", 5.0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "local_database_path": self.local_database_path,
            "timeseries_interval_ms": self.timeseries_interval_ms,
            "busy_timeout_seconds": self.busy_timeout_seconds,
        }


@dataclass
class ConditionsConfig:
    """Congestion classification settings."""
    congested_threshold: int = 100
    lookback_multiplier: int = 3
    query_timeout_seconds: float = 5.0

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ConditionsConfig":
        return cls(
            congested_threshold=d.get("congested_threshold", 100),
            lookback_multiplier=d.get("lookback_multiplier", 3),
            query_timeout_seconds=d.get("query_timeout_seconds", 5.0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "congested_threshold": self.congested_threshold,
            "lookback_multiplier": self.lookback_multiplier,
            "query_timeout_seconds": self.query_timeout_seconds,
        }


@dataclass
class IngestConfig:
    """Ingestion flow settings."""
    parser_workers: int = 2
    sink_workers: int = 2
    queue_size: int = 1000
    max_retries: int = 2

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "IngestConfig":
        return cls(
            parser_workers=d.get("parser_workers", 2),
            sink_workers=d.get("sink_workers", 2),
            queue_size=d.get("queue_size", 1000),
            max_retries=d.get("max_retries", 2),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "parser_workers": self.parser_workers,
            "sink_workers": self.sink_workers,
            "queue_size": self.queue_size,
            "max_retries": self.max_retries,
        }


@dataclass
class WebConfig:
    """HTTP server settings."""
    host: str = "0.0.0.0"
    port: int = 5000

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "WebConfig":
        return cls(
            host=d.get("host", "0.0.0.0"),
            port=d.get("port", 5000),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"host": self.host, "port": self.port}


@dataclass
class Config:
    """
    Complete application configuration.

    This is a typed representation of the YAML config structure.
    """
    storage: StorageConfig = field(default_factory=StorageConfig)
    conditions: ConditionsConfig = field(default_factory=ConditionsConfig)
    ingest: IngestConfig = field(default_factory=IngestConfig)
    web: WebConfig = field(default_factory=WebConfig)
    log_path: str = "logs/traffic_conditions.log"
    log_level: str = "INFO"

    @property
    def lookback_period_ms(self) -> int:
        return self.storage.timeseries_interval_ms * self.conditions.lookback_multiplier

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Config":
        """Adapter: Create Config from raw dictionary (e.g., from load_config)."""
        return cls(
            storage=StorageConfig.from_dict(d.get("storage", {}) or {}),
            conditions=ConditionsConfig.from_dict(d.get("conditions", {}) or {}),
            ingest=IngestConfig.from_dict(d.get("ingest", {}) or {}),
            web=WebConfig.from_dict(d.get("web", {}) or {}),
            log_path=d.get("log_path", "logs/traffic_conditions.log"),
            log_level=d.get("log_level", "INFO"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert back to dictionary (for saving or logging the effective config)."""
        return {
            "storage": self.storage.to_dict(),
            "conditions": self.conditions.to_dict(),
            "ingest": self.ingest.to_dict(),
            "web": self.web.to_dict(),
            "log_path": self.log_path,
            "log_level": self.log_level,
        }
