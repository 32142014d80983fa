"""
Typed models for the traffic conditions application.

These models provide strong typing for events, counter entries, conditions
and configuration shared across ingestion, storage and the query service.
"""

from .traffic_event import TrafficEvent, EventType, DATE_FORMAT
from .counter_entry import CounterEntry
from .condition import Condition
from .config import (
    Config,
    StorageConfig,
    ConditionsConfig,
    IngestConfig,
    WebConfig,
    DEFAULT_TIMESERIES_INTERVAL_MS,
)

__all__ = [
    # Events
    "TrafficEvent",
    "EventType",
    "DATE_FORMAT",
    # Storage
    "CounterEntry",
    # Conditions
    "Condition",
    # Config
    "Config",
    "StorageConfig",
    "ConditionsConfig",
    "IngestConfig",
    "WebConfig",
    "DEFAULT_TIMESERIES_INTERVAL_MS",
]
